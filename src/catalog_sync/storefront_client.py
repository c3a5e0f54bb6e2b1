"""Storefront collection feed reader (``/collections/<handle>/products.json``)."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

import requests

from .errors import AntiBotChallenge, TransientSourceError
from .models import Candidate, WorkItem
from .parsers import parse_storefront_products

logger = logging.getLogger(__name__)

USER_AGENT = "catalog-sync/0.1 (+price checker)"
PAGE_LIMIT = 250
CHALLENGE_STATUSES = (403, 429)
CHALLENGE_MARKERS = ("captcha", "challenge-platform", "cf-chl")


class StorefrontReader:
    """Reads every product of a storefront collection.

    ``item.retailer_id`` selects the base URL and ``item.query`` is the
    collection handle.
    """

    def __init__(
        self,
        base_urls: Dict[str, str],
        timeout: int = 20,
        max_pages: int = 20,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_urls = base_urls
        self.timeout = timeout
        self.max_pages = max_pages
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def _fetch_page(self, url: str, page: int) -> dict:
        try:
            response = self.session.get(url, params={"limit": PAGE_LIMIT, "page": page}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientSourceError(f"{url}: {exc}") from exc

        content_type = response.headers.get("Content-Type", "")
        if response.status_code in CHALLENGE_STATUSES or (
            "html" in content_type and any(marker in response.text.lower() for marker in CHALLENGE_MARKERS)
        ):
            raise AntiBotChallenge(f"{url}: HTTP {response.status_code}", source="storefront")
        try:
            response.raise_for_status()
            return response.json()
        except (requests.HTTPError, ValueError) as exc:
            raise TransientSourceError(f"{url}: {exc}") from exc

    def search(self, item: WorkItem) -> List[Candidate]:
        base_url = self.base_urls.get(item.retailer_id)
        if base_url is None:
            raise TransientSourceError(f"no storefront configured for {item.retailer_id}")

        url = f"{base_url.rstrip('/')}/collections/{item.query}/products.json"
        candidates: List[Candidate] = []
        for page in range(1, self.max_pages + 1):
            data = self._fetch_page(url, page)
            candidates.extend(parse_storefront_products(data, base_url))
            if len(data.get("products") or []) < PAGE_LIMIT:
                break
        logger.debug(
            "Fetched %d products from %s", len(candidates), url,
            extra={"phase": "acquire", "item_id": item.id},
        )
        return candidates

    def close(self) -> None:
        self.session.close()
