"""Signed affiliate product API client and marketplace search reader."""
from __future__ import annotations

import datetime as dt
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .config import AffiliateCredentials
from .errors import AntiBotChallenge, TransientSourceError
from .models import Candidate, WorkItem
from .parsers import parse_items_response

logger = logging.getLogger(__name__)

ISO8601 = "%Y%m%dT%H%M%SZ"
DATE_STAMP = "%Y%m%d"
SERVICE = "ProductAdvertisingAPI"
CHALLENGE_STATUSES = (403, 429, 503)

DEFAULT_RESOURCES = [
    "ItemInfo.Title",
    "ItemInfo.ByLineInfo",
    "ItemInfo.Classifications",
    "BrowseNodeInfo.BrowseNodes",
    "Offers.Listings.Price",
    "Offers.Listings.Availability.Type",
    "Offers.Summaries.LowestPrice",
    "Images.Primary.Medium",
]


@dataclass
class AffiliateApiClient:
    """Simple wrapper around the signed affiliate API HTTP requests."""

    credentials: AffiliateCredentials
    timeout: int = 20
    session: requests.Session = field(default_factory=requests.Session)

    def _sign(self, payload: str, target: str, timestamp: dt.datetime) -> Dict[str, str]:
        date_stamp = timestamp.strftime(DATE_STAMP)
        amz_date = timestamp.strftime(ISO8601)
        amz_target = f"com.amazon.paapi5.v1.ProductAdvertisingAPIv1.{target}"
        canonical_headers = (
            f"content-encoding:amz-1.0\n"
            f"content-type:application/json; charset=utf-8\n"
            f"host:{self.credentials.host}\n"
            f"x-amz-date:{amz_date}\n"
            f"x-amz-target:{amz_target}\n"
        )
        signed_headers = "content-encoding;content-type;host;x-amz-date;x-amz-target"
        payload_hash = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        canonical_request = f"POST\n/paapi5/{target}\n\n{canonical_headers}\n{signed_headers}\n{payload_hash}"

        algorithm = "AWS4-HMAC-SHA256"
        credential_scope = f"{date_stamp}/{self.credentials.region}/{SERVICE}/aws4_request"
        string_to_sign = (
            f"{algorithm}\n{amz_date}\n{credential_scope}\n"
            f"{hashlib.sha256(canonical_request.encode('utf-8')).hexdigest()}"
        )
        signing_key = self._get_signature_key(
            self.credentials.secret_key, date_stamp, self.credentials.region, SERVICE
        )
        signature = hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()

        return {
            "Content-Encoding": "amz-1.0",
            "Content-Type": "application/json; charset=utf-8",
            "Host": self.credentials.host,
            "X-Amz-Date": amz_date,
            "X-Amz-Target": amz_target,
            "Authorization": (
                f"{algorithm} Credential={self.credentials.access_key}/{credential_scope}, "
                f"SignedHeaders={signed_headers}, Signature={signature}"
            ),
        }

    @staticmethod
    def _get_signature_key(key: str, date_stamp: str, region_name: str, service_name: str) -> bytes:
        def sign(key_bytes: bytes, msg: str) -> bytes:
            return hmac.new(key_bytes, msg.encode("utf-8"), hashlib.sha256).digest()

        k_date = sign(("AWS4" + key).encode("utf-8"), date_stamp)
        k_region = sign(k_date, region_name)
        k_service = sign(k_region, service_name)
        return sign(k_service, "aws4_request")

    def _request(self, target: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        payload_str = json.dumps(payload, separators=(",", ":"))
        headers = self._sign(payload_str, target, dt.datetime.now(dt.timezone.utc))
        endpoint = f"https://{self.credentials.host}/paapi5/{target}"
        try:
            response = self.session.post(endpoint, data=payload_str, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientSourceError(f"{target}: {exc}") from exc
        if response.status_code in CHALLENGE_STATUSES:
            raise AntiBotChallenge(f"{target}: HTTP {response.status_code}", source="affiliate")
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            raise TransientSourceError(f"{target}: {exc}") from exc
        return response.json()

    def search_items(
        self,
        keywords: str,
        search_index: Optional[str] = None,
        item_page: int = 1,
        resources: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "Keywords": keywords,
            "ItemPage": item_page,
            "PartnerTag": self.credentials.partner_tag,
            "PartnerType": self.credentials.partner_type,
            "Marketplace": self.credentials.marketplace,
            "Resources": resources or DEFAULT_RESOURCES,
        }
        if search_index:
            payload["SearchIndex"] = search_index
        return self._request("searchitems", payload)

    def close(self) -> None:
        self.session.close()


class AffiliateSearchReader:
    """Marketplace source reader: one keyword search per work item."""

    def __init__(self, client: AffiliateApiClient, search_index: str = "Electronics", pages: int = 1) -> None:
        self.client = client
        self.search_index = search_index
        self.pages = pages

    def search(self, item: WorkItem) -> List[Candidate]:
        candidates: List[Candidate] = []
        for page in range(1, self.pages + 1):
            response = self.client.search_items(item.query[:200], search_index=self.search_index, item_page=page)
            batch = parse_items_response(response)
            candidates.extend(batch)
            if not batch:
                break
        logger.debug(
            "Affiliate search %r returned %d candidates", item.query, len(candidates),
            extra={"phase": "acquire", "item_id": item.id},
        )
        return candidates

    def close(self) -> None:
        self.client.close()
