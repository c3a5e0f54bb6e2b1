"""Builds priority-ordered work items for a sync run."""
from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, List, Optional

from .config import StorefrontSource
from .models import CanonicalProduct, WorkItem
from .normalizer import normalize
from .repository import CatalogStore

logger = logging.getLogger(__name__)

HIGH_DEMAND_CATEGORIES = ("iem", "headphone")
STOREFRONT_PRIORITY = 1000


def compute_priority_score(product: CanonicalProduct, listing_count: int) -> int:
    score = 0
    if listing_count >= 3:
        score += 40
    elif listing_count == 2:
        score += 25
    elif listing_count == 1:
        score += 10
    if product.price is not None and product.price > 0:
        score += 5
    if product.category in HIGH_DEMAND_CATEGORIES:
        score += 3
    return score


def search_query(product: CanonicalProduct) -> str:
    """Product name prefixed with the brand unless the name already carries it."""

    name = " ".join(product.name.split())
    if product.brand and not normalize(name).startswith(normalize(product.brand)):
        return f"{product.brand} {name}"
    return name


class Backlog:
    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def listing_counts(self) -> Counter:
        rows = self.store.select_all("external_listings")
        return Counter(row["canonical_product_id"] for row in rows if row["canonical_product_id"])

    def marketplace_items(
        self, retailer_id: str, categories: Optional[Iterable[str]] = None, limit: Optional[int] = None
    ) -> List[WorkItem]:
        """One search per canonical product, highest priority first.

        A marketplace search never creates products; unmatched results are
        skipped.
        """

        wanted = set(categories) if categories else None
        counts = self.listing_counts()
        items: List[WorkItem] = []
        for product in self.store.canonical_products():
            if wanted is not None and product.category not in wanted:
                continue
            items.append(
                WorkItem(
                    id=f"{retailer_id}:{product.id}",
                    query=search_query(product),
                    retailer_id=retailer_id,
                    category=product.category,
                    brand=product.brand,
                    priority=compute_priority_score(product, counts.get(product.id, 0)),
                )
            )
        items.sort(key=lambda item: (-item.priority, item.id))
        if limit:
            items = items[:limit]
        logger.info("Built %d marketplace work items", len(items), extra={"phase": "backlog"})
        return items

    @staticmethod
    def storefront_items(
        sources: Iterable[StorefrontSource], categories: Optional[Iterable[str]] = None
    ) -> List[WorkItem]:
        """One work item per storefront collection; unmatched products are created."""

        wanted = set(categories) if categories else None
        items: List[WorkItem] = []
        for source in sources:
            for handle, category in source.collections.items():
                if wanted is not None and category not in wanted:
                    continue
                items.append(
                    WorkItem(
                        id=f"{source.retailer_id}:collection:{handle}",
                        query=handle,
                        retailer_id=source.retailer_id,
                        category=category,
                        priority=STOREFRONT_PRIORITY,
                        create_missing=True,
                    )
                )
        return items
