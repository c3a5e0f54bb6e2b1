"""Batched write of buffered match outcomes to the catalog store."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Set

from .decision import dedup_outcomes, plan_links
from .errors import InvariantViolation, StoreWriteError
from .models import ExternalListing, MatchOutcome, ReviewTask
from .repository import CatalogStore
from .utils import chunked, now_iso

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
LISTING_KEY = ("retailer_id", "external_id")


@dataclass
class FlushResult:
    outcomes: int = 0
    products_created: int = 0
    new_links: int = 0
    commercial_updates: int = 0
    review_tasks: int = 0
    conflicts: int = 0
    denormalized: int = 0
    invalid_rows: int = 0
    failed_batches: int = 0


class Flusher:
    """Writes one buffer of outcomes.

    Created canonical products go first so new links never point at a
    missing product. Existing links are read back and never overwritten.
    """

    def __init__(self, store: CatalogStore, batch_size: int = BATCH_SIZE) -> None:
        self.store = store
        self.batch_size = batch_size

    def _rows(
        self, records: Sequence[Any], to_row: Callable[[Any], Dict[str, Any]], result: FlushResult
    ) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        for record in records:
            try:
                rows.append(to_row(record))
            except InvariantViolation as exc:
                result.invalid_rows += 1
                logger.error("Skipping invalid row: %s", exc, extra={"phase": "flush"})
        return rows

    def _write(self, entity: str, rows: List[Dict[str, Any]], result: FlushResult, **upsert_kwargs: Any) -> int:
        written = 0
        for batch in chunked(rows, self.batch_size):
            try:
                written += self.store.upsert(entity, batch, **upsert_kwargs)
            except StoreWriteError as exc:
                result.failed_batches += 1
                logger.error(
                    "Dropped batch of %d %s rows: %s", len(batch), entity, exc, extra={"phase": "flush"}
                )
        return written

    def flush(self, outcomes: Sequence[MatchOutcome], checked_at: Optional[str] = None) -> FlushResult:
        checked_at = checked_at or now_iso()
        deduped = dedup_outcomes(outcomes)
        result = FlushResult(outcomes=len(deduped))

        # products created anywhere in the buffer, including outcomes dropped by dedup
        created = {o.created.id: o.created for o in outcomes if o.created is not None}
        product_rows = self._rows(list(created.values()), lambda p: p.to_row(), result)
        result.products_created = self._write(
            "canonical_products", product_rows, result, conflict_key=("id",), ignore_duplicates=True
        )

        existing = self.store.existing_links(o.key for o in deduped)
        plan = plan_links(deduped, existing, checked_at)
        result.conflicts = plan.conflicts

        link_rows = self._rows(plan.new_links, lambda listing: listing.to_row(include_link=True), result)
        result.new_links = self._write("external_listings", link_rows, result, conflict_key=LISTING_KEY)

        update_rows = self._rows(
            plan.commercial_updates, lambda listing: listing.to_row(include_link=False), result
        )
        result.commercial_updates = self._write("external_listings", update_rows, result, conflict_key=LISTING_KEY)

        task_rows = self._rows(plan.review_tasks, ReviewTask.to_row, result)
        result.review_tasks = self._write(
            "review_tasks", task_rows, result,
            conflict_key=("task_type", "source_listing_id"), ignore_duplicates=True,
        )

        touched = self._touched_products(plan.new_links, plan.commercial_updates, existing)
        if touched:
            try:
                result.denormalized = self.store.denormalize_best_offers(touched)
            except StoreWriteError as exc:
                result.failed_batches += 1
                logger.error("Denormalization failed: %s", exc, extra={"phase": "flush"})

        logger.info(
            "Flushed %d outcomes: %d new links, %d commercial updates, %d review tasks, %d conflicts",
            result.outcomes,
            result.new_links,
            result.commercial_updates,
            result.review_tasks,
            result.conflicts,
            extra={"phase": "flush"},
        )
        return result

    @staticmethod
    def _touched_products(
        new_links: Sequence[ExternalListing],
        updates: Sequence[ExternalListing],
        existing: Dict[Any, Optional[str]],
    ) -> Set[str]:
        touched = {listing.canonical_product_id for listing in new_links if listing.canonical_product_id}
        touched.update(existing[listing.key] for listing in updates if existing.get(listing.key))
        return touched
