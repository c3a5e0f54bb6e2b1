"""Per work item reconciliation: guards, matching, decision and product creation."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .candidate_index import CatalogIndex
from .decision import decide
from .guards import CategoryDetector, JunkFilter
from .matcher import find_best_match
from .models import Candidate, CanonicalProduct, MatchOutcome, Tier, WorkItem
from .normalizer import listing_key, normalize

logger = logging.getLogger(__name__)

PRODUCT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_URL, "catalog-sync/canonical-products")


def source_id_for(retailer_id: str, external_id: str) -> str:
    return f"store:{retailer_id}:{external_id}"


def product_id_for(source_id: str) -> str:
    """Deterministic id so a re-run creates the same product, not a duplicate."""

    return str(uuid.uuid5(PRODUCT_NAMESPACE, source_id))


@dataclass
class Reconciler:
    catalog: CatalogIndex
    junk_filter: JunkFilter = field(default_factory=JunkFilter)
    detector: CategoryDetector = field(default_factory=CategoryDetector)
    _created: Dict[Tuple[str, str], CanonicalProduct] = field(default_factory=dict, init=False)

    def infer_brand(self, title: str) -> Optional[str]:
        """Longest known brand that prefixes the normalized title."""

        normalized = normalize(title)
        best: Optional[Tuple[str, str]] = None
        for key, display in self.catalog.known_brands().items():
            if normalized == key or normalized.startswith(key + " "):
                if best is None or len(key) > len(best[0]):
                    best = (key, display)
        return best[1] if best else None

    def reconcile(self, item: WorkItem, candidates: Iterable[Candidate]) -> List[MatchOutcome]:
        outcomes: List[MatchOutcome] = []
        seen: set[str] = set()
        for candidate in candidates:
            if candidate.external_id in seen:
                continue
            seen.add(candidate.external_id)
            outcomes.append(self.reconcile_one(item, candidate))
        return outcomes

    def reconcile_one(self, item: WorkItem, candidate: Candidate) -> MatchOutcome:
        outcome = MatchOutcome(
            retailer_id=item.retailer_id,
            external_id=candidate.external_id,
            title=candidate.title,
            tier=Tier.NONE,
            price=candidate.price,
            in_stock=candidate.in_stock,
            url=candidate.url,
            image_url=candidate.image_url,
            work_item_id=item.id,
        )

        rejection = self.junk_filter.reject_reason(candidate, item.category)
        if rejection:
            outcome.reason = f"junk: {rejection}"
            logger.debug("Rejected %r (%s)", candidate.title, rejection, extra={"phase": "guard"})
            return outcome

        brand = item.brand or candidate.vendor or self.infer_brand(candidate.title)
        expected = self.detector.detect(candidate.title, brand, item.category) or item.category

        index, scope = self.catalog.select(expected, brand)
        match = find_best_match(candidate.title, index, brand)
        matched_category = self.catalog.category_of(match.id) if match else None
        decision = decide(match, scope, expected, matched_category, brand)

        outcome.tier = decision.tier
        outcome.reason = decision.reason
        outcome.scope = scope
        if match is not None:
            outcome.score = match.score
            if not decision.cross_category:
                outcome.candidate_id = match.id
                outcome.candidate_name = match.name

        if decision.cross_category:
            logger.info(
                "Skipped cross-category match for %r", candidate.title,
                extra={"phase": "guard", "expected": expected, "matched": matched_category},
            )
        elif decision.tier is Tier.NONE and item.create_missing:
            product = self._create_product(item, candidate, expected, brand)
            outcome.candidate_id = product.id
            outcome.candidate_name = product.name
            outcome.created = product
            outcome.reason = f"created: {decision.reason}"
        return outcome

    def _create_product(
        self, item: WorkItem, candidate: Candidate, category: str, brand: Optional[str]
    ) -> CanonicalProduct:
        key = (category, listing_key(candidate.title))
        existing = self._created.get(key)
        if existing is not None:
            return existing

        source_id = source_id_for(item.retailer_id, candidate.external_id)
        product = CanonicalProduct(
            id=product_id_for(source_id),
            name=" ".join(candidate.title.split()),
            category=category,
            brand=brand,
            source_id=source_id,
            price=candidate.price,
            in_stock=candidate.in_stock,
            image_url=candidate.image_url,
            best_url=candidate.url,
        )
        self.catalog.add(product)
        self._created[key] = product
        logger.info(
            "Created canonical product %s for %r", product.id, product.name,
            extra={"phase": "create", "category": category},
        )
        return product
