"""Offline audit of canonical products: misclassifications and likely duplicates."""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .decision import review_priority
from .guards import CategoryDetector
from .models import CanonicalProduct, ReviewTask
from .repository import CatalogStore
from .similarity import SimilarityEngine
from .utils import now_iso

logger = logging.getLogger(__name__)

CATEGORY_REVIEW_TASK = "category_review"
DEVICE_MERGE_TASK = "device_merge"
CATEGORY_REVIEW_PRIORITY = 50
DUPLICATE_THRESHOLD = 0.9


def misclassified(
    products: Iterable[CanonicalProduct], detector: CategoryDetector | None = None
) -> List[ReviewTask]:
    detector = detector or CategoryDetector()
    created_at = now_iso()
    tasks: List[ReviewTask] = []
    for product in products:
        suggested = detector.detect(product.name, product.brand, product.category)
        if not suggested:
            continue
        tasks.append(
            ReviewTask(
                task_type=CATEGORY_REVIEW_TASK,
                source_listing_id=f"product:{product.id}",
                priority=CATEGORY_REVIEW_PRIORITY,
                reason=f"looks like {suggested}, filed under {product.category}",
                candidate_id=product.id,
                created_at=created_at,
                payload={
                    "name": product.name,
                    "current_category": product.category,
                    "suggested_category": suggested,
                },
            )
        )
    return tasks


def duplicate_candidates(
    products: Sequence[CanonicalProduct],
    engine: SimilarityEngine | None = None,
    threshold: float = DUPLICATE_THRESHOLD,
) -> List[ReviewTask]:
    """Pairs of products in the same category whose names are near-identical."""

    engine = engine or SimilarityEngine()
    by_category: Dict[str, List[CanonicalProduct]] = defaultdict(list)
    for product in products:
        by_category[product.category].append(product)

    created_at = now_iso()
    tasks: List[ReviewTask] = []
    for category, members in sorted(by_category.items()):
        if len(members) < 2:
            continue
        for i, j, score in engine.similar_pairs([p.name for p in members], threshold):
            keep, merge = sorted((members[i], members[j]), key=lambda p: p.id)
            tasks.append(
                ReviewTask(
                    task_type=DEVICE_MERGE_TASK,
                    source_listing_id=f"merge:{keep.id}:{merge.id}",
                    priority=review_priority(score),
                    reason=f"similar names in {category} ({score:.2f})",
                    candidate_id=keep.id,
                    created_at=created_at,
                    payload={
                        "keep_id": keep.id,
                        "keep_name": keep.name,
                        "merge_id": merge.id,
                        "merge_name": merge.name,
                        "score": round(score, 4),
                    },
                )
            )
    return tasks


@dataclass
class AuditReport:
    products: int = 0
    misclassified: List[ReviewTask] = field(default_factory=list)
    duplicates: List[ReviewTask] = field(default_factory=list)
    written: int = 0


def run_audit(
    store: CatalogStore,
    threshold: float = DUPLICATE_THRESHOLD,
    dry_run: bool = False,
    detector: CategoryDetector | None = None,
    engine: SimilarityEngine | None = None,
) -> AuditReport:
    products = store.canonical_products()
    report = AuditReport(
        products=len(products),
        misclassified=misclassified(products, detector),
        duplicates=duplicate_candidates(products, engine, threshold),
    )
    if dry_run:
        logger.info(
            "Dry run: would create %d category and %d merge review tasks",
            len(report.misclassified), len(report.duplicates), extra={"phase": "audit"},
        )
        return report
    report.written = store.add_review_tasks(report.misclassified + report.duplicates)
    logger.info(
        "Audit of %d products: %d misclassified, %d duplicate pairs",
        report.products, len(report.misclassified), len(report.duplicates), extra={"phase": "audit"},
    )
    return report
