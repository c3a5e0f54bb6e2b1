"""Three-tier match classification and the conflict-aware link merge."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .candidate_index import brand_key
from .matcher import MatchResult, name_contains_brand
from .models import ExternalListing, IndexScope, MatchOutcome, ReviewTask, Tier
from .normalizer import compact, normalize

logger = logging.getLogger(__name__)

OFFER_LINK_TASK = "offer_link"


@dataclass(frozen=True)
class Thresholds:
    auto: float
    pending: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.pending < self.auto <= 1.0:
            raise ValueError(
                f"thresholds must satisfy 0 <= pending < auto <= 1, got auto={self.auto} pending={self.pending}"
            )


BRAND_SCOPED = Thresholds(auto=0.85, pending=0.65)
CATEGORY_SCOPED = Thresholds(auto=0.92, pending=0.75)

THRESHOLDS: Dict[IndexScope, Thresholds] = {
    IndexScope.BRAND: BRAND_SCOPED,
    IndexScope.CATEGORY: CATEGORY_SCOPED,
}


def thresholds_for(scope: IndexScope) -> Thresholds:
    return THRESHOLDS[scope]


@dataclass(frozen=True)
class Decision:
    tier: Tier
    reason: str
    cross_category: bool = False


def is_cross_category(matched_category: Optional[str], expected_category: str) -> bool:
    return matched_category is not None and matched_category != expected_category


def brand_containment(brand: Optional[str], candidate_name: str) -> bool:
    """True unless a meaningful brand is known and missing from the candidate name.

    Brands of two characters or less are too ambiguous to check.
    """

    token = brand_key(brand)
    if len(compact(token)) <= 2:
        return True
    return name_contains_brand(token, normalize(candidate_name))


def decide(
    match: Optional[MatchResult],
    scope: IndexScope,
    expected_category: str,
    matched_category: Optional[str],
    brand: Optional[str] = None,
) -> Decision:
    if match is None:
        return Decision(Tier.NONE, "no candidates")
    if is_cross_category(matched_category, expected_category):
        return Decision(
            Tier.NONE,
            f"cross-category: candidate is {matched_category}, expected {expected_category}",
            cross_category=True,
        )

    limits = thresholds_for(scope)
    if match.score >= limits.auto:
        if brand_containment(brand, match.name):
            return Decision(Tier.AUTO, f"{scope.value} score {match.score:.3f} >= {limits.auto}")
        return Decision(Tier.PENDING, f"brand {brand!r} missing from candidate name")
    if match.score >= limits.pending:
        return Decision(Tier.PENDING, f"{scope.value} score {match.score:.3f} >= {limits.pending}")
    return Decision(Tier.NONE, f"{scope.value} score {match.score:.3f} < {limits.pending}")


def dedup_outcomes(outcomes: Iterable[MatchOutcome]) -> List[MatchOutcome]:
    """Keep the best ranked outcome per ``(retailer_id, external_id)``.

    Ties keep the earlier outcome. Output order follows first appearance.
    """

    best: Dict[Tuple[str, str], MatchOutcome] = {}
    for outcome in outcomes:
        current = best.get(outcome.key)
        if current is None or outcome.rank() > current.rank():
            best[outcome.key] = outcome
    return list(best.values())


def review_priority(score: Optional[float]) -> int:
    return int(round((score or 0.0) * 100))


@dataclass
class LinkPlan:
    """Rows to write for one flush, partitioned by how they touch the link column."""

    new_links: List[ExternalListing] = field(default_factory=list)
    commercial_updates: List[ExternalListing] = field(default_factory=list)
    review_tasks: List[ReviewTask] = field(default_factory=list)
    conflicts: int = 0


def _pending_task(outcome: MatchOutcome, checked_at: str) -> ReviewTask:
    return ReviewTask(
        task_type=OFFER_LINK_TASK,
        source_listing_id=outcome.source_listing_id,
        priority=review_priority(outcome.score),
        reason=outcome.reason or "pending match",
        candidate_id=outcome.candidate_id,
        created_at=checked_at,
        payload={
            "title": outcome.title,
            "suggested_id": outcome.candidate_id,
            "suggested_name": outcome.candidate_name,
            "score": outcome.score,
            "scope": outcome.scope.value if outcome.scope else None,
        },
    )


def _conflict_task(outcome: MatchOutcome, current_id: str, checked_at: str) -> ReviewTask:
    return ReviewTask(
        task_type=OFFER_LINK_TASK,
        source_listing_id=outcome.source_listing_id,
        priority=review_priority(outcome.score),
        reason=f"conflict: linked to {current_id}, matcher suggests {outcome.candidate_id}",
        candidate_id=outcome.candidate_id,
        created_at=checked_at,
        payload={
            "title": outcome.title,
            "suggested_id": outcome.candidate_id,
            "suggested_name": outcome.candidate_name,
            "score": outcome.score,
            "current_id": current_id,
        },
    )


def plan_links(
    outcomes: Iterable[MatchOutcome],
    existing_links: Dict[Tuple[str, str], Optional[str]],
    checked_at: str,
) -> LinkPlan:
    """Apply the merge policy to deduplicated outcomes.

    An existing link is never replaced. When the matcher disagrees with it
    only the commercial fields are refreshed and an ``offer_link`` review task
    records the suggestion. Listings that are already linked get their
    commercial fields refreshed even when nothing usable matched.
    """

    plan = LinkPlan()
    for outcome in outcomes:
        current = existing_links.get(outcome.key)
        if outcome.links:
            if current is None:
                plan.new_links.append(outcome.listing(checked_at, outcome.candidate_id))
                continue
            plan.commercial_updates.append(outcome.listing(checked_at))
            if current != outcome.candidate_id:
                plan.conflicts += 1
                plan.review_tasks.append(_conflict_task(outcome, current, checked_at))
                logger.info(
                    "Kept existing link for %s", outcome.source_listing_id,
                    extra={"phase": "merge", "current_id": current, "suggested_id": outcome.candidate_id},
                )
        elif outcome.tier is Tier.PENDING:
            plan.commercial_updates.append(outcome.listing(checked_at))
            if current != outcome.candidate_id:
                plan.review_tasks.append(_pending_task(outcome, checked_at))
        elif current is not None:
            plan.commercial_updates.append(outcome.listing(checked_at))
    return plan
