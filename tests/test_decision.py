import pytest

from catalog_sync.decision import (
    BRAND_SCOPED,
    CATEGORY_SCOPED,
    OFFER_LINK_TASK,
    Thresholds,
    brand_containment,
    decide,
    dedup_outcomes,
    plan_links,
    review_priority,
)
from catalog_sync.matcher import MatchResult
from catalog_sync.models import IndexScope, MatchOutcome, Tier

CHECKED_AT = "2026-01-01T00:00:00+00:00"


def match(score, name="Sennheiser HD 600", candidate_id="c1"):
    return MatchResult(id=candidate_id, name=name, score=score, raw_score=score)


def outcome(external_id="1", tier=Tier.AUTO, candidate_id="P2", score=0.9, **kwargs):
    return MatchOutcome(
        retailer_id="shop",
        external_id=external_id,
        title="Sennheiser HD 600",
        tier=tier,
        candidate_id=candidate_id,
        candidate_name="Sennheiser HD 600",
        score=score,
        scope=IndexScope.BRAND,
        price=kwargs.pop("price", 299.0),
        in_stock=True,
        **kwargs,
    )


@pytest.mark.parametrize("auto,pending", [(0.5, 0.5), (0.9, -0.1), (1.1, 0.5), (0.6, 0.7)])
def test_thresholds_reject_invalid_ordering(auto, pending):
    with pytest.raises(ValueError):
        Thresholds(auto=auto, pending=pending)


def test_category_scope_is_at_least_as_strict_as_brand_scope():
    assert CATEGORY_SCOPED.auto >= BRAND_SCOPED.auto
    assert CATEGORY_SCOPED.pending >= BRAND_SCOPED.pending


@pytest.mark.parametrize(
    "scope,score,tier",
    [
        (IndexScope.BRAND, 0.85, Tier.AUTO),
        (IndexScope.BRAND, 0.84, Tier.PENDING),
        (IndexScope.BRAND, 0.65, Tier.PENDING),
        (IndexScope.BRAND, 0.64, Tier.NONE),
        (IndexScope.CATEGORY, 0.92, Tier.AUTO),
        (IndexScope.CATEGORY, 0.91, Tier.PENDING),
        (IndexScope.CATEGORY, 0.75, Tier.PENDING),
        (IndexScope.CATEGORY, 0.74, Tier.NONE),
    ],
)
def test_tier_boundaries(scope, score, tier):
    decision = decide(match(score), scope, "headphone", "headphone", brand="Sennheiser")
    assert decision.tier is tier
    assert not decision.cross_category


def test_missing_brand_downgrades_auto_to_pending():
    decision = decide(match(0.97, name="HD 600"), IndexScope.BRAND, "headphone", "headphone", brand="Sennheiser")
    assert decision.tier is Tier.PENDING
    assert "missing" in decision.reason


def test_short_brands_are_not_checked():
    decision = decide(match(0.97, name="SP3000"), IndexScope.BRAND, "dap", "dap", brand="AK")
    assert decision.tier is Tier.AUTO


def test_brand_containment_accepts_compact_spelling():
    assert brand_containment("Audio-Technica", "AudioTechnica ATH-M50x")
    assert brand_containment(None, "Anything")
    assert not brand_containment("Focal", "Sennheiser HD 600")


def test_cross_category_match_is_never_accepted():
    decision = decide(match(1.0), IndexScope.BRAND, "headphone", "iem", brand="Sennheiser")
    assert decision.tier is Tier.NONE
    assert decision.cross_category


def test_no_match_is_none():
    assert decide(None, IndexScope.CATEGORY, "iem", None).tier is Tier.NONE


def test_dedup_keeps_best_ranked_outcome():
    low = outcome(tier=Tier.PENDING, score=0.70, candidate_id="P1")
    high = outcome(tier=Tier.AUTO, score=0.90, candidate_id="P2")
    other = outcome(external_id="2")

    result = dedup_outcomes([low, other, high])

    assert result == [high, other]


def test_dedup_ties_keep_first():
    first = outcome(candidate_id="P1")
    second = outcome(candidate_id="P2")
    assert dedup_outcomes([first, second]) == [first]


def test_review_priority_rounds_score():
    assert review_priority(0.874) == 87
    assert review_priority(None) == 0


def test_plan_links_never_replaces_existing_link():
    plan = plan_links([outcome(candidate_id="P2", price=249.0)], {("shop", "1"): "P1"}, CHECKED_AT)

    assert plan.new_links == []
    assert plan.conflicts == 1
    [update] = plan.commercial_updates
    assert update.canonical_product_id is None
    assert update.price == 249.0
    [task] = plan.review_tasks
    assert task.task_type == OFFER_LINK_TASK
    assert task.source_listing_id == "shop:1"
    assert task.payload["current_id"] == "P1"
    assert task.payload["suggested_id"] == "P2"
    assert task.priority == 90


def test_plan_links_agreeing_link_only_refreshes():
    plan = plan_links([outcome(candidate_id="P1")], {("shop", "1"): "P1"}, CHECKED_AT)
    assert plan.conflicts == 0
    assert plan.review_tasks == []
    assert len(plan.commercial_updates) == 1


def test_plan_links_links_unlinked_listing():
    plan = plan_links([outcome(candidate_id="P2")], {}, CHECKED_AT)
    [listing] = plan.new_links
    assert listing.canonical_product_id == "P2"
    assert listing.last_checked == CHECKED_AT
    assert plan.commercial_updates == []


def test_plan_links_pending_creates_review_task():
    pending = outcome(tier=Tier.PENDING, score=0.7, candidate_id="P3")
    plan = plan_links([pending], {}, CHECKED_AT)

    assert plan.new_links == []
    assert len(plan.commercial_updates) == 1
    [task] = plan.review_tasks
    assert task.candidate_id == "P3"
    assert task.priority == 70


def test_plan_links_pending_already_linked_to_suggestion_is_quiet():
    pending = outcome(tier=Tier.PENDING, score=0.7, candidate_id="P3")
    plan = plan_links([pending], {("shop", "1"): "P3"}, CHECKED_AT)
    assert plan.review_tasks == []


def test_plan_links_ignores_unmatched_outcomes():
    unmatched = outcome(tier=Tier.NONE, candidate_id=None, score=None)
    plan = plan_links([unmatched], {}, CHECKED_AT)
    assert not (plan.new_links or plan.commercial_updates or plan.review_tasks)


def test_plan_links_refreshes_linked_listing_without_a_match():
    unmatched = outcome(tier=Tier.NONE, candidate_id=None, score=None, price=199.0)
    plan = plan_links([unmatched], {("shop", "1"): "P1"}, CHECKED_AT)

    assert plan.new_links == []
    assert plan.review_tasks == []
    [update] = plan.commercial_updates
    assert update.canonical_product_id is None
    assert update.price == 199.0
    assert update.last_checked == CHECKED_AT
