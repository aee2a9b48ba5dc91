from decimal import Decimal

import pytest

from ease_core.config import RankTier
from ease_core.constants import DEFAULT_RANKS
from ease_core.ranks import NO_CHANGE, PromotionStatus, RankTable, plan_promotion

from conftest import TIER_50_ROLE, TIER_100_ROLE, TIER_500_ROLE, TIER_1000_ROLE


@pytest.mark.parametrize(
    ("total", "expected_role"),
    [
        ("0", None),
        ("49.99", None),
        ("50", TIER_50_ROLE),
        ("50.01", TIER_50_ROLE),
        ("99.99", TIER_50_ROLE),
        ("100", TIER_100_ROLE),
        ("999.99", TIER_500_ROLE),
        ("1000", TIER_1000_ROLE),
        ("250000", TIER_1000_ROLE),
    ],
)
def test_resolve_returns_highest_qualifying_tier(rank_table, total, expected_role):
    tier = rank_table.resolve(Decimal(total))
    assert (tier.role_id if tier else None) == expected_role


def test_resolve_is_monotonic(rank_table):
    thresholds = [tier.threshold for tier in rank_table]
    previous = -1
    for cents in range(0, 120_000, 137):
        tier = rank_table.resolve(Decimal(cents) / 100)
        index = thresholds.index(tier.threshold) if tier else -1
        assert index >= previous
        previous = index


def test_table_sorts_unordered_tiers():
    table = RankTable([
        RankTier(Decimal("100"), 2),
        RankTier(Decimal("1"), 1),
    ])
    assert [tier.role_id for tier in table] == [1, 2]


@pytest.mark.parametrize(
    "tiers",
    [
        [RankTier(Decimal("1"), 1), RankTier(Decimal("1"), 2)],
        [RankTier(Decimal("1"), 1), RankTier(Decimal("2"), 1)],
        [RankTier(Decimal("1"), 0)],
    ],
)
def test_table_rejects_invalid_tiers(tiers):
    with pytest.raises(ValueError):
        RankTable(tiers)


def test_default_ranks_build_a_valid_table():
    table = RankTable([RankTier(Decimal(threshold), role_id) for threshold, role_id in DEFAULT_RANKS])
    assert len(table) == 9
    assert table.resolve(Decimal("0.99")) is None
    assert table.resolve(Decimal("1")).role_id == DEFAULT_RANKS[0][1]
    assert table.resolve(Decimal("20000")).role_id == DEFAULT_RANKS[-1][1]


def test_plan_for_first_promotion_adds_target_only(rank_table):
    # total 40 -> 50: no rank held, tier-50 reached
    target = rank_table.resolve(Decimal("50.00"))

    plan = plan_promotion(set(), target, rank_table.role_ids)

    assert plan.to_add == (TIER_50_ROLE,)
    assert plan.to_remove == ()
    assert plan.result.status is PromotionStatus.PROMOTED
    assert plan.result.tier == target


def test_plan_for_unchanged_tier_is_empty(rank_table):
    target = rank_table.resolve(Decimal("50.01"))

    plan = plan_promotion({TIER_50_ROLE}, target, rank_table.role_ids)

    assert plan.is_empty
    assert plan.result == NO_CHANGE


def test_plan_removes_every_lower_rank_before_adding(rank_table):
    target = rank_table.resolve(Decimal("600"))

    plan = plan_promotion({TIER_50_ROLE, TIER_100_ROLE, 777}, target, rank_table.role_ids)

    assert plan.to_remove == (TIER_50_ROLE, TIER_100_ROLE)
    assert plan.to_add == (TIER_500_ROLE,)


def test_plan_ignores_non_rank_roles(rank_table):
    target = rank_table.resolve(Decimal("100"))

    plan = plan_promotion({TIER_100_ROLE, 777, 888}, target, rank_table.role_ids)

    assert plan.is_empty


def test_plan_is_idempotent_after_application(rank_table):
    target = rank_table.resolve(Decimal("1500"))
    held = {TIER_50_ROLE, TIER_500_ROLE}

    plan = plan_promotion(held, target, rank_table.role_ids)
    held = (held - set(plan.to_remove)) | set(plan.to_add)

    assert held == {TIER_1000_ROLE}
    assert plan_promotion(held, target, rank_table.role_ids).is_empty


def test_plan_with_no_target_strips_rank_roles(rank_table):
    plan = plan_promotion({TIER_50_ROLE}, None, rank_table.role_ids)

    assert plan.to_remove == (TIER_50_ROLE,)
    assert plan.to_add == ()
    assert plan.result == NO_CHANGE
