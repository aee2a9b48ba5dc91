"""Rank tier resolution and promotion planning."""

from __future__ import annotations

import enum
from bisect import bisect_right
from dataclasses import dataclass
from decimal import Decimal
from typing import AbstractSet, Iterable

from .config import RankTier


class RankTable:
    """Immutable, threshold-ordered table of rank tiers."""

    def __init__(self, tiers: Iterable[RankTier]) -> None:
        ordered = sorted(tiers, key=lambda tier: tier.threshold)

        thresholds = [tier.threshold for tier in ordered]
        if len(set(thresholds)) != len(thresholds):
            raise ValueError("Rank thresholds must be unique")

        role_ids = [tier.role_id for tier in ordered]
        if len(set(role_ids)) != len(role_ids):
            raise ValueError("Rank role IDs must be unique")
        if any(role_id <= 0 for role_id in role_ids):
            raise ValueError("Rank role IDs must be positive integers")

        self._tiers: tuple[RankTier, ...] = tuple(ordered)
        self._thresholds: tuple[Decimal, ...] = tuple(thresholds)
        self.role_ids: frozenset[int] = frozenset(role_ids)

    def __iter__(self):
        return iter(self._tiers)

    def __len__(self) -> int:
        return len(self._tiers)

    @property
    def tiers(self) -> tuple[RankTier, ...]:
        return self._tiers

    def resolve(self, total: Decimal) -> RankTier | None:
        """Return the tier with the greatest threshold not exceeding ``total``."""
        index = bisect_right(self._thresholds, total)
        if index == 0:
            return None
        return self._tiers[index - 1]


class PromotionStatus(enum.Enum):
    PROMOTED = "promoted"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class PromotionResult:
    status: PromotionStatus
    tier: RankTier | None = None

    @property
    def promoted(self) -> bool:
        return self.status is PromotionStatus.PROMOTED


NO_CHANGE = PromotionResult(PromotionStatus.NO_CHANGE)


@dataclass(frozen=True)
class PromotionPlan:
    """Role operations needed to make a member hold exactly the target tier.

    ``to_remove`` must be executed in full before ``to_add``.
    """

    target: RankTier | None
    to_remove: tuple[int, ...] = ()
    to_add: tuple[int, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.to_remove and not self.to_add

    @property
    def result(self) -> PromotionResult:
        if self.to_add:
            return PromotionResult(PromotionStatus.PROMOTED, self.target)
        return NO_CHANGE


def plan_promotion(
    held_role_ids: Iterable[int],
    target: RankTier | None,
    rank_role_ids: AbstractSet[int],
) -> PromotionPlan:
    """Diff the rank roles a member holds against the resolved target tier."""
    held_ranks = {role_id for role_id in held_role_ids if role_id in rank_role_ids}
    target_id = target.role_id if target else None

    to_remove = tuple(sorted(role_id for role_id in held_ranks if role_id != target_id))
    to_add: tuple[int, ...] = ()
    if target_id is not None and target_id not in held_ranks:
        to_add = (target_id,)

    return PromotionPlan(target=target, to_remove=to_remove, to_add=to_add)
