# src/mr_later/billing/plans.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final


class PlanTier(StrEnum):
    FREE = "free"
    PRO = "pro"


@dataclass(frozen=True, slots=True)
class PlanLimits:
    max_active_tasks: int
    max_joined_challenges: int


PLAN_LIMITS: Final[dict[PlanTier, PlanLimits]] = {
    PlanTier.FREE: PlanLimits(max_active_tasks=50, max_joined_challenges=2),
    PlanTier.PRO: PlanLimits(max_active_tasks=10000, max_joined_challenges=1000),
}


def get_plan_tier(plan: str | None) -> PlanTier:
    """Anything other than an explicit 'pro' is the free tier."""
    return PlanTier.PRO if plan == PlanTier.PRO.value else PlanTier.FREE


def limits_for(plan: str | None) -> PlanLimits:
    return PLAN_LIMITS[get_plan_tier(plan)]
