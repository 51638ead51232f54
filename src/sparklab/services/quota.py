"""Quota policy for generation requests.

Pure function of (plan, used_generations); it never touches the database. The
matching write is ProfileRepository.try_increment_usage, which re-checks the same
limit inside a single conditional UPDATE.
"""

from dataclasses import dataclass
from typing import Literal, Optional, Union

from sparklab.models.profile import Plan

FREE_PLAN_GENERATION_LIMIT = 5

UNLIMITED = "unlimited"

Remaining = Union[int, Literal["unlimited"]]


@dataclass(frozen=True)
class QuotaDecision:
    """Outcome of evaluating the quota policy.

    Attributes:
        allowed: True if a new generation may be created
        remaining: Generations left before this request (int), or "unlimited"
        reason: Machine-readable deny reason (None when allowed)
    """

    allowed: bool
    remaining: Remaining
    reason: Optional[str] = None


def remaining_generations(plan: Plan, used_generations: int) -> Remaining:
    """Derived remaining count shown on the profile.

    Returns:
        max(0, limit - used) for free plans, "unlimited" for paid plans
    """
    if plan == Plan.PAID:
        return UNLIMITED
    return max(0, FREE_PLAN_GENERATION_LIMIT - used_generations)


def evaluate_quota(plan: Plan, used_generations: int) -> QuotaDecision:
    """Decide whether a user may create another generation.

    Args:
        plan: User's plan tier
        used_generations: Generations already consumed

    Returns:
        QuotaDecision: allowed with remaining count, or denied with LIMIT_REACHED
    """
    remaining = remaining_generations(plan, used_generations)
    if remaining == UNLIMITED:
        return QuotaDecision(allowed=True, remaining=UNLIMITED)
    if remaining > 0:
        return QuotaDecision(allowed=True, remaining=remaining)
    return QuotaDecision(allowed=False, remaining=0, reason="LIMIT_REACHED")
