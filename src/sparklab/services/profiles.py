"""Profile operations: usage summary and plan upgrade."""

import structlog

from sparklab.models.profile import Plan, Profile
from sparklab.services.auth_token import AuthenticatedUser
from sparklab.uow import UnitOfWork

logger = structlog.get_logger()


async def get_profile(uow: UnitOfWork, user: AuthenticatedUser) -> Profile:
    """Return the caller's profile, creating a free-plan profile on first access."""
    return await uow.profiles.get_or_create(user.id, user.email)


async def upgrade_plan(uow: UnitOfWork, user: AuthenticatedUser) -> Profile:
    """Move the caller to the paid plan.

    No payment is collected here; billing is out of band. Upgrading an already
    paid profile is a no-op. used_generations is left as is.
    """
    profile = await uow.profiles.get_or_create(user.id, user.email)
    if profile.plan == Plan.PAID:
        logger.info("profile.upgrade_noop", user_id=str(user.id))
        return profile

    profile = await uow.profiles.set_plan(profile, Plan.PAID)
    logger.info(
        "profile.upgraded",
        user_id=str(user.id),
        plan=profile.plan.value,
        used_generations=profile.used_generations,
    )
    return profile
