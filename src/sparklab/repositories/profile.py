"""Profile repository for SparkLab backend.

Provides data access methods for Profile entities, including lazy creation and the
atomic quota counter increment.
"""

from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sparklab.core.timezone import utcnow
from sparklab.models.profile import Plan, Profile

logger = structlog.get_logger()


class ProfileRepository:
    """Repository for Profile entities.

    Methods:
    - get_by_id: Retrieve profile by user id
    - get_or_create: Fetch profile, creating it on first access
    - try_increment_usage: Conditional increment of the free-plan usage counter
    - set_plan: Change a profile's plan tier
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: UUID) -> Profile | None:
        """Retrieve profile by user id.

        Args:
            user_id: Auth subject id (also the profile's primary key)

        Returns:
            Profile if found, None otherwise
        """
        result = await self.session.execute(select(Profile).where(Profile.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: UUID, email: str = "") -> Profile:
        """Fetch the user's profile, creating a free-plan profile if none exists.

        The insert runs inside a SAVEPOINT. When a concurrent request created the
        row first, the primary key constraint rejects our insert, the savepoint is
        rolled back and the winner's row is re-read. The outer transaction stays
        usable either way.

        Args:
            user_id: Auth subject id
            email: Email claim from the auth token (stored on creation only)

        Returns:
            Existing or newly created Profile
        """
        profile = await self.get_by_id(user_id)
        if profile is not None:
            return profile

        try:
            async with self.session.begin_nested():
                profile = Profile(id=user_id, email=email, plan=Plan.FREE, used_generations=0)
                self.session.add(profile)
                await self.session.flush()
            logger.info("profile.created", user_id=str(user_id))
            return profile
        except IntegrityError:
            logger.info("profile.create_conflict", user_id=str(user_id))

        existing = await self.get_by_id(user_id)
        if existing is None:
            # Conflicting row vanished between insert and re-read
            raise LookupError(f"Profile {user_id} not found after duplicate-key conflict")
        return existing

    async def try_increment_usage(self, user_id: UUID, limit: int) -> int | None:
        """Consume one free-plan generation if the user is still under the limit.

        Single conditional UPDATE, so concurrent requests cannot both pass the
        check on the last remaining generation.

        Query:
            UPDATE profiles
            SET used_generations = used_generations + 1, updated_at = now
            WHERE id = :user_id AND plan = 'free' AND used_generations < :limit
            RETURNING used_generations

        Args:
            user_id: Profile to charge
            limit: Free-plan generation allowance

        Returns:
            New used_generations value, or None if no row matched (limit reached
            or plan is not free)
        """
        result = await self.session.execute(
            update(Profile)
            .where(
                Profile.id == user_id,  # type: ignore[arg-type]
                Profile.plan == Plan.FREE,  # type: ignore[arg-type]
                Profile.used_generations < limit,  # type: ignore[arg-type]
            )
            .values(used_generations=Profile.used_generations + 1, updated_at=utcnow())
            .returning(Profile.used_generations)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def set_plan(self, profile: Profile, plan: Plan) -> Profile:
        """Change a profile's plan tier (used_generations is kept for analytics).

        Args:
            profile: Profile entity to update
            plan: New plan tier

        Returns:
            Refreshed profile
        """
        profile.plan = plan
        profile.updated_at = utcnow()
        self.session.add(profile)
        await self.session.flush()
        await self.session.refresh(profile)
        return profile
