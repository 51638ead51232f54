"""Generation repository for SparkLab backend.

Provides data access methods for Generation entities. Every read issued on behalf
of a user carries the owner in its WHERE clause.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sparklab.models.generation import Generation


class GenerationRepository:
    """Repository for Generation entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, generation: Generation) -> Generation:
        """Persist new generation to database.

        Args:
            generation: Generation entity to persist

        Returns:
            Persisted generation with generated ID
        """
        self.session.add(generation)
        await self.session.flush()
        return generation

    async def get_by_id(self, generation_id: UUID) -> Generation | None:
        """Retrieve generation by UUID regardless of owner (worker use only)."""
        result = await self.session.execute(
            select(Generation).where(Generation.id == generation_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, generation_id: UUID) -> Generation | None:
        """Retrieve generation by UUID and lock its row until the transaction ends.

        Args:
            generation_id: Generation's unique identifier

        Returns:
            Locked Generation if found, None otherwise
        """
        result = await self.session.execute(
            select(Generation)
            .where(Generation.id == generation_id)  # type: ignore[arg-type]
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_owner(self, generation_id: UUID, user_id: UUID) -> Generation | None:
        """Retrieve generation by UUID, scoped to its owner.

        A generation owned by someone else is indistinguishable from a missing one.

        Args:
            generation_id: Generation's unique identifier
            user_id: Caller's user id

        Returns:
            Generation if found and owned by user_id, None otherwise
        """
        result = await self.session.execute(
            select(Generation).where(
                Generation.id == generation_id,  # type: ignore[arg-type]
                Generation.user_id == user_id,  # type: ignore[arg-type]
            )
        )
        return result.scalar_one_or_none()

    async def list_for_owner_paginated(
        self, user_id: UUID, offset: int = 0, limit: int = 20
    ) -> tuple[list[Generation], int]:
        """Retrieve a user's generations with pagination and total count.

        Args:
            user_id: Owner's user id
            offset: Number of generations to skip (default: 0)
            limit: Maximum number of generations to return (default: 20)

        Returns:
            Tuple of (generations list, total count) where:
            - generations: Current page ordered by created_at (newest first)
            - total: Total number of the user's generations (across all pages)
        """
        count_stmt = select(func.count(Generation.id)).where(Generation.user_id == user_id)  # type: ignore[arg-type]
        count_result = await self.session.execute(count_stmt)
        total = count_result.scalar() or 0

        data_stmt = (
            select(Generation)
            .where(Generation.user_id == user_id)  # type: ignore[arg-type]
            .order_by(Generation.created_at.desc(), Generation.id.desc())  # type: ignore[attr-defined]
            .offset(offset)
            .limit(limit)
        )
        data_result = await self.session.execute(data_stmt)
        generations = list(data_result.scalars().all())

        return (generations, total)
