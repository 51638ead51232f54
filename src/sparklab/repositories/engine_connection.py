"""EngineConnection repository for SparkLab backend."""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from sparklab.core.timezone import utcnow
from sparklab.models.engine_connection import EngineConnection


class EngineConnectionRepository:
    """Repository for EngineConnection entities.

    Provides UPSERT behavior (INSERT ... ON CONFLICT DO UPDATE) keyed on
    (user_id, engine_key).
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def list_for_owner(self, user_id: UUID) -> list[EngineConnection]:
        """Retrieve all engine connections for a user, ordered by engine key."""
        result = await self.session.execute(
            select(EngineConnection)
            .where(EngineConnection.user_id == user_id)  # type: ignore[arg-type]
            .order_by(EngineConnection.engine_key.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def upsert(self, user_id: UUID, engine_key: str, status: str) -> EngineConnection:
        """Create or update the connection status for (user, engine).

        Query explanation:
        - INSERT: Try to insert new row
        - ON CONFLICT (user_id, engine_key): If the pair already exists
        - DO UPDATE: Overwrite status and updated_at

        Args:
            user_id: Owner's user id
            engine_key: Engine registry key
            status: Connection status string shown by the client

        Returns:
            EngineConnection as stored after the upsert
        """
        now = utcnow()
        stmt = insert(EngineConnection).values(
            id=uuid4(),
            user_id=user_id,
            engine_key=engine_key,
            status=status,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "engine_key"],
            set_={"status": status, "updated_at": now},
        )
        await self.session.execute(stmt)
        await self.session.flush()

        result = await self.session.execute(
            select(EngineConnection)
            .where(
                EngineConnection.user_id == user_id,  # type: ignore[arg-type]
                EngineConnection.engine_key == engine_key,  # type: ignore[arg-type]
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()
