"""Database session factory setup."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

# Registers every table with SQLModel.metadata
import sparklab.models  # noqa: F401


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: PostgreSQL connection URL (postgresql+psycopg://...)
        pool_size: Maximum number of connections in the pool (default: 20)

    Returns:
        Async session factory for creating database sessions
    """
    engine = create_async_engine(
        db_url,
        pool_size=pool_size,
        max_overflow=0,  # No overflow beyond pool_size
        pool_pre_ping=True,  # Verify connections before using
        echo=False,  # Don't log SQL queries (use structlog instead)
    )

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )

    return session_factory


async def create_schema(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Create all tables that do not exist yet.

    Safe to call repeatedly (CREATE ... IF NOT EXISTS semantics via checkfirst).

    Args:
        session_factory: Async session factory bound to the target database
    """
    async with session_factory() as session:
        connection = await session.connection()
        await connection.run_sync(SQLModel.metadata.create_all)
        await session.commit()
