"""pytest fixtures for SparkLab backend tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL instance with schema
- utc_timezone: Autouse fixture enforcing UTC timezone
- session: Function-scoped database session with table truncation
- session_factory / uow_factory: Function-scoped factories bound to the test database
- make_token / auth_headers: Access tokens signed like the auth platform's
"""

import os

# Must be set before sparklab.app is imported (settings are read at import time)
os.environ["APP_ENV"] = "test"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-with-enough-length-for-hs256"
os.environ["AUTH_JWT_AUDIENCE"] = "authenticated"
os.environ["ENGINE_DELAY_SECONDS"] = "0"
os.environ["JOB_RETRY_DELAY_SECONDS"] = "0"

import time
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from jose import jwt
from sqlalchemy import create_engine, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import SQLModel
from testcontainers.postgres import PostgresContainer

from sparklab.core.database import setup_db_session

TEST_JWT_SECRET = os.environ["AUTH_JWT_SECRET"]


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with all tables created.

    Container starts once per test session and is reused across all tests.
    Tables are created with a synchronous engine to stay out of the event loop.
    """
    with PostgresContainer(
        image="postgres:17",
        username="test",
        password="test",
        dbname="test_sparklab",
    ).with_bind_ports(5432, None) as container:
        db_url = container.get_connection_url(driver="psycopg")

        engine = create_engine(db_url)
        SQLModel.metadata.create_all(engine)
        engine.dispose()

        yield container


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest_asyncio.fixture(scope="function")
async def session(postgres_container) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session with table truncation.

    Each test gets a fresh session with empty tables (truncated between tests).
    """
    db_url = postgres_container.get_connection_url(driver="psycopg")
    session_factory = setup_db_session(db_url, pool_size=5)

    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes from the test
        await session.rollback()

        # Order matters: delete from dependent tables first
        await session.execute(text("DELETE FROM generation_jobs"))
        await session.execute(text("DELETE FROM generations"))
        await session.execute(text("DELETE FROM engine_connections"))
        await session.execute(text("DELETE FROM profiles"))
        await session.commit()


@pytest_asyncio.fixture(scope="function")
async def session_factory(session: AsyncSession) -> async_sessionmaker[AsyncSession]:
    """Session factory on the test database (for workers and concurrent requests)."""
    return async_sessionmaker(bind=session.bind, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session_factory):
    """Provide function-scoped UnitOfWork factory.

    Returns a callable that creates UoW instances on new sessions.
    """
    from sparklab.uow import create_uow_factory

    return create_uow_factory(session_factory)


def make_token(
    user_id: UUID | str,
    email: str = "user@example.com",
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
) -> str:
    """Encode an access token the way the auth platform does."""
    now = int(time.time())
    claims = {
        "sub": str(user_id),
        "email": email,
        "aud": audience,
        "role": "authenticated",
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_auth_headers():
    """Build an Authorization header for any user id (token kwargs pass through)."""

    def _make(user_id: UUID | str, **kwargs) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}

    return _make


@pytest.fixture
def auth_headers(user_id, make_auth_headers):
    """Authorization header for user_id."""
    return make_auth_headers(user_id)


@pytest_asyncio.fixture
async def test_client(uow_factory):
    """Provide AsyncClient for API endpoints backed by the test database."""
    from httpx import ASGITransport, AsyncClient

    from sparklab.app import app

    # Lifespan does not run under ASGITransport; inject what routes read from app.state
    app.state.uow_factory = uow_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
