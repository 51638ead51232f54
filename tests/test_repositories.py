"""Repository layer tests for SparkLab backend.

Tests focus on complex logic:
- Lazy profile creation under concurrent first access
- Conditional quota increment (never exceeds the limit, even under races)
- Owner-scoped, newest-first pagination
- Engine connection UPSERT behavior
- Job claiming and orphan recovery

Simple CRUD operations are not tested (trust SQLAlchemy/PostgreSQL).
"""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from sparklab.core.timezone import utcnow
from sparklab.models.generation import Generation, MediaType
from sparklab.models.generation_job import GenerationJob, JobStatus
from sparklab.models.profile import Plan, Profile
from sparklab.repositories.generation import GenerationRepository
from sparklab.repositories.profile import ProfileRepository


async def seed_profile(session, used: int = 0, plan: Plan = Plan.FREE) -> Profile:
    profile = Profile(id=uuid4(), email="seed@example.com", plan=plan, used_generations=used)
    session.add(profile)
    await session.commit()
    return profile


async def seed_generation(session, user_id, created_offset_seconds: int = 0) -> Generation:
    generation = Generation(
        user_id=user_id,
        engine="image_engine_a",
        type=MediaType.IMAGE,
        prompt=f"prompt {created_offset_seconds}",
        params={},
        created_at=utcnow() + timedelta(seconds=created_offset_seconds),
    )
    session.add(generation)
    await session.commit()
    return generation


@pytest.mark.asyncio
async def test_get_or_create_creates_free_profile(session):
    user_id = uuid4()
    repo = ProfileRepository(session)

    profile = await repo.get_or_create(user_id, "fox@example.com")
    await session.commit()

    assert profile.id == user_id
    assert profile.plan == Plan.FREE
    assert profile.used_generations == 0

    again = await repo.get_or_create(user_id, "other@example.com")
    assert again.email == "fox@example.com"


@pytest.mark.asyncio
async def test_concurrent_first_access_creates_one_profile(session, uow_factory):
    """Two first requests racing to create the profile both succeed with the same row."""
    user_id = uuid4()

    async def fetch():
        async with await uow_factory() as uow:
            profile = await uow.profiles.get_or_create(user_id, "fox@example.com")
            return (profile.id, profile.plan, profile.used_generations)

    results = await asyncio.gather(fetch(), fetch(), fetch())

    assert len(set(results)) == 1
    assert results[0] == (user_id, Plan.FREE, 0)


@pytest.mark.asyncio
async def test_try_increment_usage_stops_at_limit(session):
    profile = await seed_profile(session, used=3)
    repo = ProfileRepository(session)

    assert await repo.try_increment_usage(profile.id, 5) == 4
    assert await repo.try_increment_usage(profile.id, 5) == 5
    assert await repo.try_increment_usage(profile.id, 5) is None
    await session.commit()

    session.expire_all()
    stored = await repo.get_by_id(profile.id)
    assert stored.used_generations == 5


@pytest.mark.asyncio
async def test_try_increment_usage_ignores_paid_profiles(session):
    profile = await seed_profile(session, used=9, plan=Plan.PAID)
    repo = ProfileRepository(session)

    assert await repo.try_increment_usage(profile.id, 5) is None


@pytest.mark.asyncio
async def test_concurrent_increments_never_exceed_limit(session, uow_factory):
    """With one generation left, exactly one of several racing increments wins."""
    profile = await seed_profile(session, used=4)

    async def increment():
        async with await uow_factory() as uow:
            return await uow.profiles.try_increment_usage(profile.id, 5)

    results = await asyncio.gather(*(increment() for _ in range(4)))

    assert results.count(5) == 1
    assert results.count(None) == 3

    async with await uow_factory() as uow:
        stored = await uow.profiles.get_by_id(profile.id)
        assert stored.used_generations == 5


@pytest.mark.asyncio
async def test_list_for_owner_is_newest_first_and_scoped(session):
    owner = await seed_profile(session)
    stranger = await seed_profile(session)
    for offset in range(5):
        await seed_generation(session, owner.id, created_offset_seconds=offset)
    await seed_generation(session, stranger.id)

    repo = GenerationRepository(session)
    page, total = await repo.list_for_owner_paginated(owner.id, offset=1, limit=2)

    assert total == 5
    assert [g.prompt for g in page] == ["prompt 3", "prompt 2"]
    assert all(g.user_id == owner.id for g in page)


@pytest.mark.asyncio
async def test_get_for_owner_hides_foreign_generations(session):
    owner = await seed_profile(session)
    stranger = await seed_profile(session)
    generation = await seed_generation(session, owner.id)

    repo = GenerationRepository(session)
    assert await repo.get_for_owner(generation.id, owner.id) is not None
    assert await repo.get_for_owner(generation.id, stranger.id) is None


@pytest.mark.asyncio
async def test_engine_connection_upsert(session, uow_factory):
    owner = await seed_profile(session)

    async with await uow_factory() as uow:
        first = await uow.engine_connections.upsert(owner.id, "image_engine_a", "connected")
        first_id = first.id

    async with await uow_factory() as uow:
        second = await uow.engine_connections.upsert(owner.id, "image_engine_a", "disconnected")
        await uow.engine_connections.upsert(owner.id, "image_engine_b", "connected")

    assert second.id == first_id
    assert second.status == "disconnected"

    async with await uow_factory() as uow:
        connections = await uow.engine_connections.list_for_owner(owner.id)
        assert [(c.engine_key, c.status) for c in connections] == [
            ("image_engine_a", "disconnected"),
            ("image_engine_b", "connected"),
        ]


@pytest.mark.asyncio
async def test_claim_due_skips_future_and_locked_jobs(session, uow_factory):
    owner = await seed_profile(session)
    due_generation = await seed_generation(session, owner.id)
    future_generation = await seed_generation(session, owner.id, created_offset_seconds=1)
    session.add(GenerationJob(generation_id=due_generation.id, run_after=utcnow()))
    session.add(
        GenerationJob(
            generation_id=future_generation.id, run_after=utcnow() + timedelta(minutes=5)
        )
    )
    await session.commit()

    async with await uow_factory() as first_uow:
        claimed = await first_uow.generation_jobs.claim_due(limit=10)
        assert [job.generation_id for job in claimed] == [due_generation.id]
        assert claimed[0].status == JobStatus.RUNNING
        assert claimed[0].attempts == 1

        # Second worker while the first still holds the row lock
        async with await uow_factory() as second_uow:
            assert await second_uow.generation_jobs.claim_due(limit=10) == []


@pytest.mark.asyncio
async def test_recover_orphaned_resets_running_jobs(session, uow_factory):
    owner = await seed_profile(session)
    generation = await seed_generation(session, owner.id)
    session.add(GenerationJob(generation_id=generation.id, status=JobStatus.RUNNING, attempts=1))
    await session.commit()

    async with await uow_factory() as uow:
        assert await uow.generation_jobs.recover_orphaned() == 1

    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_generation(generation.id)
        assert job.status == JobStatus.PENDING
        assert job.attempts == 1
