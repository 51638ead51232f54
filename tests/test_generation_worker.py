"""Generation worker and completion tests.

Covers:
- Successful engine run moves queued → success and completes the job
- Permanent engine errors fail the generation without retry
- Unexpected errors are retried until JOB_MAX_ATTEMPTS, then fail the generation
- Completion is idempotent
- Orphaned running jobs are picked up again after recovery
- Database errors after the claim return the job to pending
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from sparklab.core.config import Settings
from sparklab.models.generation import Generation, GenerationStatus, MediaType
from sparklab.models.generation_job import GenerationJob, JobStatus
from sparklab.models.profile import Profile
from sparklab.services.engines.simulator import EngineResult
from sparklab.services.generation_lifecycle import complete_generation
from sparklab.workers import generation_worker
from sparklab.workers.generation_worker import process_due_jobs, recover_orphaned_jobs


@pytest.fixture
def settings() -> Settings:
    return Settings().model_copy(  # type: ignore[call-arg]
        update={"job_max_attempts": 2, "job_retry_delay_seconds": 0, "worker_batch_size": 10}
    )


async def seed_job(
    session,
    engine: str = "image_engine_a",
    media_type: MediaType = MediaType.IMAGE,
    job_status: JobStatus = JobStatus.PENDING,
    generation_status: GenerationStatus = GenerationStatus.QUEUED,
    params: dict | None = None,
) -> tuple[Generation, GenerationJob]:
    profile = Profile(id=uuid4())
    session.add(profile)
    await session.flush()

    generation = Generation(
        user_id=profile.id,
        engine=engine,
        type=media_type,
        status=generation_status,
        prompt="a red fox",
        params=params or {},
    )
    session.add(generation)
    await session.flush()

    job = GenerationJob(generation_id=generation.id, status=job_status)
    session.add(job)
    await session.commit()
    return generation, job


async def reload(uow_factory, generation_id, job_id):
    async with await uow_factory() as uow:
        return (
            await uow.generations.get_by_id(generation_id),
            await uow.generation_jobs.get_by_id(job_id),
        )


@pytest.mark.asyncio
async def test_successful_run(session, session_factory, uow_factory, settings):
    generation, job = await seed_job(session, params={"outputCount": 2, "seed": 9})

    assert await process_due_jobs(session_factory, settings) == 1

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.SUCCESS
    assert stored.result_url == "https://example.com/fake.jpg"
    assert stored.result_meta["urls"] == ["https://example.com/fake.jpg"] * 2
    assert stored.result_meta["seed"] == 9
    assert stored.raw_response["stub"] is True
    assert stored.raw_response["engineKey"] == "image_engine_a"
    assert stored_job.status == JobStatus.COMPLETED
    assert stored_job.completed_at is not None

    # Nothing left to claim
    assert await process_due_jobs(session_factory, settings) == 0


@pytest.mark.asyncio
async def test_engine_mismatch_fails_without_retry(session, session_factory, uow_factory, settings):
    generation, job = await seed_job(session, engine="video_engine_a", media_type=MediaType.IMAGE)

    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert "only supports video" in stored.error
    assert stored_job.status == JobStatus.FAILED
    assert stored_job.attempts == 1


@pytest.mark.asyncio
async def test_unregistered_engine_fails(session, session_factory, uow_factory, settings):
    generation, job = await seed_job(session, engine="retired_engine")

    await process_due_jobs(session_factory, settings)

    stored, _ = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert "Invalid engine" in stored.error


@pytest.mark.asyncio
async def test_unexpected_error_retries_then_fails(
    session, session_factory, uow_factory, settings, monkeypatch
):
    def broken_engine(*args, **kwargs):
        raise RuntimeError("provider timeout")

    monkeypatch.setattr(generation_worker, "run_engine", broken_engine)
    generation, job = await seed_job(session)

    await process_due_jobs(session_factory, settings)
    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.RUNNING
    assert stored_job.status == JobStatus.PENDING
    assert stored_job.error_data["error"] == "provider timeout"

    await process_due_jobs(session_factory, settings)
    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert "after 2 attempts" in stored.error
    assert stored_job.status == JobStatus.FAILED
    assert stored_job.attempts == 2


@pytest.mark.asyncio
async def test_complete_is_idempotent(session, uow_factory):
    generation, _ = await seed_job(session)
    result = EngineResult(url="https://example.com/fake.jpg", meta={"urls": []})

    async with await uow_factory() as uow:
        assert await complete_generation(uow, generation.id, result=result) is True

    async with await uow_factory() as uow:
        assert await complete_generation(uow, generation.id, error="late failure") is False

    async with await uow_factory() as uow:
        stored = await uow.generations.get_by_id(generation.id)
        assert stored.status == GenerationStatus.SUCCESS
        assert stored.error is None


@pytest.mark.asyncio
async def test_complete_requires_exactly_one_outcome(session, uow_factory):
    generation, _ = await seed_job(session)

    with pytest.raises(ValueError):
        async with await uow_factory() as uow:
            await complete_generation(uow, generation.id)


@pytest.mark.asyncio
async def test_job_for_terminal_generation_is_closed(
    session, session_factory, uow_factory, settings
):
    generation, job = await seed_job(session, generation_status=GenerationStatus.FAILED)

    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert stored_job.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_orphaned_job_is_recovered_and_processed(
    session, session_factory, uow_factory, settings
):
    generation, job = await seed_job(
        session, job_status=JobStatus.RUNNING, generation_status=GenerationStatus.RUNNING
    )

    # Running jobs are invisible to claiming until recovered
    assert await process_due_jobs(session_factory, settings) == 0
    assert await recover_orphaned_jobs(session_factory) == 1
    assert await process_due_jobs(session_factory, settings) == 1

    stored, _ = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.SUCCESS


def connection_lost() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


@pytest.mark.asyncio
async def test_database_error_on_start_returns_job_to_pending(
    session, session_factory, uow_factory, settings, monkeypatch
):
    async def failing_start(uow, generation_id):
        raise connection_lost()

    monkeypatch.setattr(generation_worker, "start_generation", failing_start)
    generation, job = await seed_job(session)

    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.QUEUED
    assert stored_job.status == JobStatus.PENDING
    assert stored_job.attempts == 1
    assert stored_job.error_data["error_type"] == "OperationalError"

    # Next poll picks it up again once the database is back
    monkeypatch.undo()
    assert await process_due_jobs(session_factory, settings) == 1
    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.SUCCESS
    assert stored_job.status == JobStatus.COMPLETED


@pytest.mark.asyncio
async def test_database_error_on_start_fails_after_max_attempts(
    session, session_factory, uow_factory, settings, monkeypatch
):
    async def failing_start(uow, generation_id):
        raise connection_lost()

    monkeypatch.setattr(generation_worker, "start_generation", failing_start)
    generation, job = await seed_job(session)

    await process_due_jobs(session_factory, settings)
    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert "after 2 attempts" in stored.error
    assert stored_job.status == JobStatus.FAILED


@pytest.mark.asyncio
async def test_failed_write_of_permanent_error_is_retried(
    session, session_factory, uow_factory, settings, monkeypatch
):
    real_complete = generation_worker.complete_generation
    calls = []

    async def flaky_complete(uow, generation_id, result=None, error=None):
        calls.append(error)
        if len(calls) == 1:
            raise connection_lost()
        return await real_complete(uow, generation_id, result=result, error=error)

    monkeypatch.setattr(generation_worker, "complete_generation", flaky_complete)
    generation, job = await seed_job(session, engine="video_engine_a", media_type=MediaType.IMAGE)

    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.RUNNING
    assert stored_job.status == JobStatus.PENDING

    await process_due_jobs(session_factory, settings)

    stored, stored_job = await reload(uow_factory, generation.id, job.id)
    assert stored.status == GenerationStatus.FAILED
    assert "only supports video" in stored.error
    assert stored_job.status == JobStatus.FAILED
