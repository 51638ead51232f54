"""Generation worker: drives queued generations to completion.

Polls generation_jobs for due pending rows, runs the engine for each generation
and records the outcome.

Each job is processed with its own short-lived units of work rather than one
transaction spanning the whole job:

1. Claim: due jobs are locked (FOR UPDATE SKIP LOCKED), marked running and
   committed, so concurrent workers never pick the same job.
2. Start: the generation moves queued → running and is committed before the
   engine runs, so pollers observe the running state.
3. Finish: the engine result (or error) and the job's final status are written
   together.

Error handling:
- EngineError / unknown engine: permanent, generation and job marked failed
- Any other exception, including a failed database write at any
  step after the claim: job rescheduled after JOB_RETRY_DELAY_SECONDS until
  JOB_MAX_ATTEMPTS is reached, then the generation is failed
"""

import asyncio
import time
from datetime import timedelta
from typing import Callable
from uuid import UUID

import structlog

from sparklab.core.config import Settings
from sparklab.core.timezone import utcnow
from sparklab.services.engines.registry import get_engine
from sparklab.services.engines.simulator import run_engine
from sparklab.services.exceptions import EngineError, InvalidEngineError, NotFoundError
from sparklab.services.generation_lifecycle import complete_generation, start_generation
from sparklab.uow import create_uow_factory

logger = structlog.get_logger(__name__)


async def retry_or_fail_job(
    job_id: UUID,
    error: Exception,
    uow_factory: Callable,
    settings: Settings,
) -> None:
    """Reschedule a job after an unexpected error, or fail it once attempts run out.

    Args:
        job_id: Claimed job (status running)
        error: Exception raised while processing the job
        uow_factory: Factory for units of work
        settings: Application settings (retry policy)

    Raises:
        ValueError: If the job row disappeared
    """
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)
        if job is None:
            raise ValueError(f"Generation job {job_id} not found") from error

        error_data = {
            "error": str(error),
            "error_type": type(error).__name__,
            "attempt": job.attempts,
        }

        if job.attempts >= settings.job_max_attempts:
            await complete_generation(
                uow,
                job.generation_id,
                error=f"Generation failed after {job.attempts} attempts: {error}",
            )
            await uow.generation_jobs.mark_failed(job, error_data)
            logger.error(
                "generation.engine_failed",
                generation_id=str(job.generation_id),
                error_type=type(error).__name__,
                error_message=str(error),
                attempt_number=job.attempts,
                max_attempts_reached=True,
            )
        else:
            run_after = utcnow() + timedelta(seconds=settings.job_retry_delay_seconds)
            await uow.generation_jobs.reschedule(job, error_data, run_after)
            logger.warning(
                "generation.engine_retry",
                generation_id=str(job.generation_id),
                error_type=type(error).__name__,
                error_message=str(error),
                attempt_number=job.attempts,
                retry_after=run_after.isoformat(),
            )


async def process_single_job(
    job_id: UUID,
    session_factory: Callable,
    settings: Settings,
) -> None:
    """Run the engine for one claimed job and complete its generation.

    Any unexpected error after the claim (database or engine) goes through
    retry_or_fail_job, so a claimed job never stays running.

    Args:
        job_id: Claimed job (status running)
        session_factory: Factory function to create new database sessions
        settings: Application settings (retry policy)

    Raises:
        ValueError: If the job row disappeared
    """
    start_time = time.time()
    uow_factory = create_uow_factory(session_factory)

    try:
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is None:
                raise ValueError(f"Generation job {job_id} not found")
            generation_id = job.generation_id
            attempt_number = job.attempts

            try:
                generation = await start_generation(uow, generation_id)
            except NotFoundError:
                await uow.generation_jobs.mark_failed(job, {"error": "Generation not found"})
                logger.error("generation.job_orphaned", job_id=str(job_id))
                return

            if generation.status.is_terminal:
                await uow.generation_jobs.mark_completed(job)
                logger.info(
                    "generation.already_terminal",
                    generation_id=str(generation_id),
                    status=generation.status.value,
                )
                return

            engine_key = generation.engine
            media_type = generation.type
            params = generation.params
    except Exception as e:
        logger.warning(
            "generation.start_failed",
            job_id=str(job_id),
            error_type=type(e).__name__,
            error_message=str(e),
        )
        await retry_or_fail_job(job_id, e, uow_factory, settings)
        return

    logger.info(
        "generation.engine_started",
        generation_id=str(generation_id),
        engine=engine_key,
        attempt_number=attempt_number,
    )

    try:
        engine = get_engine(engine_key)
        result = run_engine(engine, media_type, params)
    except (EngineError, InvalidEngineError) as e:
        message = getattr(e, "message", None) or str(e)
        try:
            async with await uow_factory() as uow:
                await complete_generation(uow, generation_id, error=message)
                job = await uow.generation_jobs.get_by_id(job_id)
                if job is not None:
                    await uow.generation_jobs.mark_failed(
                        job, {"error": message, "error_type": type(e).__name__}
                    )
        except Exception as write_error:
            await retry_or_fail_job(job_id, write_error, uow_factory, settings)
            return

        logger.error(
            "generation.engine_failed",
            generation_id=str(generation_id),
            engine=engine_key,
            error_type=type(e).__name__,
            error_message=message,
            attempt_number=attempt_number,
        )
        return
    except Exception as e:
        await retry_or_fail_job(job_id, e, uow_factory, settings)
        return

    try:
        async with await uow_factory() as uow:
            await complete_generation(uow, generation_id, result=result)
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is not None:
                await uow.generation_jobs.mark_completed(job)
    except Exception as e:
        await retry_or_fail_job(job_id, e, uow_factory, settings)
        return

    logger.info(
        "generation.engine_succeeded",
        generation_id=str(generation_id),
        engine=engine_key,
        result_url=result.url,
        duration_seconds=time.time() - start_time,
        attempt_number=attempt_number,
    )


async def process_due_jobs(
    session_factory: Callable,
    settings: Settings,
) -> int:
    """Claim a batch of due jobs and process them concurrently.

    Claiming commits immediately, so the row locks are held only for the claim
    itself. Each job is then processed in its own sessions.

    Args:
        session_factory: Factory function to create new database sessions
        settings: Application settings (batch size, retry policy)

    Returns:
        Number of jobs claimed
    """
    uow_factory = create_uow_factory(session_factory)
    async with await uow_factory() as uow:
        jobs = await uow.generation_jobs.claim_due(limit=settings.worker_batch_size)
        job_ids = [job.id for job in jobs]

    if not job_ids:
        return 0

    tasks = [process_single_job(job_id, session_factory, settings) for job_id in job_ids]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    # Successes and handled failures are logged in process_single_job
    for job_id, result in zip(job_ids, results):
        if isinstance(result, Exception):
            logger.error(
                "generation.job_crashed",
                job_id=str(job_id),
                error=str(result),
                error_type=type(result).__name__,
            )

    return len(job_ids)


async def recover_orphaned_jobs(session_factory: Callable) -> int:
    """Reset jobs stuck in 'running' status on startup.

    A crash between claim and completion leaves jobs running with no worker
    owning them. Their generations stay queued or running and are picked up
    again on the next claim.

    Returns:
        Number of jobs reset
    """
    uow_factory = create_uow_factory(session_factory)
    async with await uow_factory() as uow:
        recovered_count = await uow.generation_jobs.recover_orphaned()

    if recovered_count > 0:
        logger.info("worker.recovery", orphaned_jobs_reset=recovered_count)
    return recovered_count


async def run_generation_worker(
    session_factory: Callable,
    settings: Settings,
) -> None:
    """Main worker loop for generations.

    Recovers orphaned jobs, then polls at POLL_INTERVAL_SECONDS until cancelled.

    Args:
        session_factory: Factory function that creates database sessions
        settings: Application settings (poll interval, batch size, retry policy)
    """
    await recover_orphaned_jobs(session_factory)

    logger.info(
        "worker.started",
        worker="generation",
        poll_interval=settings.poll_interval_seconds,
        batch_size=settings.worker_batch_size,
    )

    try:
        while True:
            try:
                await process_due_jobs(session_factory, settings)
                await asyncio.sleep(settings.poll_interval_seconds)

            except asyncio.CancelledError:
                raise

            except Exception as e:
                # Unexpected error in polling loop - log and continue with backoff
                logger.error(
                    "worker.error",
                    worker="generation",
                    error_type=type(e).__name__,
                    error_message=str(e),
                    exc_info=True,
                )
                await asyncio.sleep(5)

    except asyncio.CancelledError:
        logger.info("worker.stopped", worker="generation")
        raise
