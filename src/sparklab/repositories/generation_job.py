"""GenerationJob repository for SparkLab backend.

Provides data access methods for GenerationJob entities with worker coordination via
FOR UPDATE SKIP LOCKED.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sparklab.core.timezone import utcnow
from sparklab.models.generation_job import GenerationJob, JobStatus


class GenerationJobRepository:
    """Repository for GenerationJob entities.

    Claiming uses FOR UPDATE SKIP LOCKED so concurrent workers receive
    non-overlapping sets of jobs.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: GenerationJob) -> GenerationJob:
        """Persist new generation job to database.

        Args:
            job: GenerationJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: UUID) -> GenerationJob | None:
        """Retrieve generation job by UUID.

        Args:
            job_id: Job's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_generation(self, generation_id: UUID) -> GenerationJob | None:
        """Retrieve the job that drives a generation.

        Args:
            generation_id: Generation's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.generation_id == generation_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def claim_due(self, limit: int = 10, now: datetime | None = None) -> list[GenerationJob]:
        """Lock due pending jobs and mark them running.

        Query explanation:
        - WHERE status = 'pending' AND run_after <= now: Jobs whose delay elapsed
        - ORDER BY run_after ASC: Process oldest first (FIFO)
        - LIMIT: Batch size for worker
        - FOR UPDATE SKIP LOCKED: Lock rows, skip already locked ones

        The caller must commit to release the locks; from then on the jobs are
        owned by this worker through their running status.

        Args:
            limit: Maximum number of jobs to claim (default: 10)
            now: Reference time (default: current UTC time)

        Returns:
            Claimed jobs with status running and attempts incremented
        """
        now = now or utcnow()
        result = await self.session.execute(
            select(GenerationJob)
            .where(
                GenerationJob.status == JobStatus.PENDING,  # type: ignore[arg-type]
                GenerationJob.run_after <= now,  # type: ignore[arg-type]
            )
            .order_by(GenerationJob.run_after.asc())  # type: ignore[attr-defined]
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        jobs = list(result.scalars().all())

        for job in jobs:
            job.status = JobStatus.RUNNING
            job.attempts += 1
            self.session.add(job)
        await self.session.flush()
        return jobs

    async def mark_completed(self, job: GenerationJob) -> None:
        """Mark job as completed."""
        job.status = JobStatus.COMPLETED
        job.completed_at = utcnow()
        self.session.add(job)
        await self.session.flush()

    async def mark_failed(self, job: GenerationJob, error_dict: dict) -> None:
        """Mark job as permanently failed with error details.

        Args:
            job: GenerationJob entity to update
            error_dict: Error details to store in error_data field
        """
        job.status = JobStatus.FAILED
        job.error_data = error_dict
        job.completed_at = utcnow()
        self.session.add(job)
        await self.session.flush()

    async def reschedule(self, job: GenerationJob, error_dict: dict, run_after: datetime) -> None:
        """Return job to pending for another attempt after a transient failure.

        Args:
            job: GenerationJob entity to update
            error_dict: Details of the failed attempt
            run_after: Earliest time the next attempt may run
        """
        job.status = JobStatus.PENDING
        job.error_data = error_dict
        job.run_after = run_after
        self.session.add(job)
        await self.session.flush()

    async def recover_orphaned(self) -> int:
        """Reset jobs stuck in 'running' status after a worker crash.

        Query:
            UPDATE generation_jobs
            SET status = 'pending'
            WHERE status = 'running'

        Returns:
            Number of jobs reset
        """
        result = await self.session.execute(
            update(GenerationJob)
            .where(GenerationJob.status == JobStatus.RUNNING)  # type: ignore[arg-type]
            .values(status=JobStatus.PENDING)
        )
        return result.rowcount  # type: ignore[attr-defined]
