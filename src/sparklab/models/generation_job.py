"""GenerationJob entity - durable outbox row that drives a generation to completion."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from sparklab.core.timezone import utcnow


class JobStatus(str, Enum):
    """Generation job status."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationJob(SQLModel, table=True):
    """GenerationJob schedules the engine run for a generation and tracks attempts.

    A job survives process restarts: pending jobs are picked up once run_after
    passes, and running jobs left behind by a crash are reset on worker startup.
    """

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    generation_id: UUID = Field(foreign_key="generations.id", unique=True, index=True)
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    attempts: int = Field(default=0, ge=0)
    run_after: datetime = Field(default_factory=utcnow, index=True)
    error_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = Field(default=None)
