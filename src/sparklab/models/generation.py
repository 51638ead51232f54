"""Generation entity - one user request to produce media, with lifecycle status tracking."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, Text
from sqlmodel import Field, SQLModel

from sparklab.core.timezone import utcnow


class MediaType(str, Enum):
    """Kind of media an engine produces."""

    IMAGE = "image"
    VIDEO = "video"


class GenerationStatus(str, Enum):
    """Generation lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationStatus.SUCCESS, GenerationStatus.FAILED)


ALLOWED_TRANSITIONS: dict[GenerationStatus, frozenset[GenerationStatus]] = {
    GenerationStatus.QUEUED: frozenset({GenerationStatus.RUNNING, GenerationStatus.FAILED}),
    GenerationStatus.RUNNING: frozenset({GenerationStatus.SUCCESS, GenerationStatus.FAILED}),
    GenerationStatus.SUCCESS: frozenset(),
    GenerationStatus.FAILED: frozenset(),
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid generation state transition."""

    pass


class Generation(SQLModel, table=True):
    """Generation represents one prompt submitted to an engine and its eventual result."""

    __tablename__ = "generations"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="profiles.id", index=True)
    engine: str = Field(max_length=50)
    type: MediaType
    status: GenerationStatus = Field(default=GenerationStatus.QUEUED, index=True)
    prompt: str = Field(sa_column=Column(Text, nullable=False))
    params: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    result_url: Optional[str] = Field(default=None)
    result_meta: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    raw_response: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    error: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    def transition_to(self, new_status: GenerationStatus) -> None:
        """Move to new_status if the lifecycle allows it.

        Raises:
            InvalidStateTransition: If new_status is not reachable from the current status
        """
        if new_status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransition(
                f"Cannot transition generation from {self.status.value} to {new_status.value}."
            )
        self.status = new_status
        self.updated_at = utcnow()

    def mark_running(self) -> None:
        """Transition from queued to running.

        Raises:
            InvalidStateTransition: If current status is not queued
        """
        self.transition_to(GenerationStatus.RUNNING)

    def mark_succeeded(
        self,
        result_url: str,
        result_meta: dict[str, Any],
        raw_response: Optional[dict[str, Any]] = None,
    ) -> None:
        """Transition from running to success and record the engine result.

        Raises:
            InvalidStateTransition: If current status is not running
            ValueError: If result_url is empty
        """
        if not result_url:
            raise ValueError("result_url is required")
        self.transition_to(GenerationStatus.SUCCESS)
        self.result_url = result_url
        self.result_meta = result_meta
        self.raw_response = raw_response

    def mark_failed(self, error_message: str) -> None:
        """Transition from any non-terminal state to failed.

        Args:
            error_message: Error description (truncated to 1000 characters)

        Raises:
            InvalidStateTransition: If current status is already terminal (success/failed)
        """
        self.transition_to(GenerationStatus.FAILED)
        self.error = error_message[:1000]
