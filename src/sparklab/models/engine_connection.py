"""EngineConnection entity - display-only connection status per user and engine."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from sparklab.core.timezone import utcnow


class EngineConnection(SQLModel, table=True):
    """EngineConnection records whether a user marked an engine as connected.

    Shown as "Connected"/"Not Connected" by the client; generation logic never reads it.
    """

    __tablename__ = "engine_connections"  # type: ignore[assignment]
    __table_args__ = (
        UniqueConstraint("user_id", "engine_key", name="uq_engine_connections_user_engine"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="profiles.id", index=True)
    engine_key: str = Field(max_length=50)
    status: str = Field(max_length=50)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
