"""Profile entity - one row per user with plan tier and usage counter."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlmodel import Field, SQLModel

from sparklab.core.timezone import utcnow


class Plan(str, Enum):
    """Subscription tier."""

    FREE = "free"
    PAID = "paid"


class Profile(SQLModel, table=True):
    """Profile tracks a user's plan and how many generations they have used.

    The primary key is the auth subject id, so at most one row per user exists
    regardless of how many requests race to create it.
    """

    __tablename__ = "profiles"  # type: ignore[assignment]

    id: UUID = Field(primary_key=True)
    email: str = Field(default="", max_length=320)
    plan: Plan = Field(default=Plan.FREE)
    used_generations: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
