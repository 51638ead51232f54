"""Profile API endpoints.

- GET /api/profile - Plan, usage and remaining generations for the caller
- POST /api/profile/upgrade - Switch the caller to the paid plan (no payment collected)
"""

from typing import Literal, Union
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError

from sparklab.api.dependencies import CurrentUser, get_uow_factory
from sparklab.api.schemas import CamelModel, UtcDatetime
from sparklab.models.profile import Plan, Profile
from sparklab.services import profiles
from sparklab.services.exceptions import PersistenceError, SparkLabError
from sparklab.services.quota import remaining_generations

logger = structlog.get_logger()
router = APIRouter(prefix="/api/profile", tags=["profile"])


class ProfileDTO(CamelModel):
    """Response model for the caller's profile."""

    id: UUID
    email: str
    plan: Plan
    used_generations: int
    remaining_generations: Union[int, Literal["unlimited"]]
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @classmethod
    def from_model(cls, profile: Profile) -> "ProfileDTO":
        return cls(
            id=profile.id,
            email=profile.email,
            plan=profile.plan,
            used_generations=profile.used_generations,
            remaining_generations=remaining_generations(profile.plan, profile.used_generations),
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


@router.get("", response_model=ProfileDTO, status_code=status.HTTP_200_OK)
async def get_profile(user: CurrentUser, uow_factory=Depends(get_uow_factory)) -> ProfileDTO:
    """Return the caller's profile, creating a free-plan profile on first access.

    Example:
        GET /api/profile

        Response 200:
        {"id": "...", "email": "a@b.c", "plan": "free", "usedGenerations": 2,
         "remainingGenerations": 3, "createdAt": "...", "updatedAt": "..."}
    """
    try:
        async with await uow_factory() as uow:
            profile = await profiles.get_profile(uow, user)
        return ProfileDTO.from_model(profile)

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "profile.get_db_error", user_id=str(user.id), error=str(e), error_type=type(e).__name__
        )
        raise PersistenceError("Failed to load profile")
    except Exception as e:
        logger.error(
            "profile.get_unexpected_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to load profile. Please try again later.")


@router.post("/upgrade", response_model=ProfileDTO, status_code=status.HTTP_200_OK)
async def upgrade_plan(user: CurrentUser, uow_factory=Depends(get_uow_factory)) -> ProfileDTO:
    """Move the caller to the paid plan. Idempotent."""
    try:
        async with await uow_factory() as uow:
            profile = await profiles.upgrade_plan(uow, user)
        return ProfileDTO.from_model(profile)

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "profile.upgrade_db_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to upgrade plan")
    except Exception as e:
        logger.error(
            "profile.upgrade_unexpected_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to upgrade plan. Please try again later.")
