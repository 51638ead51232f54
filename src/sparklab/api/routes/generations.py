"""Generation API endpoints.

This module implements REST endpoints for the generation lifecycle:
- POST /api/generations - Validate, charge quota and queue a generation
- GET /api/generations - Paginated history of the caller's generations
- GET /api/generations/{generation_id} - Poll a single generation

Engine work happens in the generation worker; these endpoints never block on it.
"""

from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from sparklab.api.dependencies import CurrentUser, get_settings, get_uow_factory
from sparklab.api.schemas import CamelModel, UtcDatetime
from sparklab.core.config import Settings
from sparklab.models.generation import Generation, GenerationStatus, MediaType
from sparklab.services import generation_lifecycle
from sparklab.services.exceptions import PersistenceError, SparkLabError

logger = structlog.get_logger()
router = APIRouter(prefix="/api/generations", tags=["generations"])


# Request/Response Models


class CreateGenerationRequest(CamelModel):
    """Request model for creating a generation.

    engineKey is the canonical field; engine is accepted as an alias. Presence and
    length checks happen in the lifecycle so every failure maps to a domain code.
    """

    engine_key: Optional[str] = Field(default=None, description="Registry key of the engine")
    engine: Optional[str] = Field(default=None, description="Alias of engineKey")
    type: Optional[str] = Field(default=None, description="Media type: image or video")
    prompt: Optional[str] = Field(default=None, description="Text prompt (1-1000 characters)")
    params: Optional[dict[str, Any]] = Field(
        default=None, description="Engine parameters (aspectRatio, steps, outputCount, ...)"
    )


class CreatedGenerationDTO(CamelModel):
    """Generation as returned right after creation."""

    id: UUID
    engine: str
    type: MediaType
    status: GenerationStatus
    url: Optional[str] = None
    meta: Optional[dict[str, Any]] = None
    prompt: str
    params: dict[str, Any]
    created_at: UtcDatetime

    @classmethod
    def from_model(cls, generation: Generation) -> "CreatedGenerationDTO":
        return cls(
            id=generation.id,
            engine=generation.engine,
            type=generation.type,
            status=generation.status,
            url=generation.result_url,
            meta=generation.result_meta,
            prompt=generation.prompt,
            params=generation.params,
            created_at=generation.created_at,
        )


class GenerationDTO(CreatedGenerationDTO):
    """Generation as returned by get and list."""

    error: Optional[str] = None
    updated_at: UtcDatetime

    @classmethod
    def from_model(cls, generation: Generation) -> "GenerationDTO":
        return cls(
            id=generation.id,
            engine=generation.engine,
            type=generation.type,
            status=generation.status,
            url=generation.result_url,
            meta=generation.result_meta,
            prompt=generation.prompt,
            params=generation.params,
            error=generation.error,
            created_at=generation.created_at,
            updated_at=generation.updated_at,
        )


class PaginationDTO(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


class GenerationListResponse(CamelModel):
    """Response model for paginated generation history."""

    data: list[GenerationDTO]
    pagination: PaginationDTO


# API Endpoints


@router.post("", response_model=CreatedGenerationDTO, status_code=status.HTTP_201_CREATED)
async def create_generation(
    request: CreateGenerationRequest,
    user: CurrentUser,
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
) -> CreatedGenerationDTO:
    """Queue a new generation for the caller.

    Validation, the quota check, the usage increment and the generation/job inserts
    run in one transaction: a rejected request leaves no trace.

    Raises:
        InvalidRequestError 400: Missing fields, bad prompt or params
        InvalidEngineError 400: Unknown engine key
        InvalidTypeError 400: Unknown type or engine/type mismatch
        LimitReachedError 403: Free-plan quota exhausted
        PersistenceError 500: Database error

    Example:
        POST /api/generations
        {"engineKey": "image_engine_a", "type": "image", "prompt": "a red fox",
         "params": {"outputCount": 2}}

        Response 201:
        {"id": "...", "engine": "image_engine_a", "type": "image", "status": "queued",
         "url": null, "meta": null, "prompt": "a red fox",
         "params": {"outputCount": 2}, "createdAt": "..."}
    """
    command = generation_lifecycle.CreateGenerationCommand(
        engine_key=request.engine_key,
        engine=request.engine,
        type=request.type,
        prompt=request.prompt,
        params=request.params,
    )
    try:
        async with await uow_factory() as uow:
            generation = await generation_lifecycle.create_generation(
                uow, user, command, engine_delay_seconds=settings.engine_delay_seconds
            )
        return CreatedGenerationDTO.from_model(generation)

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "generation.create_db_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to create generation")
    except Exception as e:
        logger.error(
            "generation.create_unexpected_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to create generation. Please try again later.")


@router.get("", response_model=GenerationListResponse, status_code=status.HTTP_200_OK)
async def list_generations(
    user: CurrentUser,
    limit: int = Query(default=20, ge=1, le=100, description="Page size"),
    offset: int = Query(default=0, ge=0, description="Items to skip"),
    uow_factory=Depends(get_uow_factory),
) -> GenerationListResponse:
    """List the caller's generations, newest first."""
    try:
        async with await uow_factory() as uow:
            page = await generation_lifecycle.list_generations(
                uow, user.id, limit=limit, offset=offset
            )
            data = [GenerationDTO.from_model(generation) for generation in page.items]

        logger.debug("generation.listed", user_id=str(user.id), total=page.total, offset=offset)
        return GenerationListResponse(
            data=data,
            pagination=PaginationDTO(
                total=page.total, limit=page.limit, offset=page.offset, has_more=page.has_more
            ),
        )

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "generation.list_db_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to fetch generations")
    except Exception as e:
        logger.error(
            "generation.list_unexpected_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to fetch generations. Please try again later.")


@router.get("/{generation_id}", response_model=GenerationDTO, status_code=status.HTTP_200_OK)
async def get_generation(
    generation_id: str,
    user: CurrentUser,
    uow_factory=Depends(get_uow_factory),
) -> GenerationDTO:
    """Fetch one of the caller's generations.

    Unknown ids, malformed ids and generations owned by someone else all return
    404 NOT_FOUND.
    """
    try:
        async with await uow_factory() as uow:
            generation = await generation_lifecycle.get_generation(uow, generation_id, user.id)
            return GenerationDTO.from_model(generation)

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "generation.get_db_error",
            generation_id=generation_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to fetch generation")
    except Exception as e:
        logger.error(
            "generation.get_unexpected_error",
            generation_id=generation_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to fetch generation. Please try again later.")
