"""Engine catalog and per-user engine connection endpoints.

- GET /api/engines - Public list of registered engines
- GET /api/engine-connections - Caller's connection statuses
- POST /api/engine-connections - Upsert the caller's status for one engine
"""

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, status
from pydantic import Field
from sqlalchemy.exc import SQLAlchemyError

from sparklab.api.dependencies import CurrentUser, get_uow_factory
from sparklab.api.schemas import CamelModel, UtcDatetime
from sparklab.models.engine_connection import EngineConnection
from sparklab.models.generation import MediaType
from sparklab.services.engines.registry import EngineDescriptor, get_engine, list_engines
from sparklab.services.exceptions import InvalidRequestError, PersistenceError, SparkLabError

logger = structlog.get_logger()
router = APIRouter(tags=["engines"])

MAX_CONNECTION_STATUS_LENGTH = 50


class EngineDTO(CamelModel):
    """Public view of an engine descriptor."""

    key: str
    label: str
    type: MediaType
    supports_reference_image: bool
    supports_masks: bool
    max_outputs: int

    @classmethod
    def from_descriptor(cls, descriptor: EngineDescriptor) -> "EngineDTO":
        return cls(
            key=descriptor.key,
            label=descriptor.label,
            type=descriptor.media_type,
            supports_reference_image=descriptor.supports_reference_image,
            supports_masks=descriptor.supports_masks,
            max_outputs=descriptor.max_outputs,
        )


class EnginesResponse(CamelModel):
    engines: list[EngineDTO]


class EngineConnectionDTO(CamelModel):
    id: UUID
    engine_key: str
    status: str
    created_at: UtcDatetime
    updated_at: UtcDatetime

    @classmethod
    def from_model(cls, connection: EngineConnection) -> "EngineConnectionDTO":
        return cls(
            id=connection.id,
            engine_key=connection.engine_key,
            status=connection.status,
            created_at=connection.created_at,
            updated_at=connection.updated_at,
        )


class EngineConnectionsResponse(CamelModel):
    connections: list[EngineConnectionDTO]


class UpsertEngineConnectionRequest(CamelModel):
    engine_key: Optional[str] = Field(default=None, description="Registry key of the engine")
    status: Optional[str] = Field(default=None, description="Display status, e.g. connected")


class EngineConnectionResponse(CamelModel):
    connection: EngineConnectionDTO


@router.get("/api/engines", response_model=EnginesResponse, status_code=status.HTTP_200_OK)
async def get_engines() -> EnginesResponse:
    """List every registered engine. No authentication required."""
    return EnginesResponse(
        engines=[EngineDTO.from_descriptor(descriptor) for descriptor in list_engines()]
    )


@router.get(
    "/api/engine-connections",
    response_model=EngineConnectionsResponse,
    status_code=status.HTTP_200_OK,
)
async def get_engine_connections(
    user: CurrentUser, uow_factory=Depends(get_uow_factory)
) -> EngineConnectionsResponse:
    """List the caller's engine connection statuses, ordered by engine key."""
    try:
        async with await uow_factory() as uow:
            connections = await uow.engine_connections.list_for_owner(user.id)
        return EngineConnectionsResponse(
            connections=[EngineConnectionDTO.from_model(c) for c in connections]
        )

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "engine_connection.list_db_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to fetch engine connections")
    except Exception as e:
        logger.error(
            "engine_connection.list_unexpected_error",
            user_id=str(user.id),
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to fetch engine connections. Please try again later.")


@router.post(
    "/api/engine-connections",
    response_model=EngineConnectionResponse,
    status_code=status.HTTP_200_OK,
)
async def upsert_engine_connection(
    request: UpsertEngineConnectionRequest,
    user: CurrentUser,
    uow_factory=Depends(get_uow_factory),
) -> EngineConnectionResponse:
    """Create or update the caller's connection status for one engine.

    Raises:
        InvalidRequestError 400: engineKey or status missing, or status too long
        InvalidEngineError 400: Unknown engine key
    """
    if not request.engine_key or not request.status or not request.status.strip():
        raise InvalidRequestError("Missing required fields: engineKey, status")
    if len(request.status) > MAX_CONNECTION_STATUS_LENGTH:
        raise InvalidRequestError(
            f"Status must be at most {MAX_CONNECTION_STATUS_LENGTH} characters"
        )
    engine = get_engine(request.engine_key)

    try:
        async with await uow_factory() as uow:
            # Connections reference the profile row
            await uow.profiles.get_or_create(user.id, user.email)
            connection = await uow.engine_connections.upsert(
                user_id=user.id, engine_key=engine.key, status=request.status
            )

        logger.info(
            "engine_connection.upserted",
            user_id=str(user.id),
            engine_key=engine.key,
            status=connection.status,
        )
        return EngineConnectionResponse(connection=EngineConnectionDTO.from_model(connection))

    except SparkLabError:
        raise
    except SQLAlchemyError as e:
        logger.error(
            "engine_connection.upsert_db_error",
            user_id=str(user.id),
            engine_key=engine.key,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise PersistenceError("Failed to save engine connection")
    except Exception as e:
        logger.error(
            "engine_connection.upsert_unexpected_error",
            user_id=str(user.id),
            engine_key=engine.key,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise SparkLabError("Failed to save engine connection. Please try again later.")
