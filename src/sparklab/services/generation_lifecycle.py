"""Generation lifecycle: create → validate → quota → persist → run engine → complete.

Every function takes a UnitOfWork and leaves commit/rollback to it, so a request
that fails validation or quota leaves no rows behind and a successful create
persists the usage increment, the generation and its job together.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional
from uuid import UUID

import structlog

from sparklab.models.generation import Generation, GenerationStatus, MediaType
from sparklab.models.generation_job import GenerationJob
from sparklab.models.profile import Plan
from sparklab.services.auth_token import AuthenticatedUser
from sparklab.services.engines.registry import EngineDescriptor, get_engine
from sparklab.services.engines.simulator import EngineResult
from sparklab.services.engines.validation import validate_params, validate_prompt
from sparklab.services.exceptions import (
    InvalidRequestError,
    InvalidTypeError,
    LimitReachedError,
    NotFoundError,
)
from sparklab.services.quota import FREE_PLAN_GENERATION_LIMIT, evaluate_quota
from sparklab.uow import UnitOfWork

logger = structlog.get_logger()


@dataclass(frozen=True)
class CreateGenerationCommand:
    """Raw create request. engine_key and engine are accepted aliases."""

    prompt: Optional[str]
    type: Optional[str]
    engine_key: Optional[str] = None
    engine: Optional[str] = None
    params: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ValidatedGeneration:
    engine: EngineDescriptor
    media_type: MediaType
    prompt: str
    params: dict[str, Any]


@dataclass(frozen=True)
class GenerationPage:
    """One page of a user's generation history."""

    items: list[Generation]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


def validate_create(command: CreateGenerationCommand) -> ValidatedGeneration:
    """Validate a create request without touching storage.

    Order: required fields, prompt length, engine key, media type, engine params.

    Raises:
        InvalidRequestError: Missing fields, bad prompt, or params the engine rejects
        InvalidEngineError: Unknown engine key
        InvalidTypeError: Unknown type, or type the engine does not produce
    """
    engine_key = command.engine_key or command.engine
    if not engine_key or not command.type or not command.prompt:
        raise InvalidRequestError("Missing required fields: engineKey, type, prompt")

    prompt = validate_prompt(command.prompt)
    engine = get_engine(engine_key)

    try:
        media_type = MediaType(command.type)
    except ValueError:
        valid = ", ".join(t.value for t in MediaType)
        raise InvalidTypeError(f"Invalid type. Valid options: {valid}")

    if media_type != engine.media_type:
        raise InvalidTypeError(
            f"Engine {engine.key} only supports {engine.media_type.value} generations"
        )

    params = validate_params(engine, command.params or {})
    return ValidatedGeneration(engine=engine, media_type=media_type, prompt=prompt, params=params)


async def create_generation(
    uow: UnitOfWork,
    user: AuthenticatedUser,
    command: CreateGenerationCommand,
    engine_delay_seconds: float = 2.0,
) -> Generation:
    """Create a queued generation and schedule its engine run.

    Args:
        uow: Unit of work for the request
        user: Authenticated caller
        command: Raw create request
        engine_delay_seconds: Delay before the job becomes due

    Returns:
        Persisted Generation in queued status

    Raises:
        InvalidRequestError, InvalidEngineError, InvalidTypeError: Validation failed
        LimitReachedError: Free-plan quota exhausted (counter untouched)
    """
    validated = validate_create(command)

    profile = await uow.profiles.get_or_create(user.id, user.email)
    decision = evaluate_quota(profile.plan, profile.used_generations)
    if not decision.allowed:
        logger.info(
            "generation.limit_reached",
            user_id=str(user.id),
            used_generations=profile.used_generations,
        )
        raise LimitReachedError()

    if profile.plan == Plan.FREE:
        used = await uow.profiles.try_increment_usage(user.id, FREE_PLAN_GENERATION_LIMIT)
        if used is None:
            # Either a concurrent request consumed the last free generation, or a
            # concurrent upgrade committed after the profile was read
            await uow.session.refresh(profile)
            if profile.plan != Plan.PAID:
                logger.info("generation.limit_reached", user_id=str(user.id), reason="race_lost")
                raise LimitReachedError()

    generation = Generation(
        user_id=user.id,
        engine=validated.engine.key,
        type=validated.media_type,
        status=GenerationStatus.QUEUED,
        prompt=validated.prompt,
        params=validated.params,
    )
    await uow.generations.add(generation)

    job = GenerationJob(
        generation_id=generation.id,
        run_after=generation.created_at + timedelta(seconds=engine_delay_seconds),
    )
    await uow.generation_jobs.add(job)

    logger.info(
        "generation.created",
        generation_id=str(generation.id),
        user_id=str(user.id),
        engine=generation.engine,
        type=generation.type.value,
        plan=profile.plan.value,
        remaining_before=decision.remaining,
    )
    return generation


async def start_generation(uow: UnitOfWork, generation_id: UUID) -> Generation:
    """Move a queued generation to running (no-op if already running or terminal).

    Raises:
        NotFoundError: If the generation does not exist
    """
    generation = await uow.generations.get_for_update(generation_id)
    if generation is None:
        raise NotFoundError("Generation not found")

    if generation.status == GenerationStatus.QUEUED:
        generation.mark_running()
        uow.session.add(generation)
        await uow.session.flush()
        logger.info("generation.running", generation_id=str(generation_id))
    return generation


async def complete_generation(
    uow: UnitOfWork,
    generation_id: UUID,
    result: Optional[EngineResult] = None,
    error: Optional[str] = None,
) -> bool:
    """Record the engine outcome on a generation.

    Idempotent: only the first completion takes effect. The row is locked while
    checking, so two concurrent completions cannot both apply.

    Args:
        uow: Unit of work
        generation_id: Generation to complete
        result: Engine result for success (mutually exclusive with error)
        error: Error message for failure

    Returns:
        True if the generation changed, False if it was already terminal

    Raises:
        ValueError: If neither or both of result and error are given
        NotFoundError: If the generation does not exist
    """
    if (result is None) == (error is None):
        raise ValueError("Exactly one of result or error is required")

    generation = await uow.generations.get_for_update(generation_id)
    if generation is None:
        raise NotFoundError("Generation not found")

    if generation.status.is_terminal:
        logger.info(
            "generation.complete_ignored",
            generation_id=str(generation_id),
            status=generation.status.value,
        )
        return False

    if result is not None:
        if generation.status == GenerationStatus.QUEUED:
            generation.mark_running()
        generation.mark_succeeded(result.url, result.meta, result.raw_response)
    else:
        generation.mark_failed(error or "")

    uow.session.add(generation)
    await uow.session.flush()

    logger.info(
        "generation.completed",
        generation_id=str(generation_id),
        status=generation.status.value,
        result_url=generation.result_url,
        error=generation.error,
    )
    return True


async def get_generation(uow: UnitOfWork, generation_id: UUID | str, user_id: UUID) -> Generation:
    """Fetch a generation owned by user_id.

    Raises:
        NotFoundError: If the id is malformed, absent, or owned by someone else
    """
    try:
        parsed_id = generation_id if isinstance(generation_id, UUID) else UUID(generation_id)
    except ValueError:
        raise NotFoundError("Generation not found")

    generation = await uow.generations.get_for_owner(parsed_id, user_id)
    if generation is None:
        raise NotFoundError("Generation not found")
    return generation


async def list_generations(
    uow: UnitOfWork, user_id: UUID, limit: int = 20, offset: int = 0
) -> GenerationPage:
    """List a user's generations, newest first."""
    items, total = await uow.generations.list_for_owner_paginated(
        user_id=user_id, offset=offset, limit=limit
    )
    return GenerationPage(items=items, total=total, limit=limit, offset=offset)
