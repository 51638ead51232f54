"""Prompt and parameter validation for generation requests.

Runs before quota is charged, so a rejected request never consumes a generation.
"""

from typing import Any

from sparklab.services.engines.registry import EngineDescriptor
from sparklab.services.exceptions import InvalidRequestError

MAX_PROMPT_LENGTH = 1000


def validate_prompt(prompt: str) -> str:
    """Validate prompt text for generation.

    Length is measured after trimming surrounding whitespace.

    Args:
        prompt: Text prompt from the user

    Returns:
        Validated prompt (unchanged if valid)

    Raises:
        InvalidRequestError: If prompt is not a string, blank, or exceeds 1000 characters
    """
    if not isinstance(prompt, str):
        raise InvalidRequestError(f"Prompt must be a string, got {type(prompt).__name__}")

    trimmed = prompt.strip()
    if not trimmed:
        raise InvalidRequestError("Prompt is required")

    if len(trimmed) > MAX_PROMPT_LENGTH:
        raise InvalidRequestError(
            f"Prompt must be at most {MAX_PROMPT_LENGTH} characters (got {len(trimmed)})"
        )

    return prompt


def validate_params(engine: EngineDescriptor, params: dict[str, Any]) -> dict[str, Any]:
    """Validate advanced parameters against the engine's capabilities.

    Params are an open bag; only keys with engine-level meaning are checked.
    outputCount is passed through as sent and clamped when the engine runs.

    Raises:
        InvalidRequestError: If a reference image is sent to an engine without
            reference support
    """
    reference_image = params.get("referenceImageUrl")
    if reference_image not in (None, ""):
        if not isinstance(reference_image, str):
            raise InvalidRequestError("referenceImageUrl must be a string")
        if not engine.supports_reference_image:
            raise InvalidRequestError(f"Engine {engine.key} does not support reference images")

    return params
