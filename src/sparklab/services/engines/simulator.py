"""Stub engine runners.

No provider is integrated yet: every engine returns a fixed placeholder result
built deterministically from the request parameters. This is the seam where a
real provider client would be substituted, keyed by media type.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sparklab.models.generation import MediaType
from sparklab.services.engines.registry import EngineDescriptor
from sparklab.services.exceptions import EngineError

STUB_IMAGE_URL = "https://example.com/fake.jpg"
STUB_VIDEO_URL = "https://example.com/fake-video-result.mp4"


@dataclass(frozen=True)
class EngineResult:
    """Normalized engine output written onto a successful generation."""

    url: str
    meta: dict[str, Any]
    raw_response: dict[str, Any] = field(default_factory=dict)


def _string_param(params: dict[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    return value if isinstance(value, str) else None


def _number_param(params: dict[str, Any], key: str) -> Optional[int | float]:
    value = params.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def output_count(engine: EngineDescriptor, params: dict[str, Any]) -> int:
    """Requested output count clamped to [1, engine.max_outputs].

    Numeric strings and floats are truncated to int; anything unparseable
    counts as 1.
    """
    requested = params.get("outputCount")
    if isinstance(requested, bool):
        requested = 1
    try:
        count = int(requested)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        count = 1
    return min(max(count, 1), engine.max_outputs)


def simulate_image(engine: EngineDescriptor, params: dict[str, Any]) -> EngineResult:
    count = output_count(engine, params)
    meta = _without_none(
        {
            "urls": [STUB_IMAGE_URL] * count,
            "aspectRatio": _string_param(params, "aspectRatio"),
            "style": _string_param(params, "style"),
            "steps": _number_param(params, "steps"),
            "promptStrength": _number_param(params, "promptStrength"),
            "seed": _number_param(params, "seed"),
            "outputCount": count,
        }
    )
    return EngineResult(url=STUB_IMAGE_URL, meta=meta)


def simulate_video(engine: EngineDescriptor, params: dict[str, Any]) -> EngineResult:
    meta = _without_none(
        {
            "aspectRatio": _string_param(params, "aspectRatio"),
            "style": _string_param(params, "style"),
            "steps": _number_param(params, "steps"),
        }
    )
    return EngineResult(url=STUB_VIDEO_URL, meta=meta)


SIMULATORS: dict[MediaType, Callable[[EngineDescriptor, dict[str, Any]], EngineResult]] = {
    MediaType.IMAGE: simulate_image,
    MediaType.VIDEO: simulate_video,
}


def run_engine(
    engine: EngineDescriptor, media_type: MediaType, params: Optional[dict[str, Any]]
) -> EngineResult:
    """Run the engine for one generation.

    Args:
        engine: Registry descriptor of the engine to run
        media_type: Media type stored on the generation
        params: Generation params (open bag)

    Returns:
        EngineResult with result URL, meta and a raw response echo

    Raises:
        EngineError: If the engine does not produce media_type or has no runner
    """
    if media_type != engine.media_type:
        raise EngineError(
            f"Engine {engine.key} only supports {engine.media_type.value} generations"
        )

    simulator = SIMULATORS.get(engine.media_type)
    if simulator is None:
        raise EngineError(f"No runner registered for {engine.media_type.value} engines")

    params = params or {}
    result = simulator(engine, params)
    return EngineResult(
        url=result.url,
        meta=result.meta,
        raw_response={
            "stub": True,
            "engineKey": engine.key,
            "type": media_type.value,
            "params": params,
        },
    )
