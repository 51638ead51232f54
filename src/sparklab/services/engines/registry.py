"""Static engine registry.

Each engine is a data entry: adding an engine means adding a descriptor here.
Dispatch happens on media_type (see simulator.py), never on the engine key.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional

from sparklab.models.generation import MediaType
from sparklab.services.exceptions import InvalidEngineError


@dataclass(frozen=True)
class EngineDescriptor:
    """Capabilities of one generation engine.

    Attributes:
        key: Registry key sent by clients (e.g. "image_engine_a")
        label: Human-readable name
        media_type: Media the engine produces
        supports_reference_image: Whether params.referenceImageUrl is accepted
        supports_masks: Whether mask inputs are accepted
        max_outputs: Upper bound for params.outputCount
        api_key_env: Setting a real provider integration would read its API key from
        api_base_url_env: Setting a real provider integration would read its base URL from
    """

    key: str
    label: str
    media_type: MediaType
    supports_reference_image: bool = False
    supports_masks: bool = False
    max_outputs: int = 1
    api_key_env: Optional[str] = None
    api_base_url_env: Optional[str] = None


ENGINES: Mapping[str, EngineDescriptor] = MappingProxyType(
    {
        descriptor.key: descriptor
        for descriptor in (
            EngineDescriptor(
                key="image_engine_a",
                label="Image Engine A",
                media_type=MediaType.IMAGE,
                max_outputs=4,
                api_key_env="META_IMAGE_API_KEY",
                api_base_url_env="META_IMAGE_API_BASE_URL",
            ),
            EngineDescriptor(
                key="image_engine_b",
                label="Image Engine B",
                media_type=MediaType.IMAGE,
                max_outputs=4,
                api_key_env="IMAGEFX_API_KEY",
                api_base_url_env="IMAGEFX_API_BASE_URL",
            ),
            EngineDescriptor(
                key="image_engine_c",
                label="Image Engine C",
                media_type=MediaType.IMAGE,
                supports_reference_image=True,
                max_outputs=4,
                api_key_env="MIXBOARD_API_KEY",
                api_base_url_env="MIXBOARD_API_BASE_URL",
            ),
            EngineDescriptor(
                key="video_engine_a",
                label="Video Engine A",
                media_type=MediaType.VIDEO,
                max_outputs=1,
                api_key_env="META_VIDEO_API_KEY",
                api_base_url_env="META_VIDEO_API_BASE_URL",
            ),
        )
    }
)


def get_engine(engine_key: str) -> EngineDescriptor:
    """Look up an engine descriptor.

    Raises:
        InvalidEngineError: If engine_key is not registered
    """
    descriptor = ENGINES.get(engine_key)
    if descriptor is None:
        raise InvalidEngineError(f"Invalid engine. Valid options: {', '.join(ENGINES)}")
    return descriptor


def list_engines() -> list[EngineDescriptor]:
    """All registered engines in registration order."""
    return list(ENGINES.values())
