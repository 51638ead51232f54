"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
before the schema is created.
"""

from sparklab.models.engine_connection import EngineConnection
from sparklab.models.generation import (
    Generation,
    GenerationStatus,
    InvalidStateTransition,
    MediaType,
)
from sparklab.models.generation_job import GenerationJob, JobStatus
from sparklab.models.profile import Plan, Profile

__all__ = [
    "Profile",
    "Plan",
    "Generation",
    "GenerationStatus",
    "MediaType",
    "InvalidStateTransition",
    "GenerationJob",
    "JobStatus",
    "EngineConnection",
]
