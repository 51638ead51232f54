"""Repository layer for SparkLab backend.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from sparklab.repositories.engine_connection import EngineConnectionRepository
from sparklab.repositories.generation import GenerationRepository
from sparklab.repositories.generation_job import GenerationJobRepository
from sparklab.repositories.profile import ProfileRepository

__all__ = [
    "ProfileRepository",
    "GenerationRepository",
    "GenerationJobRepository",
    "EngineConnectionRepository",
]
