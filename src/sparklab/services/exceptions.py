"""Service error hierarchy for the SparkLab API and generation worker.

This module defines the exception hierarchy for service-level errors:
- SparkLabError: Base for all errors surfaced to API callers (code + message + HTTP status)
- EngineError: Permanent engine-side failure while completing a generation
"""

from fastapi import status


class SparkLabError(Exception):
    """Base exception for all errors returned to API callers.

    Rendered as {"code": code, "message": message} with status_code.
    """

    code: str = "INTERNAL_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthenticationError(SparkLabError):
    """Missing or invalid bearer token."""

    code = "UNAUTHORIZED"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token"


# Validation errors (400)
class InvalidRequestError(SparkLabError):
    """Missing or malformed request fields."""

    code = "INVALID_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidEngineError(InvalidRequestError):
    """Engine key is not in the registry."""

    code = "INVALID_ENGINE"
    default_message = "Invalid engine"


class InvalidTypeError(InvalidRequestError):
    """Requested media type is unknown or not produced by the engine."""

    code = "INVALID_TYPE"
    default_message = "Invalid generation type"


class LimitReachedError(SparkLabError):
    """Free-plan quota exhausted."""

    code = "LIMIT_REACHED"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Free trial limit reached. Please upgrade to continue generating."


class NotFoundError(SparkLabError):
    """Resource is absent or owned by a different caller."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class PersistenceError(SparkLabError):
    """Storage read/write failure."""

    code = "DB_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Database operation failed"


class EngineError(Exception):
    """Permanent engine failure - the generation is marked failed without retry.

    Examples:
    - Engine produced a media type it does not declare
    - Engine returned no result URL
    """

    pass
