"""Shared request/response model configuration.

The HTTP API speaks camelCase JSON; Python code uses snake_case attributes.
"""

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

# Timestamps are stored as naive UTC
UtcDatetime = Annotated[
    datetime,
    PlainSerializer(lambda value: value.isoformat() + "Z", return_type=str, when_used="json"),
]


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(BaseModel):
    """Body of every error response."""

    code: str
    message: str
