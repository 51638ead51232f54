"""Python client for the SparkLab API."""

from sparklab.client.api_client import PollTimeoutError, SparkLabAPIError, SparkLabClient
from sparklab.client.settings import ClientSettings

__all__ = [
    "ClientSettings",
    "PollTimeoutError",
    "SparkLabAPIError",
    "SparkLabClient",
]
