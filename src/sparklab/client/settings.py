"""Client configuration using Pydantic BaseSettings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """Settings for SparkLabClient and the CLI, loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    api_url: str = Field(default="http://localhost:8000", alias="SPARKLAB_API_URL")
    access_token: str = Field(default="", alias="SPARKLAB_ACCESS_TOKEN")
    poll_interval_seconds: float = Field(default=1.0, ge=0, alias="SPARKLAB_POLL_INTERVAL_SECONDS")
    poll_max_attempts: int = Field(default=30, ge=1, alias="SPARKLAB_POLL_MAX_ATTEMPTS")
    request_timeout_seconds: float = Field(
        default=30.0, gt=0, alias="SPARKLAB_REQUEST_TIMEOUT_SECONDS"
    )
