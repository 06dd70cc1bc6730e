"""Process settings using Pydantic BaseSettings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from asset_pipeline.constants import (
    DEFAULT_DOWNLOAD_CONCURRENCY,
    DEFAULT_ENRICH_CONCURRENCY,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_UPLOAD_CONCURRENCY,
    DEFAULT_USER_AGENT,
    POLITE_REQUEST_DELAY_SECONDS,
)


class Settings(BaseSettings):
    """Process settings loaded from environment variables.

    The pipeline itself (targets, directories, AI and storage switches) is
    described by the JSON file at ``pipeline_config``; see
    :mod:`asset_pipeline.models.config_models`.
    """

    model_config = SettingsConfigDict(
        # Later files override earlier ones, so .env.local takes precedence
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    pipeline_config: str = Field(
        default="pipeline.config.json",
        description="Path to the JSON pipeline configuration",
    )

    # Tencent COS credentials (S3-compatible API)
    tencent_secret_id: str | None = Field(
        default=None, description="COS SecretId used as the access key"
    )
    tencent_secret_key: str | None = Field(
        default=None, description="COS SecretKey used as the secret key"
    )

    # Environment
    env: Literal["local", "prod"] = Field(
        default="local", description="Current environment"
    )
    log_level: str = Field(default="INFO", description="Python logging level")

    # Sentry Configuration
    sentry_dsn: str | None = Field(
        default=None, description="Sentry DSN for error tracking (optional)"
    )
    sentry_traces_sample_rate: float = Field(
        default=1.0, description="Sentry traces sample rate (0.0 to 1.0)"
    )

    # Logfire Configuration
    logfire_token: str | None = Field(
        default=None, description="Pydantic Logfire token (optional)"
    )

    # ==========================================================================
    # HTTP Configuration
    # ==========================================================================

    http_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        description="Timeout for page and image requests (seconds)",
    )
    polite_delay_seconds: float = Field(
        default=POLITE_REQUEST_DELAY_SECONDS,
        ge=0,
        description="Delay between paginated page requests (seconds)",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT, description="User-Agent sent with requests"
    )

    # ==========================================================================
    # Concurrency Configuration
    # ==========================================================================

    download_concurrency: int = Field(
        default=DEFAULT_DOWNLOAD_CONCURRENCY,
        ge=1,
        description="Maximum number of in-flight downloads",
    )
    upload_concurrency: int = Field(
        default=DEFAULT_UPLOAD_CONCURRENCY,
        ge=1,
        description="Maximum number of in-flight uploads",
    )
    enrich_concurrency: int = Field(
        default=DEFAULT_ENRICH_CONCURRENCY,
        ge=1,
        description="Maximum number of concurrent analysis calls",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
