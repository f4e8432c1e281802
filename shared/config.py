"""
Shared configuration management for the tasks access service.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="TASKS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Root log level")

    # Server
    host: str = Field(default="0.0.0.0", description="Bind address")
    port: int = Field(default=3000, ge=1, le=65535, description="Listen port")

    # Access gate
    trusted_port: int = Field(default=3001, ge=0, le=65535, description="Remote port admitted from any address")
    api_key: str = Field(default="12345", min_length=1, description="Expected x-api-key header value")

    # Rate limiting
    rate_limit_window_seconds: float = Field(default=60.0, gt=0, description="Sliding window length")
    rate_limit_max_requests: int = Field(default=5, ge=1, description="Requests admitted per window")

    # Task store
    seed_demo_tasks: bool = Field(default=True, description="Load the demo tasks at startup")


def get_config(**overrides) -> BaseConfig:
    """Get configuration, applying explicit overrides on top of the environment."""
    return BaseConfig(**overrides)
