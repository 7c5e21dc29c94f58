"""
Shared configuration management for the Premium Access service.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PREMIUM_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=5.0)

    # Metrics
    metrics_port: int = Field(default=9090)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str

    # Collaborators that live outside this repository
    store_factory: Optional[str] = Field(default=None)
