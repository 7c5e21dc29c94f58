"""
Configuration for the Premium Access service.
"""

from typing import Dict

from pydantic import Field

from shared.config import ServiceConfig
from .cache.strategies import PREMIUM_ACCESS, SUBSCRIPTION


class PremiumConfig(ServiceConfig):
    """Premium Access settings, read from PREMIUM_* environment variables."""

    service_name: str = Field(default="premium")

    # Cache
    cache_prefix: str = Field(default="cache:")
    compression_threshold_bytes: int = Field(default=10000, ge=0)
    tag_grace_seconds: int = Field(default=300, ge=0)
    access_cache_ttl: int = Field(default=1800, gt=0)
    subscription_cache_ttl: int = Field(default=1800, gt=0)
    subscription_expiring_ttl: int = Field(default=300, gt=0)

    # Release worker
    release_interval_seconds: float = Field(default=60, gt=0)

    def cache_ttl_overrides(self) -> Dict[str, int]:
        """Configured TTLs of the namespaces this service writes."""
        return {
            PREMIUM_ACCESS: self.access_cache_ttl,
            SUBSCRIPTION: self.subscription_cache_ttl,
        }


def get_premium_config(**overrides) -> PremiumConfig:
    """Build the service configuration from the environment."""
    return PremiumConfig(**overrides)
