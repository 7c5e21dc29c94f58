"""
Cache backend interface and its Redis implementation.
"""

from typing import List, Optional, Protocol, Set

import redis.asyncio as redis
from shared.logging import get_logger
from shared.errors import CacheBackendError


class CacheBackend(Protocol):
    """Key/value store with set-backed tag indices.

    Implementations may raise on any call; TaggedCache turns failures
    into misses and no-ops.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def sadd(self, key: str, *members: str) -> int:
        ...

    async def smembers(self, key: str) -> Set[str]:
        ...

    async def expire(self, key: str, seconds: int) -> bool:
        ...

    async def ttl(self, key: str) -> int:
        """Remaining seconds; -1 without expiry, -2 when missing."""
        ...

    async def keys(self, pattern: str) -> List[str]:
        ...

    async def ping(self) -> bool:
        ...


class RedisCacheBackend:
    """CacheBackend on top of redis.asyncio."""

    def __init__(self, redis_url: str, socket_timeout: float = 5.0):
        self.redis_url = redis_url
        self.socket_timeout = socket_timeout
        self.logger = get_logger("premium.cache.redis")
        self.redis: Optional[redis.Redis] = None

    async def start(self):
        """Connect and verify the connection."""
        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=self.socket_timeout,
                socket_timeout=self.socket_timeout,
                retry_on_timeout=True,
                health_check_interval=30
            )

            await self.redis.ping()

            self.logger.info("Redis cache backend started")

        except Exception as e:
            self.logger.error("Failed to start Redis cache backend", error=str(e))
            raise CacheBackendError("Redis start failed", {"error": str(e)})

    async def stop(self):
        """Close the connection pool."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis cache backend stopped")

    def _client(self) -> redis.Redis:
        if self.redis is None:
            raise CacheBackendError("Redis cache backend not started")
        return self.redis

    async def get(self, key: str) -> Optional[str]:
        return await self._client().get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client().set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self._client().delete(*keys)

    async def sadd(self, key: str, *members: str) -> int:
        return await self._client().sadd(key, *members)

    async def smembers(self, key: str) -> Set[str]:
        return set(await self._client().smembers(key))

    async def expire(self, key: str, seconds: int) -> bool:
        return bool(await self._client().expire(key, seconds))

    async def ttl(self, key: str) -> int:
        return await self._client().ttl(key)

    async def keys(self, pattern: str) -> List[str]:
        return list(await self._client().keys(pattern))

    async def ping(self) -> bool:
        try:
            return bool(await self._client().ping())
        except Exception:
            return False
