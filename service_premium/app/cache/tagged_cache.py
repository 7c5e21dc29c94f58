"""
Tag-indexed cache with payload compression.

Entries are JSON payloads stored under "<prefix><key>", or under
"<prefix><key>:compressed" once the serialized payload exceeds the
compression threshold. Each tag is a backend set at "<prefix>tags:<tag>"
holding the full keys tagged with it, so a whole group of entries can be
dropped without scanning the keyspace.

Every backend failure is treated as a miss on read and a no-op on write.
"""

import base64
import json
import re
import zlib
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union, TYPE_CHECKING

from shared.logging import get_logger
from .backend import CacheBackend
from .strategies import CacheStrategyRegistry

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_PREFIX = "cache:"
DEFAULT_COMPRESSION_THRESHOLD = 10_000
DEFAULT_TAG_GRACE_SECONDS = 300
COMPRESSED_SUFFIX = ":compressed"

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(value: str) -> str:
    """Escape Redis glob metacharacters so value matches only itself."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class TaggedCache:
    """Async key/value cache with TTLs, compression and tag invalidation."""

    def __init__(
        self,
        backend: CacheBackend,
        registry: Optional[CacheStrategyRegistry] = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        compression_threshold: int = DEFAULT_COMPRESSION_THRESHOLD,
        tag_grace_seconds: int = DEFAULT_TAG_GRACE_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.backend = backend
        self.registry = registry or CacheStrategyRegistry()
        self.prefix = prefix
        self.compression_threshold = compression_threshold
        self.tag_grace_seconds = tag_grace_seconds
        self.metrics = metrics
        self.logger = get_logger("premium.cache.tagged")

        self._hits = 0
        self._misses = 0
        self._errors = 0

    def _full_key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _tag_key(self, tag: str) -> str:
        return f"{self.prefix}tags:{tag}"

    async def set(self, key: str, value: Any, ttl_seconds: int, tags: Iterable[str] = ()) -> bool:
        """Store a JSON-serializable value and index it under each tag."""
        if ttl_seconds <= 0:
            return False

        full_key = self._full_key(key)
        compressed_key = f"{full_key}{COMPRESSED_SUFFIX}"

        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            self.logger.error("Cache value not serializable", key=full_key, error=str(e))
            self._record_error("serialize")
            return False

        encoded = payload.encode("utf-8")
        compressed = len(encoded) > self.compression_threshold

        try:
            if compressed:
                packed = base64.b64encode(zlib.compress(encoded)).decode("ascii")
                await self.backend.set(compressed_key, packed, ttl_seconds)
                await self.backend.delete(full_key)
            else:
                await self.backend.set(full_key, payload, ttl_seconds)
                await self.backend.delete(compressed_key)
        except Exception as e:
            self.logger.error("Cache set error", key=full_key, error=str(e))
            self._record_error("set")
            return False

        try:
            for tag in tags:
                await self._index(tag, full_key, ttl_seconds)
        except Exception as e:
            # Entries missing from a tag index cannot be invalidated by it.
            self.logger.error("Cache tag index error", key=full_key, error=str(e))
            self._record_error("tag")
            await self._quiet_delete(full_key, compressed_key)
            return False

        self.logger.debug("Cached value", key=full_key, ttl=ttl_seconds, compressed=compressed)
        return True

    async def _index(self, tag: str, full_key: str, ttl_seconds: int) -> None:
        tag_key = self._tag_key(tag)
        await self.backend.sadd(tag_key, full_key)

        # Index outlives its longest member by the grace period; never shortened.
        index_ttl = ttl_seconds + self.tag_grace_seconds
        current = await self.backend.ttl(tag_key)
        if current < index_ttl:
            await self.backend.expire(tag_key, index_ttl)

    async def get(self, key: str, *, namespace: Optional[str] = None) -> Optional[Any]:
        """Cached value or None on miss, backend failure or corrupt payload."""
        full_key = self._full_key(key)
        label = namespace or "unscoped"

        try:
            packed = await self.backend.get(f"{full_key}{COMPRESSED_SUFFIX}")
            if packed is not None:
                value = json.loads(zlib.decompress(base64.b64decode(packed)).decode("utf-8"))
                self._record_hit(label)
                return value

            raw = await self.backend.get(full_key)
            if raw is not None:
                value = json.loads(raw)
                self._record_hit(label)
                return value

        except Exception as e:
            self.logger.error("Cache get error", key=full_key, error=str(e))
            self._record_error("get")
            self._record_miss(label)
            return None

        self._record_miss(label)
        return None

    async def delete(self, key: str) -> bool:
        """Remove both variants of a key."""
        full_key = self._full_key(key)
        try:
            await self.backend.delete(full_key, f"{full_key}{COMPRESSED_SUFFIX}")
            return True
        except Exception as e:
            self.logger.error("Cache delete error", key=full_key, error=str(e))
            self._record_error("delete")
            return False

    async def invalidate_tag(self, tag: str) -> int:
        """Delete every key indexed under tag, then the index itself."""
        tag_key = self._tag_key(tag)
        try:
            members = await self.backend.smembers(tag_key)
            if members:
                doomed: List[str] = []
                for member in members:
                    doomed.append(member)
                    doomed.append(f"{member}{COMPRESSED_SUFFIX}")
                await self.backend.delete(*doomed)
            await self.backend.delete(tag_key)
        except Exception as e:
            self.logger.error("Cache tag invalidation error", tag=tag, error=str(e))
            self._record_error("invalidate_tag")
            return 0

        if members:
            self.logger.info("Invalidated cache tag", tag=tag, count=len(members))
        return len(members)

    async def invalidate_tags(self, tags: Iterable[str]) -> int:
        total = 0
        for tag in tags:
            total += await self.invalidate_tag(tag)
        return total

    async def invalidate_by_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix.

        Lists the keyspace; meant for rare namespace-wide resets, use tags on
        the request path.
        """
        pattern = f"{escape_glob(self.prefix + prefix)}*"
        try:
            keys = await self.backend.keys(pattern)
            if keys:
                await self.backend.delete(*keys)
        except Exception as e:
            self.logger.error("Cache pattern invalidation error", pattern=pattern, error=str(e))
            self._record_error("invalidate_pattern")
            return 0

        self.logger.info("Invalidated cache pattern", pattern=pattern, count=len(keys))
        return len(keys)

    async def put(
        self,
        namespace: str,
        key: str,
        value: Any,
        extra_tags: Iterable[str] = (),
        ttl_seconds: Optional[int] = None
    ) -> bool:
        """Store under the namespace policy from the strategy registry."""
        strategy = self.registry.resolve(namespace, extra_tags, ttl_seconds)
        return await self.set(key, value, strategy.ttl_seconds, strategy.tags)

    async def fetch(self, namespace: str, key: str) -> Optional[Any]:
        self.registry.get(namespace)
        return await self.get(key, namespace=namespace)

    async def get_or_set(
        self,
        namespace: str,
        key: str,
        loader: Callable[[], Awaitable[Any]],
        extra_tags: Iterable[str] = (),
        ttl_seconds: Union[int, Callable[[Any], int], None] = None
    ) -> Any:
        """Read-through: cached value, else the loader's result stored under
        the namespace policy.

        Cache failures fall through to the loader; loader errors propagate.
        None results are not cached. `ttl_seconds` may be a callable taking
        the loaded value, for TTLs that depend on it.
        """
        cached = await self.fetch(namespace, key)
        if cached is not None:
            return cached

        value = await loader()
        if value is None:
            return None

        ttl = ttl_seconds(value) if callable(ttl_seconds) else ttl_seconds
        await self.put(namespace, key, value, extra_tags, ttl)
        return value

    async def _quiet_delete(self, *full_keys: str) -> None:
        try:
            await self.backend.delete(*full_keys)
        except Exception as e:
            self.logger.error("Cache cleanup error", keys=list(full_keys), error=str(e))
            self._record_error("delete")

    def _record_hit(self, namespace: str) -> None:
        self._hits += 1
        if self.metrics:
            self.metrics.increment_counter("cache_hits_total", namespace=namespace)

    def _record_miss(self, namespace: str) -> None:
        self._misses += 1
        if self.metrics:
            self.metrics.increment_counter("cache_misses_total", namespace=namespace)

    def _record_error(self, operation: str) -> None:
        self._errors += 1
        if self.metrics:
            self.metrics.increment_counter("cache_errors_total", operation=operation)

    def stats(self) -> Dict[str, Any]:
        """Process-local hit/miss counters."""
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "errors": self._errors,
            "hit_rate": (self._hits / total) if total else 0.0,
        }

    async def health_check(self) -> bool:
        try:
            return bool(await self.backend.ping())
        except Exception:
            return False
