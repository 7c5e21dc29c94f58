"""
Cache strategy registry.

Every cache write names a namespace; the namespace decides the TTL and the
tags the entry is indexed under. The table is closed: there is no fallback
policy for a namespace that is not listed.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from shared.errors import UnknownCacheNamespaceError, ValidationError


@dataclass(frozen=True)
class CacheStrategy:
    """TTL and tag policy of one namespace."""
    ttl_seconds: int
    tags: Tuple[str, ...] = ()


PREMIUM_ACCESS = "premium-access"
SUBSCRIPTION = "subscription"

DEFAULT_STRATEGIES: Mapping[str, CacheStrategy] = {
    PREMIUM_ACCESS: CacheStrategy(1800, ("premium",)),
    SUBSCRIPTION: CacheStrategy(1800, ("subscriptions",)),
    "article": CacheStrategy(3600, ("articles",)),
    "users": CacheStrategy(1800, ("users",)),
    "analytics": CacheStrategy(900, ("analytics",)),
    "series": CacheStrategy(3600, ("series",)),
    "search": CacheStrategy(600, ("search",)),
    "static": CacheStrategy(86400, ("static",)),
    "session": CacheStrategy(86400, ("session",)),
}


def content_tag(content_id: str) -> str:
    """Tag carried by every cache entry derived from one content item."""
    return f"content:{content_id}"


def user_tag(user_id: str) -> str:
    """Tag carried by every cache entry derived from one user's state."""
    return f"user:{user_id}"


class CacheStrategyRegistry:
    """Closed namespace -> CacheStrategy table."""

    def __init__(self, ttl_overrides: Optional[Mapping[str, int]] = None):
        self._strategies: Dict[str, CacheStrategy] = dict(DEFAULT_STRATEGIES)

        for namespace, ttl in (ttl_overrides or {}).items():
            current = self.get(namespace)
            if ttl <= 0:
                raise ValidationError(
                    "Cache TTL must be positive",
                    {"namespace": namespace, "ttl_seconds": ttl}
                )
            self._strategies[namespace] = CacheStrategy(ttl, current.tags)

    def get(self, namespace: str) -> CacheStrategy:
        """Strategy for a namespace; unknown namespaces are an error."""
        try:
            return self._strategies[namespace]
        except KeyError:
            raise UnknownCacheNamespaceError(namespace) from None

    def resolve(
        self,
        namespace: str,
        extra_tags: Iterable[str] = (),
        ttl_seconds: Optional[int] = None
    ) -> CacheStrategy:
        """Effective policy for one write.

        An explicit ttl can only shorten the namespace TTL.
        """
        strategy = self.get(namespace)

        ttl = strategy.ttl_seconds
        if ttl_seconds is not None:
            ttl = min(ttl, ttl_seconds)

        tags = tuple(dict.fromkeys((*strategy.tags, *extra_tags)))
        return CacheStrategy(ttl, tags)

    def namespaces(self) -> Tuple[str, ...]:
        return tuple(self._strategies)
