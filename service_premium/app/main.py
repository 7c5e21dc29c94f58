"""
Premium Access service.

Decides who may read which content, serves previews to everyone else, and
keeps time-gated premium items on schedule. Content and subscriptions live in
external stores; decisions are cached in a tag-indexed Redis cache.
"""

from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from shared.logging import get_logger, set_request_id, set_user_context
from shared.metrics import MetricsCollector
from shared.errors import ContentNotFoundError

from .config import PremiumConfig, get_premium_config
from .access.engine import AccessDecisionEngine
from .access.models import (
    AccessDecision, ActiveSubscriptionView, BatchScheduleResult, ContentPreview,
    ReleaseReport, ScheduledRelease, Subject, UserRole, utcnow
)
from .access.subscriptions import SubscriptionLookup
from .cache.backend import RedisCacheBackend
from .cache.strategies import CacheStrategyRegistry
from .cache.tagged_cache import TaggedCache
from .scheduler.release import DEFAULT_SCHEDULED_LIMIT, ReleaseScheduler
from .side_effects import BestEffortChannel
from .stores import ContentStore, SubscriptionStore


VIEW_COUNT_EFFECT = "view_count"


class PremiumService:
    """Premium Access service implementation."""

    def __init__(
        self,
        content_store: ContentStore,
        subscription_store: SubscriptionStore,
        cache: TaggedCache,
        *,
        config: Optional[PremiumConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], datetime] = utcnow,
        side_effects: Optional[BestEffortChannel] = None,
    ):
        self.config = config or get_premium_config()
        self.content_store = content_store
        self.subscription_store = subscription_store
        self.cache = cache
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("premium.service")

        self.subscriptions = SubscriptionLookup(
            subscription_store,
            cache,
            expiring_ttl=self.config.subscription_expiring_ttl
        )
        self.engine = AccessDecisionEngine(
            content_store,
            self.subscriptions,
            cache,
            metrics=metrics,
            clock=clock
        )
        self.scheduler = ReleaseScheduler(content_store, cache, metrics=metrics, clock=clock)
        self.side_effects = side_effects or BestEffortChannel(metrics)

    @staticmethod
    def _subject(subject_id: Optional[str], role: Union[UserRole, str]) -> Subject:
        return Subject(subject_id=subject_id or None, role=UserRole(role))

    async def check_content_access(
        self,
        content_id: str,
        subject_id: Optional[str] = None,
        role: Union[UserRole, str] = UserRole.FREE
    ) -> AccessDecision:
        """Access decision for one subject on one content item."""
        set_request_id()
        set_user_context(subject_id)

        subject = self._subject(subject_id, role)
        return await self.engine.check_content_access(content_id, subject)

    async def get_content_preview(
        self,
        content_id: str,
        subject_id: Optional[str] = None,
        role: Union[UserRole, str] = UserRole.FREE
    ) -> ContentPreview:
        """Content body for subjects with access, a teaser for everyone else.

        Serving the full body counts a view; the counter is updated in the
        background and its failure never affects the response.
        """
        set_request_id()
        set_user_context(subject_id)

        content = await self.content_store.get_by_id(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        subject = self._subject(subject_id, role)
        decision = await self.engine.access_for_content(content, subject)

        if decision.has_access:
            self.side_effects.submit(
                VIEW_COUNT_EFFECT,
                lambda: self.content_store.increment_view_count(content.id)
            )

        return ContentPreview(
            id=content.id,
            title=content.title,
            excerpt=content.excerpt or "",
            preview_content=self.engine.get_content_preview(content, decision),
            is_premium=content.is_premium,
            release_date=content.premium_release_date,
            requires_subscription=any(zone.requires_subscription for zone in content.zones),
            estimated_read_time=content.read_time,
            decision=decision
        )

    async def get_user_active_subscription(self, user_id: str) -> Optional[ActiveSubscriptionView]:
        return await self.subscriptions.get_active_subscription(user_id, self.clock())

    async def schedule_content_release(self, content_id: str, release_date: Union[datetime, str]) -> datetime:
        return await self.scheduler.schedule_content_release(content_id, release_date)

    async def batch_schedule_content_release(
        self,
        content_ids: Iterable[str],
        release_date: Union[datetime, str]
    ) -> BatchScheduleResult:
        return await self.scheduler.batch_schedule_content_release(content_ids, release_date)

    async def process_content_releases(self) -> ReleaseReport:
        return await self.scheduler.process_content_releases()

    async def get_scheduled_content(self, limit: int = DEFAULT_SCHEDULED_LIMIT) -> List[ScheduledRelease]:
        return await self.scheduler.get_scheduled_content(limit=limit)

    async def invalidate_subject(self, user_id: str) -> int:
        """Forget cached decisions and subscription state after a subscription change."""
        count = await self.engine.invalidate_subject(user_id)
        self.logger.info("Invalidated subject cache", user_id=user_id, count=count)
        return count

    async def invalidate_content(self, content_id: str) -> int:
        """Forget cached decisions after an out-of-band content change."""
        return await self.engine.invalidate_content(content_id)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"redis": "ok" if await self.cache.health_check() else "error"}

    async def health_check(self) -> Dict[str, Any]:
        """Service health with dependency status and cache counters."""
        dependencies = await self._check_dependencies()
        healthy = all(status == "ok" for status in dependencies.values())
        return {
            "status": "ok" if healthy else "degraded",
            "service": self.config.service_name,
            "dependencies": dependencies,
            "cache": self.cache.stats(),
            "pending_side_effects": self.side_effects.pending,
            "timestamp": self.clock().isoformat()
        }

    async def start(self):
        """Start service components."""
        start = getattr(self.cache.backend, "start", None)
        if start is not None:
            await start()
        self.logger.info("Premium service started", env=self.config.env)

    async def stop(self):
        """Stop service components."""
        await self.side_effects.drain()
        stop = getattr(self.cache.backend, "stop", None)
        if stop is not None:
            await stop()
        self.logger.info("Premium service stopped")


def create_cache(config: PremiumConfig, metrics: Optional[MetricsCollector] = None) -> TaggedCache:
    """Redis-backed tagged cache configured from settings."""
    backend = RedisCacheBackend(config.redis_url, socket_timeout=config.redis_socket_timeout)
    return TaggedCache(
        backend,
        CacheStrategyRegistry(config.cache_ttl_overrides()),
        prefix=config.cache_prefix,
        compression_threshold=config.compression_threshold_bytes,
        tag_grace_seconds=config.tag_grace_seconds,
        metrics=metrics
    )


def create_service(
    content_store: ContentStore,
    subscription_store: SubscriptionStore,
    config: Optional[PremiumConfig] = None,
    metrics: Optional[MetricsCollector] = None
) -> PremiumService:
    """Create the Premium Access service on a Redis cache."""
    config = config or get_premium_config()
    return PremiumService(
        content_store,
        subscription_store,
        create_cache(config, metrics),
        config=config,
        metrics=metrics
    )
