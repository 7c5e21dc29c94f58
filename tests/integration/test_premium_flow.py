"""
Integration tests for the Premium Access flow.

Wires PremiumService, its cache and the release worker together over the
in-memory stores and cache backend, and walks content through its premium
lifecycle.
"""

import pytest
from datetime import timedelta

from prometheus_client import CollectorRegistry

from service_premium.app.access.models import AccessKind, UserRole, ZoneKind
from service_premium.app.cache.strategies import CacheStrategyRegistry
from service_premium.app.cache.tagged_cache import TaggedCache
from service_premium.app.config import PremiumConfig
from service_premium.app.main import PremiumService
from service_premium.app.worker import ReleaseWorker
from shared.metrics import MetricsCollector
from shared.test_helpers import (
    FrozenClock, InMemoryCacheBackend, InMemoryContentStore, InMemorySubscriptionStore,
    TestDataFactory, TestEnvironment
)


class TestPremiumFlow:
    """End-to-end premium content lifecycle."""

    @pytest.fixture
    def clock(self):
        return FrozenClock()

    @pytest.fixture
    def config(self):
        return PremiumConfig(**TestEnvironment.get_mock_config())

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def metrics(self, registry):
        return MetricsCollector("premium", registry)

    @pytest.fixture
    def backend(self, clock):
        return InMemoryCacheBackend(clock)

    @pytest.fixture
    def content_store(self):
        return InMemoryContentStore()

    @pytest.fixture
    def subscription_store(self):
        return InMemorySubscriptionStore()

    @pytest.fixture
    def service(self, content_store, subscription_store, backend, config, metrics, clock):
        cache = TaggedCache(
            backend,
            CacheStrategyRegistry(config.cache_ttl_overrides()),
            prefix=config.cache_prefix,
            compression_threshold=config.compression_threshold_bytes,
            tag_grace_seconds=config.tag_grace_seconds,
            metrics=metrics
        )
        return PremiumService(
            content_store, subscription_store, cache, config=config, metrics=metrics, clock=clock
        )

    @pytest.mark.asyncio
    async def test_time_gated_lifecycle(self, service, content_store, subscription_store, clock, registry, config):
        content_store.add(TestDataFactory.create_content("guide", content="<p>" + "drill " * 200 + "</p>"))
        subscription_store.add("subscriber", TestDataFactory.create_subscription(now=clock()))

        await service.schedule_content_release("guide", clock() + timedelta(days=2))

        anonymous = await service.get_content_preview("guide")
        member = await service.get_content_preview("guide", "member")
        subscriber = await service.get_content_preview("guide", "subscriber")
        await service.side_effects.drain()

        assert anonymous.decision.upgrade_url == "/auth/register"
        assert len(anonymous.preview_content) == 203
        assert member.decision.upgrade_url == "/pricing"
        assert len(member.preview_content) == 303
        assert subscriber.requires_subscription is False
        assert content_store.view_counts == {"guide": 1}

        clock.advance(days=2)
        worker = ReleaseWorker(service.scheduler, config.release_interval_seconds)
        report = await worker.run_once()

        assert report.released == 1
        released = await service.check_content_access("guide")
        assert released.has_access is True
        assert released.kind == AccessKind.FREE
        assert registry.get_sample_value("content_releases_total", {"result": "released"}) == 1.0

    @pytest.mark.asyncio
    async def test_subscription_lapse_is_picked_up_after_invalidation(
        self, service, content_store, subscription_store, clock
    ):
        content_store.add(TestDataFactory.create_permanent_premium("vault"))
        subscription_store.add("user-1", TestDataFactory.create_subscription(now=clock()))

        assert (await service.check_content_access("vault", "user-1")).has_access is True

        subscription_store.replace("user-1")
        assert (await service.check_content_access("vault", "user-1")).has_access is True

        await service.invalidate_subject("user-1")
        assert (await service.check_content_access("vault", "user-1")).has_access is False

    @pytest.mark.asyncio
    async def test_subscription_ending_mid_cache_lifetime(self, service, content_store, subscription_store, clock):
        content_store.add(TestDataFactory.create_permanent_premium("vault"))
        subscription_store.add("user-1", TestDataFactory.create_subscription(
            now=clock(),
            current_period_end=clock() + timedelta(minutes=3)
        ))

        assert (await service.check_content_access("vault", "user-1")).has_access is True

        clock.advance(minutes=3)
        assert (await service.check_content_access("vault", "user-1")).has_access is False

    @pytest.mark.asyncio
    async def test_zones_and_roles(self, service, content_store):
        content_store.add(TestDataFactory.create_zoned("drills", (ZoneKind.COACH, True)))

        coach = await service.check_content_access("drills", "c-1", UserRole.COACH)
        parent = await service.check_content_access("drills", "p-1", UserRole.PARENT)
        admin = await service.check_content_access("drills", "a-1", UserRole.ADMIN)

        assert coach.has_access is True
        assert parent.has_access is False
        assert parent.reason == "requires coach subscription"
        assert admin.kind == AccessKind.ADMIN

    @pytest.mark.asyncio
    async def test_cache_outage_degrades_to_recomputation(self, service, content_store, backend, registry):
        content_store.add(TestDataFactory.create_content("open"))
        backend.fail = True

        first = await service.check_content_access("open")
        second = await service.check_content_access("open")

        assert first.has_access is True
        assert second.has_access is True
        assert content_store.get_calls == 2
        assert registry.get_sample_value("cache_errors_total", {"operation": "get"}) == 2.0

        health = await service.health_check()
        assert health["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_content_update_invalidates_every_subject(self, service, content_store):
        content_store.add(TestDataFactory.create_permanent_premium("vault"))
        for subject_id in (None, "u-1", "u-2"):
            assert (await service.check_content_access("vault", subject_id)).has_access is False

        await service.batch_schedule_content_release(["vault"], "2000-01-01T00:00:00Z")

        for subject_id in (None, "u-1", "u-2"):
            assert (await service.check_content_access("vault", subject_id)).has_access is True
