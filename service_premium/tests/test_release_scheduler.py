"""
Unit tests for ReleaseScheduler.
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

from prometheus_client import CollectorRegistry

from service_premium.app.cache.tagged_cache import TaggedCache
from service_premium.app.scheduler.release import ReleaseScheduler, parse_release_date
from shared.errors import ContentNotFoundError, ValidationError
from shared.metrics import MetricsCollector
from shared.test_helpers import FrozenClock, InMemoryCacheBackend, InMemoryContentStore, TestDataFactory


class TestParseReleaseDate:
    """Release date parsing."""

    def test_iso_string_with_z(self):
        assert parse_release_date("2024-07-01T00:00:00Z") == datetime(2024, 7, 1, tzinfo=timezone.utc)

    def test_iso_string_with_offset(self):
        assert parse_release_date("2024-07-01T02:00:00+02:00") == datetime(2024, 7, 1, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self):
        assert parse_release_date(datetime(2024, 7, 1)) == datetime(2024, 7, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", ["not a date", "", "2024-13-45", 1719792000, None])
    def test_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_release_date(value)


class TestReleaseScheduler:
    """Test cases for ReleaseScheduler."""

    @pytest.fixture
    def clock(self):
        return FrozenClock()

    @pytest.fixture
    def backend(self, clock):
        return InMemoryCacheBackend(clock)

    @pytest.fixture
    def cache(self, backend):
        return TaggedCache(backend)

    @pytest.fixture
    def content_store(self):
        return InMemoryContentStore()

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def scheduler(self, content_store, cache, clock, registry):
        return ReleaseScheduler(content_store, cache, metrics=MetricsCollector("premium", registry), clock=clock)

    @pytest.mark.asyncio
    async def test_releases_due_items(self, scheduler, content_store, clock):
        content_store.add(TestDataFactory.create_time_gated("due", clock() - timedelta(minutes=1)))
        content_store.add(TestDataFactory.create_time_gated("later", clock() + timedelta(days=1)))
        content_store.add(TestDataFactory.create_permanent_premium("forever"))

        report = await scheduler.process_content_releases()

        assert report.released == 1
        assert report.errors == []
        assert content_store.items["due"].is_premium is False
        assert content_store.items["due"].premium_release_date is None
        assert content_store.items["later"].is_premium is True
        assert content_store.items["forever"].is_premium is True

    @pytest.mark.asyncio
    async def test_second_pass_releases_nothing(self, scheduler, content_store, clock):
        content_store.add(TestDataFactory.create_time_gated("due", clock()))

        first = await scheduler.process_content_releases()
        second = await scheduler.process_content_releases()

        assert first.released == 1
        assert second.released == 0

    @pytest.mark.asyncio
    async def test_release_invalidates_cached_decisions(self, scheduler, content_store, cache, clock):
        content_store.add(TestDataFactory.create_time_gated("due", clock()))
        await cache.set("premium:access:due:anonymous:FREE", {"has_access": False}, 60, tags=["content:due"])

        await scheduler.process_content_releases()

        assert await cache.get("premium:access:due:anonymous:FREE") is None

    @pytest.mark.asyncio
    async def test_failures_are_collected(self, scheduler, content_store, clock, registry):
        for content_id in ("a", "b", "c"):
            content_store.add(TestDataFactory.create_time_gated(content_id, clock() - timedelta(hours=1)))
        content_store.fail_updates_for.add("b")

        report = await scheduler.process_content_releases()

        assert report.released == 2
        assert [error.item_id for error in report.errors] == ["b"]
        assert "update rejected" in report.errors[0].message
        assert content_store.items["b"].is_premium is True
        assert registry.get_sample_value("content_releases_total", {"result": "released"}) == 2.0
        assert registry.get_sample_value("content_releases_total", {"result": "failed"}) == 1.0

    @pytest.mark.asyncio
    async def test_explicit_now(self, scheduler, content_store, clock):
        content_store.add(TestDataFactory.create_time_gated("soon", clock() + timedelta(hours=1)))

        report = await scheduler.process_content_releases(now=clock() + timedelta(hours=2))

        assert report.released == 1

    @pytest.mark.asyncio
    async def test_query_failure_propagates(self, scheduler, content_store):
        content_store.unavailable = True

        with pytest.raises(ConnectionError):
            await scheduler.process_content_releases()

    @pytest.mark.asyncio
    async def test_schedule_release(self, scheduler, content_store, cache):
        content_store.add(TestDataFactory.create_permanent_premium("post"))
        await cache.set("premium:access:post:u:FREE", {"x": 1}, 60, tags=["content:post"])

        when = await scheduler.schedule_content_release("post", "2024-07-01T00:00:00Z")

        item = content_store.items["post"]
        assert when == datetime(2024, 7, 1, tzinfo=timezone.utc)
        assert item.is_premium is True
        assert item.is_permanent_premium is False
        assert item.premium_release_date == when
        assert await cache.get("premium:access:post:u:FREE") is None

    @pytest.mark.asyncio
    async def test_schedule_unknown_content(self, scheduler):
        with pytest.raises(ContentNotFoundError):
            await scheduler.schedule_content_release("missing", "2024-07-01T00:00:00Z")

    @pytest.mark.asyncio
    async def test_schedule_invalid_date_touches_nothing(self, scheduler, content_store):
        content_store.add(TestDataFactory.create_content("post"))

        with patch.object(content_store, "update", AsyncMock()) as update:
            with pytest.raises(ValidationError):
                await scheduler.schedule_content_release("post", "tomorrow-ish")

        update.assert_not_called()

    @pytest.mark.asyncio
    async def test_past_date_is_accepted_and_released_next_pass(self, scheduler, content_store, clock):
        content_store.add(TestDataFactory.create_content("post"))

        with patch.object(scheduler.logger, "warning") as warning:
            await scheduler.schedule_content_release("post", clock() - timedelta(days=1))

        warning.assert_called_once()
        assert content_store.items["post"].is_premium is True
        assert (await scheduler.process_content_releases()).released == 1

    @pytest.mark.asyncio
    async def test_batch_schedule(self, scheduler, content_store):
        content_store.add(TestDataFactory.create_content("a"))
        content_store.add(TestDataFactory.create_content("b"))

        result = await scheduler.batch_schedule_content_release(["a", "missing", "b"], "2024-07-01T00:00:00Z")

        assert result.success == 2
        assert result.failed == ["missing"]
        assert content_store.items["a"].is_premium is True
        assert content_store.items["b"].is_premium is True

    @pytest.mark.asyncio
    async def test_batch_schedule_validates_date_first(self, scheduler, content_store):
        content_store.add(TestDataFactory.create_content("a"))

        with pytest.raises(ValidationError):
            await scheduler.batch_schedule_content_release(["a"], "garbage")

        assert content_store.items["a"].is_premium is False

    @pytest.mark.asyncio
    async def test_get_scheduled_content(self, scheduler, content_store, clock):
        content_store.add(TestDataFactory.create_time_gated("in-3-days", clock() + timedelta(days=3)))
        content_store.add(TestDataFactory.create_time_gated("in-1-hour", clock() + timedelta(hours=1)))
        content_store.add(TestDataFactory.create_time_gated("past", clock() - timedelta(hours=1)))
        content_store.add(TestDataFactory.create_content("free"))

        upcoming = await scheduler.get_scheduled_content()

        assert [release.id for release in upcoming] == ["in-1-hour", "in-3-days"]
        assert [release.days_until_release for release in upcoming] == [1, 3]
        assert upcoming[0].slug == "in-1-hour"
        assert upcoming[0].category == "training"

    @pytest.mark.asyncio
    async def test_get_scheduled_content_limit(self, scheduler, content_store, clock):
        for day in range(1, 6):
            content_store.add(TestDataFactory.create_time_gated(f"d{day}", clock() + timedelta(days=day)))

        upcoming = await scheduler.get_scheduled_content(limit=2)

        assert [release.id for release in upcoming] == ["d1", "d2"]
