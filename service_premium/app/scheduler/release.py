"""
Time-gated release scheduling.

Items scheduled with a premium_release_date stay premium until a release
pass flips them to free. Every mutation is followed by invalidation of the
item's content tag, so no cached decision outlives the change.
"""

import math
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union, TYPE_CHECKING

from shared.logging import get_logger
from shared.errors import ContentNotFoundError, ValidationError
from ..access.models import (
    BatchScheduleResult, ReleaseError, ReleaseReport, ScheduledRelease, ensure_utc, utcnow
)
from ..cache.strategies import content_tag
from ..cache.tagged_cache import TaggedCache
from ..stores import ContentStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_SCHEDULED_LIMIT = 20


def parse_release_date(value: Union[datetime, str]) -> datetime:
    """Release date as an aware UTC datetime.

    Accepts datetimes (naive means UTC) and ISO-8601 strings, including a
    trailing "Z".
    """
    if isinstance(value, datetime):
        return ensure_utc(value)

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(text))
        except ValueError:
            raise ValidationError("Invalid release date", {"release_date": value}) from None

    raise ValidationError("Invalid release date", {"release_date": repr(value)})


class ReleaseScheduler:
    """Schedules premium releases and flips due items to free."""

    def __init__(
        self,
        content_store: ContentStore,
        cache: TaggedCache,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.content_store = content_store
        self.cache = cache
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("premium.release_scheduler")

    async def process_content_releases(self, now: Optional[datetime] = None) -> ReleaseReport:
        """Release every item whose release date has passed.

        One failing item never stops the pass; a second pass right after a
        successful one releases nothing.
        """
        now = ensure_utc(now) if now is not None else self.clock()
        report = ReleaseReport()

        items = await self.content_store.find_releasable(now)

        for item in items:
            try:
                await self.content_store.update(item.id, is_premium=False, premium_release_date=None)
                await self.cache.invalidate_tag(content_tag(item.id))
            except Exception as e:
                self.logger.error("Failed to release content", content_id=item.id, error=str(e))
                report.errors.append(ReleaseError(item_id=item.id, message=str(e)))
                self._record_release("failed")
                continue

            report.released += 1
            self._record_release("released")
            self.logger.info("Released premium content", content_id=item.id, title=item.title)

        self.logger.info(
            "Release pass finished",
            candidates=len(items),
            released=report.released,
            failed=len(report.errors)
        )
        return report

    async def schedule_content_release(self, content_id: str, release_date: Union[datetime, str]) -> datetime:
        """Make an item premium until release_date; returns the parsed date."""
        when = parse_release_date(release_date)
        await self._schedule(content_id, when)
        return when

    async def _schedule(self, content_id: str, when: datetime) -> None:
        content = await self.content_store.get_by_id(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        if when <= self.clock():
            self.logger.warning(
                "Release date is in the past; item is released on the next pass",
                content_id=content_id,
                release_date=when.isoformat()
            )

        await self.content_store.update(
            content_id,
            is_premium=True,
            premium_release_date=when,
            is_permanent_premium=False
        )
        await self.cache.invalidate_tag(content_tag(content_id))

        self.logger.info("Scheduled content release", content_id=content_id, release_date=when.isoformat())

    async def batch_schedule_content_release(
        self,
        content_ids: Iterable[str],
        release_date: Union[datetime, str]
    ) -> BatchScheduleResult:
        """Schedule several items; failures are collected, not raised."""
        when = parse_release_date(release_date)
        result = BatchScheduleResult()

        for content_id in content_ids:
            try:
                await self._schedule(content_id, when)
                result.success += 1
            except Exception as e:
                self.logger.warning("Failed to schedule content release", content_id=content_id, error=str(e))
                result.failed.append(content_id)

        return result

    async def get_scheduled_content(
        self,
        now: Optional[datetime] = None,
        limit: int = DEFAULT_SCHEDULED_LIMIT
    ) -> List[ScheduledRelease]:
        """Upcoming releases, soonest first."""
        now = ensure_utc(now) if now is not None else self.clock()
        items = await self.content_store.find_scheduled(now, limit)

        upcoming = []
        for item in items:
            if item.premium_release_date is None:
                continue
            seconds = (item.premium_release_date - now).total_seconds()
            upcoming.append(ScheduledRelease(
                id=item.id,
                title=item.title,
                slug=item.slug,
                category=item.category,
                release_date=item.premium_release_date,
                days_until_release=max(0, math.ceil(seconds / 86400))
            ))

        upcoming.sort(key=lambda release: release.release_date)
        return upcoming[:limit]

    def _record_release(self, result: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("content_releases_total", result=result)
