"""
Access decision engine for premium content.
"""

import math
import time
from datetime import datetime
from typing import Callable, List, Optional, Tuple, TYPE_CHECKING

from pydantic import ValidationError as ModelValidationError

from shared.logging import get_logger
from shared.errors import ContentNotFoundError
from ..cache.strategies import PREMIUM_ACCESS, content_tag, user_tag
from ..cache.tagged_cache import TaggedCache
from ..preview.truncate import plain_text_preview
from ..stores import ContentStore
from .subscriptions import SubscriptionLookup
from .models import (
    AccessDecision, AccessOutcome, ActiveSubscriptionView, ContentItem, Subject, UserRole,
    ZONE_ROLE_ACCESS, AdminAccess, FreeAccess, TimeGatedReleased, TimeGatedPending,
    PermanentPremiumSubscribed, PermanentPremiumUnsubscribed, ZoneGranted, ZoneDenied,
    ensure_utc, to_decision, utcnow
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class AccessDecisionEngine:
    """Decides who sees which content, with cached decisions.

    `evaluate_access` is the pure policy. `check_content_access` wraps it
    with a read-through cache keyed by content, subject and role, tagged by
    content id so content changes can drop every cached verdict at once.
    """

    def __init__(
        self,
        content_store: ContentStore,
        subscriptions: SubscriptionLookup,
        cache: TaggedCache,
        *,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.content_store = content_store
        self.subscriptions = subscriptions
        self.cache = cache
        self.metrics = metrics
        self.clock = clock
        self.logger = get_logger("premium.access_engine")

    def evaluate_access(
        self,
        content: ContentItem,
        subject: Subject,
        now: datetime,
        subscription: Optional[ActiveSubscriptionView] = None
    ) -> AccessOutcome:
        """Apply the access policy; the first matching branch wins."""
        now = ensure_utc(now)
        authenticated = subject.is_authenticated

        if subject.role == UserRole.ADMIN:
            return AdminAccess()

        if not content.is_premium:
            return FreeAccess()

        subscribed = authenticated and self._is_active(subscription, now)

        release_date = content.premium_release_date
        if release_date is not None:
            if now >= release_date:
                return TimeGatedReleased(release_date=release_date)
            return TimeGatedPending(
                release_date=release_date,
                authenticated=authenticated,
                subscribed=subscribed,
                subscription_end=subscription.current_period_end if subscribed else None
            )

        if content.is_permanent_premium:
            if subscribed:
                return PermanentPremiumSubscribed(subscription_end=subscription.current_period_end)
            return PermanentPremiumUnsubscribed(authenticated=authenticated)

        for zone in content.zones:
            if not zone.requires_subscription:
                return ZoneGranted(zone=zone.zone, role=subject.role, via_role=False)
            if subject.role in ZONE_ROLE_ACCESS.get(zone.zone, frozenset()):
                return ZoneGranted(zone=zone.zone, role=subject.role, via_role=True)

        first_zone = content.zones[0].zone if content.zones else None
        return ZoneDenied(zone=first_zone, authenticated=authenticated)

    @staticmethod
    def _is_active(subscription: Optional[ActiveSubscriptionView], now: datetime) -> bool:
        return (
            subscription is not None
            and subscription.is_active
            and subscription.current_period_end > now
        )

    @staticmethod
    def needs_subscription(content: ContentItem, subject: Subject, now: datetime) -> bool:
        """Whether the decision can depend on the subject's subscription."""
        if subject.role == UserRole.ADMIN or not subject.is_authenticated:
            return False
        if not content.is_premium:
            return False
        if content.premium_release_date is not None:
            return ensure_utc(now) < content.premium_release_date
        return content.is_permanent_premium

    @staticmethod
    def cache_key(content_id: str, subject: Subject) -> str:
        return f"premium:access:{content_id}:{subject.cache_id}:{subject.role.value}"

    async def check_content_access(
        self,
        content_id: str,
        subject: Subject,
        now: Optional[datetime] = None
    ) -> AccessDecision:
        """Cached decision for a content id; raises ContentNotFoundError."""
        now = ensure_utc(now) if now is not None else self.clock()

        cached = await self._read_cached(content_id, subject)
        if cached is not None:
            return cached

        content = await self.content_store.get_by_id(content_id)
        if content is None:
            raise ContentNotFoundError(content_id)

        return await self._decide_and_cache(content, subject, now)

    async def access_for_content(
        self,
        content: ContentItem,
        subject: Subject,
        now: Optional[datetime] = None
    ) -> AccessDecision:
        """Cached decision for an already loaded content item."""
        now = ensure_utc(now) if now is not None else self.clock()

        cached = await self._read_cached(content.id, subject)
        if cached is not None:
            return cached

        return await self._decide_and_cache(content, subject, now)

    async def _read_cached(self, content_id: str, subject: Subject) -> Optional[AccessDecision]:
        cached = await self.cache.fetch(PREMIUM_ACCESS, self.cache_key(content_id, subject))
        if cached is None:
            return None

        try:
            decision = AccessDecision.model_validate(cached)
        except ModelValidationError as e:
            self.logger.warning("Discarding malformed cached decision", content_id=content_id, error=str(e))
            return None

        self.logger.debug("Cache hit for access decision", content_id=content_id, subject=subject.cache_id)
        return decision

    async def _decide_and_cache(self, content: ContentItem, subject: Subject, now: datetime) -> AccessDecision:
        start = time.perf_counter()

        decision, ttl = await self.decide(content, subject, now)

        if ttl > 0:
            await self.cache.put(
                PREMIUM_ACCESS,
                self.cache_key(content.id, subject),
                decision.model_dump(mode="json"),
                extra_tags=self._tags(content.id, subject),
                ttl_seconds=ttl
            )

        self._record_check(decision, time.perf_counter() - start)
        self.logger.debug(
            "Access decision computed",
            content_id=content.id,
            subject=subject.cache_id,
            kind=decision.kind.value,
            has_access=decision.has_access,
            ttl=ttl
        )
        return decision

    async def decide(self, content: ContentItem, subject: Subject, now: datetime) -> Tuple[AccessDecision, int]:
        """Uncached decision plus the TTL it may be cached for."""
        subscription = None
        if self.needs_subscription(content, subject, now):
            subscription = await self.subscriptions.get_active_subscription(subject.subject_id, now)

        outcome = self.evaluate_access(content, subject, now, subscription)
        return to_decision(outcome), self.decision_ttl(content, outcome, now)

    def decision_ttl(self, content: ContentItem, outcome: AccessOutcome, now: datetime) -> int:
        """Namespace TTL clamped so no verdict outlives what it depends on.

        A pending release bounds every verdict on that item; a grant that
        rests on a subscription is bounded by the end of the paid period.
        """
        ttl = self.cache.registry.get(PREMIUM_ACCESS).ttl_seconds

        release_date = content.premium_release_date
        if content.is_premium and release_date is not None and release_date > now:
            ttl = min(ttl, math.floor((release_date - now).total_seconds()))

        subscription_end = getattr(outcome, "subscription_end", None)
        if subscription_end is not None:
            ttl = min(ttl, math.floor((subscription_end - now).total_seconds()))

        return ttl

    @staticmethod
    def _tags(content_id: str, subject: Subject) -> List[str]:
        tags = [content_tag(content_id)]
        if subject.is_authenticated:
            tags.append(user_tag(subject.subject_id))
        return tags

    @staticmethod
    def get_content_preview(content: ContentItem, decision: AccessDecision) -> str:
        """Full body when granted, otherwise a plain-text teaser."""
        if decision.has_access:
            return content.content
        return plain_text_preview(content.content, decision.preview_length or 0)

    async def invalidate_content(self, content_id: str) -> int:
        """Drop every cached decision for one content item."""
        return await self.cache.invalidate_tag(content_tag(content_id))

    async def invalidate_subject(self, subject_id: str) -> int:
        """Drop every cached decision and subscription for one user."""
        return await self.cache.invalidate_tag(user_tag(subject_id))

    def _record_check(self, decision: AccessDecision, duration: float) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter(
            "access_checks_total",
            kind=decision.kind.value,
            decision="granted" if decision.has_access else "denied"
        )
        self.metrics.observe_histogram("access_check_duration_seconds", duration)
