"""
Cached subscription lookups for access decisions.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError as ModelValidationError

from shared.logging import get_logger
from ..cache.strategies import SUBSCRIPTION, user_tag
from ..cache.tagged_cache import TaggedCache
from ..stores import SubscriptionStore
from .models import ActiveSubscriptionView, Subscription


DEFAULT_EXPIRING_TTL = 300
EXPIRING_SOON_DAYS = 7


class SubscriptionLookup:
    """Read-through cache in front of the subscription store.

    The raw subscription record is cached, not the derived view, so
    `is_active` and `days_remaining` are always computed for the caller's
    clock.
    """

    def __init__(
        self,
        store: SubscriptionStore,
        cache: TaggedCache,
        *,
        expiring_ttl: int = DEFAULT_EXPIRING_TTL,
    ):
        self.store = store
        self.cache = cache
        self.expiring_ttl = expiring_ttl
        self.logger = get_logger("premium.subscriptions")

    @staticmethod
    def cache_key(user_id: str) -> str:
        return f"premium:subscription:{user_id}"

    async def get_active_subscription(self, user_id: str, now: datetime) -> Optional[ActiveSubscriptionView]:
        """Subscription view for a user, or None when they have none."""
        record = await self.cache.get_or_set(
            SUBSCRIPTION,
            self.cache_key(user_id),
            lambda: self._load(user_id),
            extra_tags=(user_tag(user_id),),
            ttl_seconds=lambda loaded: self._record_ttl(loaded, now)
        )
        if record is None:
            return None

        try:
            subscription = Subscription.model_validate(record)
        except ModelValidationError as e:
            self.logger.warning("Discarding malformed cached subscription", user_id=user_id, error=str(e))
            await self.cache.delete(self.cache_key(user_id))
            subscription = await self.store.get_active_for_user(user_id)
            if subscription is None:
                return None

        return ActiveSubscriptionView.from_subscription(subscription, now)

    async def _load(self, user_id: str) -> Optional[Dict[str, Any]]:
        subscription = await self.store.get_active_for_user(user_id)
        if subscription is None:
            return None
        return subscription.model_dump(mode="json")

    def _record_ttl(self, record: Dict[str, Any], now: datetime) -> int:
        return self.ttl_for(Subscription.model_validate(record), now)

    def ttl_for(self, subscription: Subscription, now: datetime) -> int:
        """Shorter TTL close to expiry; never past the end of the paid period."""
        ttl = self.cache.registry.get(SUBSCRIPTION).ttl_seconds
        if subscription.days_remaining(now) <= EXPIRING_SOON_DAYS:
            ttl = min(ttl, self.expiring_ttl)

        seconds_left = math.floor((subscription.current_period_end - now).total_seconds())
        return min(ttl, seconds_left)

    async def invalidate(self, user_id: str) -> int:
        return await self.cache.invalidate_tag(user_tag(user_id))
