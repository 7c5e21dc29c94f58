"""
Store interfaces consumed by the Premium Access service.

Content and subscriptions are owned by other systems; this service reads
them through these protocols and only writes the premium flags on content.
"""

from typing import Any, List, Optional, Protocol
from datetime import datetime

from .access.models import ContentItem, Subscription


class ContentStore(Protocol):
    """Source of truth for content items."""

    async def get_by_id(self, content_id: str) -> Optional[ContentItem]:
        ...

    async def update(self, content_id: str, **fields: Any) -> None:
        """Apply field changes; raises if the item does not exist."""
        ...

    async def find_releasable(self, now: datetime) -> List[ContentItem]:
        """Premium, not permanent, with premium_release_date <= now."""
        ...

    async def find_scheduled(self, now: datetime, limit: int) -> List[ContentItem]:
        """Premium with premium_release_date > now, soonest first."""
        ...

    async def increment_view_count(self, content_id: str) -> None:
        ...


class SubscriptionStore(Protocol):
    """Source of truth for subscriptions."""

    async def get_active_for_user(self, user_id: str) -> Optional[Subscription]:
        """Most recent ACTIVE or PAST_DUE subscription for the user, if any."""
        ...
