"""
Access data models for the Premium Access service.
"""

import math
from typing import Optional, List, Union
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator


PRICING_URL = "/pricing"
REGISTER_URL = "/auth/register"

AUTHENTICATED_PREVIEW_LENGTH = 300
ANONYMOUS_PREVIEW_LENGTH = 200


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and normalise aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UserRole(str, Enum):
    """Subject roles."""
    FREE = "FREE"
    PLAYER = "PLAYER"
    COACH = "COACH"
    PARENT = "PARENT"
    ADMIN = "ADMIN"


class ZoneKind(str, Enum):
    """Content-access zones."""
    READ = "read"
    COACH = "coach"
    PLAYER = "player"
    PARENT = "parent"
    SERIES = "series"


class SubscriptionStatus(str, Enum):
    """Subscription status as reported by the billing side."""
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    TRIALING = "TRIALING"
    INCOMPLETE = "INCOMPLETE"
    CANCELED = "CANCELED"
    UNPAID = "UNPAID"


ACTIVE_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE})

# Roles allowed into each zone regardless of the zone's subscription flag
ZONE_ROLE_ACCESS = {
    ZoneKind.READ: frozenset(UserRole),
    ZoneKind.COACH: frozenset({UserRole.COACH, UserRole.ADMIN}),
    ZoneKind.PLAYER: frozenset({UserRole.PLAYER, UserRole.ADMIN}),
    ZoneKind.PARENT: frozenset({UserRole.PARENT, UserRole.ADMIN}),
    ZoneKind.SERIES: frozenset({UserRole.PLAYER, UserRole.COACH, UserRole.PARENT, UserRole.ADMIN}),
}


class Zone(BaseModel):
    """Zone membership of a content item."""
    zone: ZoneKind
    requires_subscription: bool = False


class ContentItem(BaseModel):
    """Content item as read from the content store."""
    id: str
    title: str = ""
    slug: str = ""
    excerpt: Optional[str] = None
    content: str = ""
    read_time: int = 0
    category: Optional[str] = None
    is_premium: bool = False
    premium_release_date: Optional[datetime] = None
    is_permanent_premium: bool = False
    zones: List[Zone] = Field(default_factory=list)

    @field_validator("premium_release_date")
    @classmethod
    def _release_date_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class Subject(BaseModel):
    """Requesting subject; no subject_id means anonymous."""
    role: UserRole = UserRole.FREE
    subject_id: Optional[str] = None
    subscription_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.subject_id)

    @property
    def cache_id(self) -> str:
        return self.subject_id or "anonymous"


class Subscription(BaseModel):
    """Subscription record owned by the subscription store."""
    id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_start: Optional[datetime] = None
    current_period_end: datetime
    cancel_at_period_end: bool = False

    @field_validator("current_period_start", "current_period_end")
    @classmethod
    def _period_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def is_active_at(self, now: datetime) -> bool:
        """Active means ACTIVE or PAST_DUE with the paid period still running."""
        return self.status in ACTIVE_STATUSES and self.current_period_end > now

    def days_remaining(self, now: datetime) -> int:
        seconds = (self.current_period_end - now).total_seconds()
        return max(0, math.ceil(seconds / 86400))


class ActiveSubscriptionView(BaseModel):
    """Subscription state as seen by the decision engine."""
    subscription_id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_end: datetime
    cancel_at_period_end: bool = False
    is_active: bool
    days_remaining: int

    @classmethod
    def from_subscription(cls, subscription: Subscription, now: datetime) -> "ActiveSubscriptionView":
        return cls(
            subscription_id=subscription.id,
            plan_id=subscription.plan_id,
            status=subscription.status,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            is_active=subscription.is_active_at(now),
            days_remaining=subscription.days_remaining(now)
        )


class AccessKind(str, Enum):
    """Discriminator of the decision outcome union."""
    ADMIN = "admin"
    FREE = "free"
    TIME_GATED_RELEASED = "time_gated_released"
    TIME_GATED_PENDING = "time_gated_pending"
    PERMANENT_PREMIUM_SUBSCRIBED = "permanent_premium_subscribed"
    PERMANENT_PREMIUM_UNSUBSCRIBED = "permanent_premium_unsubscribed"
    ZONE_GRANTED = "zone_granted"
    ZONE_DENIED = "zone_denied"


class AccessDecision(BaseModel):
    """Access decision returned to callers and cached transiently."""
    has_access: bool = Field(..., description="Whether full content is served")
    kind: AccessKind = Field(..., description="Which policy branch decided")
    reason: str = Field(..., description="Human-readable reason")
    requires_upgrade: bool = Field(False, description="Whether an upgrade unlocks the content")
    upgrade_url: Optional[str] = Field(None, description="Where to send the subject to upgrade")
    preview_length: Optional[int] = Field(None, description="Plain-text preview budget")
    release_date: Optional[datetime] = Field(None, description="When the content becomes free")

    @model_validator(mode="after")
    def _check_shape(self) -> "AccessDecision":
        if self.has_access and self.preview_length is not None:
            raise ValueError("granted decisions carry no preview length")
        if not self.has_access and (not self.upgrade_url or self.preview_length is None):
            raise ValueError("denied decisions need an upgrade url and a preview length")
        return self


class ContentPreview(BaseModel):
    """Preview of a content item for a given subject."""
    id: str
    title: str
    excerpt: str
    preview_content: str
    is_premium: bool
    release_date: Optional[datetime] = None
    requires_subscription: bool  # any zone of the item requires a subscription
    estimated_read_time: int
    decision: AccessDecision


# Decision outcomes. Exactly one is produced per evaluation.

@dataclass(frozen=True)
class AdminAccess:
    pass


@dataclass(frozen=True)
class FreeAccess:
    pass


@dataclass(frozen=True)
class TimeGatedReleased:
    release_date: datetime


@dataclass(frozen=True)
class TimeGatedPending:
    """Premium until release_date; granted early to subscribers."""
    release_date: datetime
    authenticated: bool
    subscribed: bool
    subscription_end: Optional[datetime] = None


@dataclass(frozen=True)
class PermanentPremiumSubscribed:
    subscription_end: datetime


@dataclass(frozen=True)
class PermanentPremiumUnsubscribed:
    authenticated: bool


@dataclass(frozen=True)
class ZoneGranted:
    zone: ZoneKind
    role: UserRole
    via_role: bool


@dataclass(frozen=True)
class ZoneDenied:
    zone: Optional[ZoneKind]
    authenticated: bool


AccessOutcome = Union[
    AdminAccess,
    FreeAccess,
    TimeGatedReleased,
    TimeGatedPending,
    PermanentPremiumSubscribed,
    PermanentPremiumUnsubscribed,
    ZoneGranted,
    ZoneDenied,
]


def _granted(kind: AccessKind, reason: str) -> AccessDecision:
    return AccessDecision(has_access=True, kind=kind, reason=reason, requires_upgrade=False)


def _denied(
    kind: AccessKind,
    reason: str,
    authenticated: bool,
    release_date: Optional[datetime] = None,
    upgrade_url: Optional[str] = None
) -> AccessDecision:
    if upgrade_url is None:
        upgrade_url = PRICING_URL if authenticated else REGISTER_URL
    return AccessDecision(
        has_access=False,
        kind=kind,
        reason=reason,
        requires_upgrade=True,
        upgrade_url=upgrade_url,
        preview_length=AUTHENTICATED_PREVIEW_LENGTH if authenticated else ANONYMOUS_PREVIEW_LENGTH,
        release_date=release_date
    )


def to_decision(outcome: AccessOutcome) -> AccessDecision:
    """Map an outcome onto the decision returned to callers."""
    if isinstance(outcome, AdminAccess):
        return _granted(AccessKind.ADMIN, "admin access")

    if isinstance(outcome, FreeAccess):
        return _granted(AccessKind.FREE, "free content")

    if isinstance(outcome, TimeGatedReleased):
        return _granted(AccessKind.TIME_GATED_RELEASED, "released to free users")

    if isinstance(outcome, TimeGatedPending):
        if outcome.subscribed:
            return _granted(AccessKind.TIME_GATED_PENDING, "premium subscription")
        return _denied(
            AccessKind.TIME_GATED_PENDING,
            f"premium content - free after {outcome.release_date.date().isoformat()}",
            outcome.authenticated,
            release_date=outcome.release_date
        )

    if isinstance(outcome, PermanentPremiumSubscribed):
        return _granted(AccessKind.PERMANENT_PREMIUM_SUBSCRIBED, "premium subscription")

    if isinstance(outcome, PermanentPremiumUnsubscribed):
        return _denied(
            AccessKind.PERMANENT_PREMIUM_UNSUBSCRIBED,
            "premium content - subscription required",
            outcome.authenticated
        )

    if isinstance(outcome, ZoneGranted):
        if outcome.via_role:
            return _granted(AccessKind.ZONE_GRANTED, f"{outcome.role.value} role access")
        return _granted(AccessKind.ZONE_GRANTED, "zone access granted")

    if isinstance(outcome, ZoneDenied):
        zone_name = outcome.zone.value if outcome.zone is not None else "premium"
        return _denied(
            AccessKind.ZONE_DENIED,
            f"requires {zone_name} subscription",
            outcome.authenticated,
            upgrade_url=PRICING_URL
        )

    raise TypeError(f"Unhandled access outcome: {outcome!r}")


class ReleaseError(BaseModel):
    """A single item the release pass could not flip."""
    item_id: str
    message: str


class ReleaseReport(BaseModel):
    """Result of one release pass."""
    released: int = 0
    errors: List[ReleaseError] = Field(default_factory=list)


class BatchScheduleResult(BaseModel):
    """Result of scheduling several items at once."""
    success: int = 0
    failed: List[str] = Field(default_factory=list)


class ScheduledRelease(BaseModel):
    """Upcoming release as listed for editors."""
    id: str
    title: str
    slug: str
    category: Optional[str] = None
    release_date: datetime
    days_until_release: int
