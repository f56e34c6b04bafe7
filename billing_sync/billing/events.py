"""
Canonical billing events.

Both providers are normalized into ``CanonicalEvent`` so one reconciler can
apply them. ``EventKind`` is closed: adding a member without a reconciler
handler is caught by the test suite.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class EventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    PAYMENT_SUCCEEDED = "payment_succeeded"


class Outcome(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    NOOP = "noop"
    SKIPPED = "skipped"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(frozen=True)
class PaymentInfo:
    external_payment_id: str
    amount: Decimal
    currency: str
    payment_method: Optional[str] = None
    status: str = "succeeded"


@dataclass(frozen=True)
class CanonicalEvent:
    kind: EventKind
    provider: str
    event_type: str
    fingerprint: str
    external_subscription_id: Optional[str]
    occurred_at: Optional[datetime] = None
    user_id: Optional[str] = None
    external_customer_id: Optional[str] = None
    plan_id: Optional[str] = None
    price_id: Optional[str] = None
    status: Optional[str] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    payment: Optional[PaymentInfo] = None
    metadata: dict = field(default_factory=dict)

    @property
    def lock_key(self):
        """Key for the per-user lock; falls back to the provider subscription."""
        if self.user_id:
            return f"user:{self.user_id}"
        if self.external_subscription_id:
            return f"sub:{self.provider}:{self.external_subscription_id}"
        return f"event:{self.fingerprint}"

    def log_context(self):
        return {
            "provider": self.provider,
            "event_type": self.event_type,
            "fingerprint": self.fingerprint,
            "user_id": self.user_id,
            "subscription_id": self.external_subscription_id,
        }


@dataclass(frozen=True)
class Unhandled:
    """An authentic event we intentionally do not act on."""

    provider: str
    event_type: str
    reason: str = "unsupported_event_type"


@dataclass(frozen=True)
class Admission:
    admitted: bool
    record_id: Optional[int] = None
    reclaimed: bool = False

    @classmethod
    def duplicate(cls, record_id=None):
        return cls(admitted=False, record_id=record_id)


@dataclass(frozen=True)
class WebhookResult:
    outcome: Outcome
    fingerprint: Optional[str] = None
    event_type: Optional[str] = None
