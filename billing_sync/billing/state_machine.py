from enum import Enum

from billing_sync.errors import InvalidStateTransition


class Provider(str, Enum):
    STRIPE = "stripe"
    ZOHO = "zoho"


class SubscriptionStatus(str, Enum):
    INCOMPLETE = "incomplete"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class ProfileStatus(str, Enum):
    NONE = "none"
    ACTIVE = "active"
    CANCELLED = "cancelled"


# None stands for "no subscription row yet".
ALLOWED_TRANSITIONS = {
    None: {SubscriptionStatus.INCOMPLETE, SubscriptionStatus.ACTIVE},
    SubscriptionStatus.INCOMPLETE: {
        SubscriptionStatus.INCOMPLETE,
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.CANCELLED,
    },
    SubscriptionStatus.ACTIVE: {SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED},
    SubscriptionStatus.CANCELLED: {
        SubscriptionStatus.CANCELLED,
        SubscriptionStatus.INCOMPLETE,
        SubscriptionStatus.ACTIVE,
    },
}

_PROFILE_MIRROR = {
    SubscriptionStatus.INCOMPLETE: ProfileStatus.NONE,
    SubscriptionStatus.ACTIVE: ProfileStatus.ACTIVE,
    SubscriptionStatus.CANCELLED: ProfileStatus.CANCELLED,
}


def coerce_status(value):
    if value is None or isinstance(value, SubscriptionStatus):
        return value
    return SubscriptionStatus(value)


def can_transition(current, target):
    return coerce_status(target) in ALLOWED_TRANSITIONS[coerce_status(current)]


def transition(current, target):
    """
    Validate ``current -> target`` and return the target status.

    This is the only place subscription statuses are allowed to change.
    """
    current = coerce_status(current)
    target = coerce_status(target)
    if target not in ALLOWED_TRANSITIONS[current]:
        label = current.value if current else "none"
        raise InvalidStateTransition(f"invalid_transition:{label}->{target.value}")
    return target


def profile_status_for(status):
    """Cached summary written to Profile.subscription_status."""
    return _PROFILE_MIRROR[coerce_status(status)]
