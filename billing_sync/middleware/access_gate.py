"""
Access gate for paid features.

Reads only the cached Profile.subscription_status; it never calls a billing
provider, so it stays fast and works while providers are down.
"""
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Callable, Optional

from flask import current_app, g, jsonify
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from billing_sync.billing.state_machine import ProfileStatus
from billing_sync.extensions import db
from billing_sync.models import Profile

logger = logging.getLogger(__name__)

UPGRADE_URL = "/pricing"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: Optional[str] = None


class AccessGate:
    def authorize(self, user_id) -> AccessDecision:
        profile = db.session.get(Profile, str(user_id)) if user_id else None
        status = profile.subscription_status if profile else ProfileStatus.NONE.value

        if status == ProfileStatus.ACTIVE.value:
            return AccessDecision(True)
        if status == ProfileStatus.CANCELLED.value:
            return AccessDecision(False, "subscription_cancelled")
        return AccessDecision(False, "no_subscription")


def denied_response(decision):
    return jsonify({
        "error": "Active subscription required",
        "code": "SUBSCRIPTION_REQUIRED",
        "status": decision.reason,
        "upgrade_url": UPGRADE_URL,
    }), 403


def subscription_required(fn: Callable) -> Callable:
    """
    Decorator for endpoints that need an active subscription.
    The caller is identified by the JWT identity.
    """
    @wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        verify_jwt_in_request(optional=True)
        user_id = get_jwt_identity()
        if not user_id:
            logger.warning("Unauthorized access attempt to subscription-protected endpoint")
            return jsonify({
                "error": "Authentication required",
                "code": "AUTH_REQUIRED",
            }), 401

        decision = current_app.extensions["billing"].access_gate.authorize(user_id)
        if not decision.allowed:
            logger.info(
                "Subscription required",
                extra={"user_id": user_id, "reason": decision.reason},
            )
            return denied_response(decision)

        g.billing_user_id = user_id
        return fn(*args, **kwargs)

    return wrapper
