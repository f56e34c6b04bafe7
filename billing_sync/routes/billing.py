from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from billing_sync.errors import ForbiddenError, NotFoundError, ValidationError
from billing_sync.middleware.access_gate import denied_response
from billing_sync.models import Subscription

billing_bp = Blueprint("billing", __name__)

RECENT_PAYMENTS = 10


def _services():
    return current_app.extensions["billing"]


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _caller_id(data):
    """JWT identity; a body ``userId`` may only repeat it."""
    user_id = get_jwt_identity()
    claimed = data.get("userId")
    if claimed is not None and str(claimed) != str(user_id):
        raise ForbiddenError("userId does not match the authenticated user")
    return user_id


@billing_bp.route("/checkout-session", methods=["POST"])
@jwt_required()
def create_checkout_session():
    data = _json_body()
    url = _services().sessions.create_checkout_session(
        _caller_id(data),
        data.get("planId"),
        data.get("returnUrl"),
    )
    return jsonify({"url": url})


@billing_bp.route("/portal-session", methods=["POST"])
@jwt_required()
def create_portal_session():
    data = _json_body()
    url = _services().sessions.create_portal_session(_caller_id(data))
    return jsonify({"url": url})


@billing_bp.route("/cancel-subscription", methods=["POST"])
@jwt_required()
def cancel_subscription():
    data = _json_body()
    message = _services().sessions.cancel_subscription(
        data.get("subscriptionId"),
        user_id=get_jwt_identity(),
    )
    return jsonify({"message": message})


@billing_bp.route("/subscription", methods=["GET"])
@jwt_required()
def subscription_summary():
    """Current subscription and recent payments for the account page."""
    subscription = Subscription.for_user(get_jwt_identity())
    if subscription is None:
        raise NotFoundError("No subscription found")

    payments = subscription.payments.limit(RECENT_PAYMENTS).all()
    return jsonify({
        "subscription": subscription.to_dict(),
        "payments": [payment.to_dict() for payment in payments],
    })


@billing_bp.route("/access", methods=["GET"])
@jwt_required()
def access():
    decision = _services().access_gate.authorize(get_jwt_identity())
    if not decision.allowed:
        return denied_response(decision)
    return jsonify({"allowed": True, "status": "active"})
