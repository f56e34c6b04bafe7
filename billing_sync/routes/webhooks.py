import logging

from flask import Blueprint, current_app, jsonify, request

from billing_sync.billing.state_machine import Provider
from billing_sync.errors import BillingError

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__)

SIGNATURE_HEADERS = {
    Provider.STRIPE.value: "Stripe-Signature",
    Provider.ZOHO.value: "Zoho-Signature",
}


def _receive(provider):
    """
    Acknowledge with 200 once the event is applied, already seen or ignored.
    Failures answer with a bare status so the provider knows whether to retry.
    """
    pipeline = current_app.extensions["billing"].pipeline
    raw_body = request.get_data(cache=False)

    try:
        result = pipeline.handle(provider, raw_body, request.headers.get(SIGNATURE_HEADERS[provider]))
    except BillingError as e:
        log = logger.error if e.status_code >= 500 else logger.warning
        log(
            f"Webhook rejected: {e.message}",
            extra={"provider": provider, "code": e.code, "status_code": e.status_code},
        )
        return "", e.status_code

    logger.info(
        "Webhook handled",
        extra={
            "provider": provider,
            "event_type": result.event_type,
            "fingerprint": result.fingerprint,
            "outcome": result.outcome.value,
        },
    )
    return jsonify({"received": True}), 200


@webhooks_bp.route("/stripe", methods=["POST"])
def stripe_webhook():
    return _receive(Provider.STRIPE.value)


@webhooks_bp.route("/zoho", methods=["POST"])
def zoho_webhook():
    return _receive(Provider.ZOHO.value)
