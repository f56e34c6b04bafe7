import json

import pytest

from billing_sync.models import PaymentRecord, Profile, Subscription, WebhookEvent
from factories import (
    checkout_completed,
    get_profile,
    get_subscription,
    sign_stripe,
    stripe_event,
    subscription_event,
    zoho_event,
)

pytestmark = pytest.mark.webhook


def _row_counts():
    return (
        WebhookEvent.query.count(),
        Subscription.query.count(),
        Profile.query.count(),
        PaymentRecord.query.count(),
    )


def test_checkout_webhook_scenario(post_stripe):
    response = post_stripe(checkout_completed("U1", "S1", "P1", 4900))

    assert response.status_code == 200
    assert response.get_json() == {"received": True}
    assert get_subscription("U1").status == "active"
    assert str(PaymentRecord.query.one().amount) == "49.00"
    assert get_profile("U1").subscription_status == "active"


def test_duplicate_delivery_is_acknowledged_without_reapplying(post_stripe):
    payload = checkout_completed("U1", "S1", "P1")

    first = post_stripe(payload)
    second = post_stripe(payload)

    assert first.status_code == 200
    assert second.status_code == 200
    assert WebhookEvent.query.count() == 1
    assert PaymentRecord.query.count() == 1


def test_tampered_body_is_rejected_with_zero_writes(client):
    body = json.dumps(checkout_completed("U1", "S1", "P1")).encode()
    signature = sign_stripe(body)
    tampered = body.replace(b'"U1"', b'"U2"')

    response = client.post(
        "/webhooks/stripe",
        data=tampered,
        headers={"Stripe-Signature": signature},
        content_type="application/json",
    )

    assert response.status_code == 400
    assert response.data == b""
    assert _row_counts() == (0, 0, 0, 0)


def test_missing_signature_is_rejected(client):
    response = client.post("/webhooks/stripe", data=b"{}", content_type="application/json")

    assert response.status_code == 400
    assert _row_counts() == (0, 0, 0, 0)


def test_signed_garbage_is_a_validation_error(client):
    body = b"not json"
    response = client.post(
        "/webhooks/stripe",
        data=body,
        headers={"Stripe-Signature": sign_stripe(body)},
    )

    assert response.status_code == 400
    assert WebhookEvent.query.count() == 0


def test_unhandled_event_is_acknowledged_and_not_ledgered(post_stripe):
    response = post_stripe(stripe_event("customer.created", {"id": "cus_1"}))

    assert response.status_code == 200
    assert WebhookEvent.query.count() == 0


def test_unknown_subscription_returns_404_and_can_be_retried(post_stripe):
    activated = subscription_event("customer.subscription.updated", "S1", status="active")

    missing = post_stripe(activated)

    record = WebhookEvent.query.one()
    assert missing.status_code == 404
    assert record.processed is False
    assert "not found" in record.last_error

    post_stripe(checkout_completed("U1", "S1", "P1"))
    retried = post_stripe(activated)

    assert retried.status_code == 200
    assert WebhookEvent.query.filter_by(processed=True).count() == 2


def test_zoho_webhook_round_trip(post_zoho):
    created = zoho_event(
        "subscription.created",
        {"subscription": {"subscription_id": "Z1", "customer_id": "zc_1", "reference_id": "U5"}},
    )
    activated = zoho_event(
        "subscription.activated",
        {"subscription": {"subscription_id": "Z1", "customer_id": "zc_1"}},
    )

    assert post_zoho(created).status_code == 200
    assert post_zoho(activated).status_code == 200
    assert get_subscription("U5").provider == "zoho"
    assert get_profile("U5").subscription_status == "active"


def test_zoho_bad_signature_is_rejected(post_zoho):
    created = zoho_event(
        "subscription.created",
        {"subscription": {"subscription_id": "Z1", "customer_id": "zc_1", "reference_id": "U5"}},
    )

    response = post_zoho(created, signature="0" * 64)

    assert response.status_code == 400
    assert _row_counts() == (0, 0, 0, 0)


def test_zoho_unpaid_resubscribe_after_cancellation_is_acknowledged(post_zoho):
    def subscription(event_type, subscription_id, status, event_time):
        data = {"subscription_id": subscription_id, "customer_id": "zc_1", "reference_id": "U5"}
        if status:
            data["status"] = status
        return zoho_event(event_type, {"subscription": data}, event_time=event_time)

    assert post_zoho(subscription("subscription.created", "Z1", "live", "2024-05-01T10:00:00Z")).status_code == 200
    assert post_zoho(subscription("subscription.cancelled", "Z1", None, "2024-05-02T10:00:00Z")).status_code == 200

    response = post_zoho(subscription("subscription.created", "Z2", "unpaid", "2024-05-03T10:00:00Z"))

    assert response.status_code == 200
    assert get_subscription("U5").status == "incomplete"
    assert WebhookEvent.query.filter_by(processed=False).count() == 0


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.get_json()["database"]["status"] == "ok"
