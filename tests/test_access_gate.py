import pytest
from flask import jsonify

from billing_sync.extensions import db
from billing_sync.middleware.access_gate import AccessGate, subscription_required
from billing_sync.models import Profile
from factories import checkout_completed, subscription_event

gate = AccessGate()


@pytest.fixture
def protected_client(app):
    @app.route("/maps/export")
    @subscription_required
    def export_map():
        return jsonify({"ok": True})

    return app.test_client()


@pytest.mark.parametrize(
    "status,allowed,reason",
    [
        ("active", True, None),
        ("cancelled", False, "subscription_cancelled"),
        ("none", False, "no_subscription"),
    ],
)
def test_authorize_reads_profile_status(app, status, allowed, reason):
    db.session.add(Profile(id="U1", subscription_status=status))
    db.session.commit()

    decision = gate.authorize("U1")

    assert decision.allowed is allowed
    assert decision.reason == reason


def test_unknown_user_has_no_subscription(app):
    assert gate.authorize("ghost").reason == "no_subscription"


def test_decorator_requires_token(protected_client):
    response = protected_client.get("/maps/export")

    assert response.status_code == 401
    assert response.get_json()["code"] == "AUTH_REQUIRED"


def test_decorator_denies_without_subscription(protected_client, auth_headers):
    response = protected_client.get("/maps/export", headers=auth_headers("U1"))

    body = response.get_json()
    assert response.status_code == 403
    assert body["code"] == "SUBSCRIPTION_REQUIRED"
    assert body["status"] == "no_subscription"
    assert body["upgrade_url"] == "/pricing"


def test_access_follows_webhooks(protected_client, auth_headers, post_stripe):
    headers = auth_headers("U1")

    post_stripe(checkout_completed("U1", "S1", "P1"))
    assert protected_client.get("/maps/export", headers=headers).status_code == 200

    post_stripe(subscription_event("customer.subscription.deleted", "S1", status="canceled"))
    response = protected_client.get("/maps/export", headers=headers)
    assert response.status_code == 403
    assert response.get_json()["status"] == "subscription_cancelled"


def test_access_endpoint(client, auth_headers, post_stripe):
    assert client.get("/billing/access", headers=auth_headers("U1")).status_code == 403

    post_stripe(checkout_completed("U1", "S1", "P1"))

    response = client.get("/billing/access", headers=auth_headers("U1"))
    assert response.status_code == 200
    assert response.get_json() == {"allowed": True, "status": "active"}


def test_subscription_summary(client, auth_headers, post_stripe):
    post_stripe(checkout_completed("U1", "S1", "P1", 4900))

    response = client.get("/billing/subscription", headers=auth_headers("U1"))

    body = response.get_json()
    assert response.status_code == 200
    assert body["subscription"]["subscription_id"] == "S1"
    assert body["subscription"]["status"] == "active"
    assert body["payments"][0]["amount"] == "49.00"


def test_subscription_summary_requires_token(client):
    assert client.get("/billing/subscription").status_code == 401
