import json
from unittest.mock import MagicMock

import pytest
from flask_jwt_extended import create_access_token

from billing_sync import create_app
from billing_sync.extensions import db
from factories import fake, sign_stripe, sign_zoho


# Custom pytest marks for organizing tests
def pytest_configure(config):
    config.addinivalue_line("markers", "payment: mark test as payment-ledger related")
    config.addinivalue_line("markers", "webhook: mark test as webhook pipeline related")
    config.addinivalue_line("markers", "concurrency: mark test as running parallel deliveries")


@pytest.fixture
def stripe_client():
    """MagicMock standing in for stripe.StripeClient."""
    client = MagicMock(name="StripeClient")
    client.checkout.sessions.create.return_value = MagicMock(
        id="cs_test_123", url="https://checkout.stripe.test/c/pay/cs_test_123"
    )
    client.billing_portal.sessions.create.return_value = MagicMock(
        id="bps_test_123", url="https://billing.stripe.test/p/session/bps_test_123"
    )
    return client


@pytest.fixture
def app(tmp_path, stripe_client):
    """Application on a file-backed SQLite database so worker threads share it."""
    app = create_app(
        "testing",
        overrides={
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'billing.db'}",
            "SQLALCHEMY_ENGINE_OPTIONS": {
                "connect_args": {"check_same_thread": False, "timeout": 30},
            },
        },
        stripe_client=stripe_client,
    )

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["billing"]


@pytest.fixture
def user_id():
    return fake.uuid4()


@pytest.fixture
def auth_headers(app):
    def _headers(identity):
        token = create_access_token(identity=str(identity))
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def post_stripe(client):
    def _post(event, signature=None, test_client=None):
        body = json.dumps(event).encode()
        return (test_client or client).post(
            "/webhooks/stripe",
            data=body,
            headers={"Stripe-Signature": signature or sign_stripe(body)},
            content_type="application/json",
        )

    return _post


@pytest.fixture
def post_zoho(client):
    def _post(event, signature=None):
        body = json.dumps(event).encode()
        return client.post(
            "/webhooks/zoho",
            data=body,
            headers={"Zoho-Signature": signature or sign_zoho(body)},
            content_type="application/json",
        )

    return _post


