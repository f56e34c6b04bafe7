from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from billing_sync import create_app
from billing_sync.billing.ledger import IdempotencyLedger
from billing_sync.config import collect_price_ids, get_config, normalize_plan_id
from billing_sync.errors import ConfigurationError
from billing_sync.extensions import db
from billing_sync.models import WebhookEvent
from billing_sync.workers.webhook_tasks import reprocess_pending_events
from factories import checkout_completed, get_subscription

STORE_DOWN = OperationalError("UPDATE webhook_events", {}, Exception("disk I/O error"))


def _leave_unprocessed(post_stripe):
    with patch.object(IdempotencyLedger, "mark_processed", side_effect=STORE_DOWN):
        assert post_stripe(checkout_completed("U1", "S1", "P1")).status_code == 503


def test_reprocess_cli_command(app, post_stripe):
    _leave_unprocessed(post_stripe)

    result = app.test_cli_runner().invoke(args=["reprocess-webhooks", "--older-than", "0"])

    assert result.exit_code == 0
    assert "reprocessed=1 failed=0 skipped=0" in result.output
    assert get_subscription("U1").status == "active"


def test_reprocess_celery_task(app, post_stripe):
    _leave_unprocessed(post_stripe)

    result = reprocess_pending_events.apply(kwargs={"older_than_seconds": 0})

    assert result.get() == {"reprocessed": 1, "failed": 0, "skipped": 0}
    db.session.expire_all()
    assert WebhookEvent.query.one().processed is True


def test_init_db_command(app):
    result = app.test_cli_runner().invoke(args=["init-db"])

    assert result.exit_code == 0
    assert "Database initialized" in result.output


def test_health_reports_database(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_unknown_route_is_json(client):
    response = client.get("/nope")

    assert response.status_code == 404
    assert response.get_json()["code"] == "NOT_FOUND"


# ==================== CONFIG ====================

def test_price_ids_collected_from_environment():
    environ = {
        "STRIPE_PRICE_ID_MONTHLY": "price_m",
        "STRIPE_PRICE_ID_PRO_ANNUAL": " price_pa ",
        "STRIPE_PRICE_ID_EMPTY": "",
        "OTHER": "x",
    }

    assert collect_price_ids(environ) == {"MONTHLY": "price_m", "PRO_ANNUAL": "price_pa"}


@pytest.mark.parametrize("plan,expected", [("monthly", "MONTHLY"), ("pro-annual", "PRO_ANNUAL"), (None, "")])
def test_normalize_plan_id(plan, expected):
    assert normalize_plan_id(plan) == expected


def test_unknown_environment_is_rejected():
    with pytest.raises(ConfigurationError):
        get_config("staging")


def test_production_requires_secrets():
    with pytest.raises(ConfigurationError):
        create_app(
            "production",
            overrides={"SECRET_KEY": None, "SQLALCHEMY_DATABASE_URI": "postgresql://db/billing"},
        )


def test_production_rejects_sqlite():
    overrides = {
        "SECRET_KEY": "s",
        "JWT_SECRET_KEY": "j",
        "STRIPE_SECRET_KEY": "sk",
        "STRIPE_WEBHOOK_SECRET": "wh",
        "ZOHO_WEBHOOK_SECRET": "zh",
        "SITE_URL": "https://example.test",
        "STRIPE_PRICE_IDS": {"MONTHLY": "price_m"},
        "SQLALCHEMY_DATABASE_URI": "sqlite:///prod.db",
    }

    with pytest.raises(ConfigurationError, match="SQLite"):
        create_app("production", overrides=overrides)
