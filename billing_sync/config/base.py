import os
import re

from billing_sync.errors import ConfigurationError

_PRICE_ENV_PREFIX = "STRIPE_PRICE_ID_"


def _env_int(name, default):
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


def normalize_plan_id(plan_id):
    """Map a plan id like ``annual`` or ``pro-monthly`` onto its env suffix."""
    return re.sub(r"[^A-Z0-9]+", "_", str(plan_id or "").strip().upper()).strip("_")


def collect_price_ids(environ=None):
    """
    Build the plan -> Stripe price mapping from ``STRIPE_PRICE_ID_<PLAN>``
    variables, e.g. ``STRIPE_PRICE_ID_MONTHLY=price_123`` yields
    ``{"MONTHLY": "price_123"}``.
    """
    environ = os.environ if environ is None else environ
    prices = {}
    for key, value in environ.items():
        if not key.startswith(_PRICE_ENV_PREFIX):
            continue
        plan = normalize_plan_id(key[len(_PRICE_ENV_PREFIX):])
        if plan and value and value.strip():
            prices[plan] = value.strip()
    return prices


class BaseConfig:
    """
    Base configuration shared by all environments.
    """

    # Flask
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "base"
    SECRET_KEY = os.getenv("SECRET_KEY")
    APP_NAME = "billing-sync"

    # Store
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///billing.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Auth (Access Gate callers)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_WEBHOOK_TOLERANCE_SECONDS = _env_int("STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300)
    STRIPE_PRICE_IDS = collect_price_ids()

    # Zoho
    ZOHO_WEBHOOK_SECRET = os.getenv("ZOHO_WEBHOOK_SECRET")

    # Redirects
    SITE_URL = os.getenv("SITE_URL") or os.getenv("NEXT_PUBLIC_SITE_URL")
    PORTAL_RETURN_PATH = os.getenv("PORTAL_RETURN_PATH", "/account/subscription")

    # Reconciliation
    REDIS_URL = os.getenv("REDIS_URL")
    WEBHOOK_DEADLINE_SECONDS = _env_int("WEBHOOK_DEADLINE_SECONDS", 8)
    WEBHOOK_RECLAIM_AFTER_SECONDS = _env_int("WEBHOOK_RECLAIM_AFTER_SECONDS", 60)
    RECONCILE_MAX_ATTEMPTS = _env_int("RECONCILE_MAX_ATTEMPTS", 3)
    USER_LOCK_TTL_SECONDS = _env_int("USER_LOCK_TTL_SECONDS", 30)

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_REQUESTS = os.getenv("LOG_REQUESTS", "false").lower() == "true"
    SENTRY_DSN = os.getenv("SENTRY_DSN")

    CELERY = {
        "broker_url": os.getenv("REDIS_URL") or "memory://",
        "task_ignore_result": True,
    }

    @classmethod
    def validate(cls, config):
        """Hook for environment-specific checks; ``config`` is the Flask config."""
        return config
