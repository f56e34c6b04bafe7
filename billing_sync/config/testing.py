from .base import BaseConfig


class TestingConfig(BaseConfig):
    """
    Test configuration. Secrets are fixed so signed payloads can be built in tests.
    """

    TESTING = True
    ENVIRONMENT = "testing"

    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

    STRIPE_SECRET_KEY = "sk_test_mock"
    STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    ZOHO_WEBHOOK_SECRET = "zoho_test_secret"
    STRIPE_PRICE_IDS = {"MONTHLY": "price_monthly_test", "ANNUAL": "price_annual_test"}
    SITE_URL = "https://maps.example.test"

    REDIS_URL = None
    SENTRY_DSN = None
    LOG_LEVEL = "WARNING"

    CELERY = {
        "broker_url": "memory://",
        "task_always_eager": True,
        "task_ignore_result": True,
    }
