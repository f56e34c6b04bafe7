from billing_sync.errors import ConfigurationError

from .base import BaseConfig


class ProductionConfig(BaseConfig):
    """
    Production configuration.
    """

    DEBUG = False
    ENVIRONMENT = "production"

    REQUIRED_SETTINGS = (
        "SECRET_KEY",
        "JWT_SECRET_KEY",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "ZOHO_WEBHOOK_SECRET",
        "SITE_URL",
    )

    @classmethod
    def validate(cls, config):
        missing = [name for name in cls.REQUIRED_SETTINGS if not config.get(name)]
        if missing:
            raise ConfigurationError(
                f"Missing required production settings: {', '.join(missing)}"
            )

        if "sqlite" in (config.get("SQLALCHEMY_DATABASE_URI") or "").lower():
            raise ConfigurationError("SQLite is not suitable for production")

        if not config.get("STRIPE_PRICE_IDS"):
            raise ConfigurationError("No STRIPE_PRICE_ID_<PLAN> variables configured")

        return config
