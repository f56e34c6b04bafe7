import os

from billing_sync.errors import ConfigurationError

from .base import BaseConfig, collect_price_ids, normalize_plan_id
from .development import DevelopmentConfig
from .production import ProductionConfig
from .testing import TestingConfig

_CONFIGS = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config(name=None):
    """
    Resolve and return the correct configuration class
    based on ``name`` or the APP_ENV environment variable.

    Supported values:
    - development
    - testing
    - production
    """

    env = (name or os.getenv("APP_ENV", "development")).lower()

    try:
        return _CONFIGS[env]
    except KeyError:
        raise ConfigurationError(f"Invalid APP_ENV value: {env}")


__all__ = [
    "BaseConfig",
    "DevelopmentConfig",
    "ProductionConfig",
    "TestingConfig",
    "collect_price_ids",
    "get_config",
    "normalize_plan_id",
]
