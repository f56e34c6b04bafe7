# billing_sync/extensions.py
"""
Flask extensions initialization module.
Extension objects are created unbound here and attached to the app in create_app.
"""

import logging

import redis
from flask_jwt_extended import JWTManager
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
jwt = JWTManager()

logger = logging.getLogger(__name__)


def init_extensions(app):
    """Bind SQLAlchemy and JWT to the app."""
    db.init_app(app)
    logger.info("SQLAlchemy initialized")

    jwt.init_app(app)
    logger.info("JWT Manager initialized")

    return app


def init_redis(app):
    """
    Build the Redis client used for per-user reconciliation locks.

    Returns None when REDIS_URL is not configured. Outside production an
    unreachable Redis is logged and treated as absent; in production it fails
    startup.
    """
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        logger.info("REDIS_URL not set, per-user locks disabled (version checks only)")
        return None

    try:
        client = redis.from_url(
            redis_url,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30,
        )
        client.ping()
        logger.info("Redis initialized successfully")
        return client
    except redis.ConnectionError as e:
        logger.error(f"Failed to connect to Redis: {e}")
        if app.config.get("ENVIRONMENT") == "production":
            raise
        return None
