"""
Billing webhook reconciliation service: Flask application factory.
"""
import logging

import click
import sentry_sdk
from flask import Flask
from sentry_sdk.integrations.flask import FlaskIntegration

from billing_sync.config import get_config
from billing_sync.error_handlers import register_error_handlers
from billing_sync.extensions import db, init_extensions
from billing_sync.logging_config import setup_logging
from billing_sync.middleware.request_id import init_request_id_middleware
from billing_sync.routes import register_blueprints
from billing_sync.services import build_services
from billing_sync.workers.celery_app import celery_init_app

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


def setup_sentry(app):
    """Initialize Sentry error tracking"""
    sentry_dsn = app.config.get("SENTRY_DSN")

    if sentry_dsn and app.config.get("ENVIRONMENT") == "production":
        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment="production",
            release=__version__,
            send_default_pii=False,
        )
        logger.info("Sentry error tracking initialized")


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("reprocess-webhooks")
    @click.option("--older-than", default=300, show_default=True, help="Minimum age in seconds.")
    @click.option("--limit", default=100, show_default=True)
    def reprocess_webhooks(older_than, limit):
        """Finish webhooks that were admitted but never processed."""
        counts = app.extensions["billing"].sweeper.reprocess_pending(
            older_than_seconds=older_than, limit=limit
        )
        click.echo(
            f"reprocessed={counts['reprocessed']} failed={counts['failed']} skipped={counts['skipped']}"
        )


def create_app(config_name=None, overrides=None, stripe_client=None, redis_client=None):
    """
    Build the Flask app.

    ``overrides`` are applied on top of the config class; ``stripe_client``
    and ``redis_client`` replace the clients built from configuration.
    """
    config_class = get_config(config_name)

    app = Flask(__name__)
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)
    config_class.validate(app.config)

    init_request_id_middleware(app)
    setup_logging(app)
    setup_sentry(app)

    init_extensions(app)
    register_error_handlers(app)

    build_services(app, stripe_client=stripe_client, redis_client=redis_client)
    register_blueprints(app)
    register_commands(app)
    celery_init_app(app)

    logger.info(
        "Application created",
        extra={"environment": app.config.get("ENVIRONMENT")},
    )
    return app
