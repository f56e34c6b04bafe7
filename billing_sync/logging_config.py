# billing_sync/logging_config.py
import logging
import logging.config
import time

from flask import g, has_app_context, request
from pythonjsonlogger import jsonlogger

NOISY_LOGGERS = ("werkzeug", "sqlalchemy.engine", "urllib3", "stripe")


class RequestIdFilter(logging.Filter):
    """
    Inject request_id into every log record if present.
    """

    def filter(self, record):
        record.request_id = getattr(g, "request_id", None) if has_app_context() else None
        return True


def build_logging_config(level="INFO"):
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {
                "()": RequestIdFilter,
            },
        },
        "formatters": {
            "json": {
                "()": jsonlogger.JsonFormatter,
                "fmt": (
                    "%(asctime)s "
                    "%(levelname)s "
                    "%(name)s "
                    "%(message)s "
                    "%(request_id)s "
                    "%(module)s "
                    "%(funcName)s "
                    "%(lineno)d"
                ),
            },
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["request_id"],
            },
        },
        "root": {
            "level": level,
            "handlers": ["default"],
        },
        "loggers": {name: {"level": "WARNING"} for name in NOISY_LOGGERS},
    }


def setup_logging(app):
    """Configure structured JSON logging and optional request/response logs."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    logging.config.dictConfig(build_logging_config(level))

    logger = logging.getLogger("billing_sync.requests")

    def _enabled():
        return app.config.get("LOG_REQUESTS", False) or app.config.get("DEBUG", False)

    @app.before_request
    def log_request():
        if _enabled():
            g.start_time = time.perf_counter()
            logger.info(
                f"Request: {request.method} {request.path}",
                extra={
                    "ip": request.remote_addr,
                    "user_agent": request.user_agent.string if request.user_agent else None,
                },
            )

    @app.after_request
    def log_response(response):
        if _enabled() and "start_time" in g:
            duration = (time.perf_counter() - g.start_time) * 1000
            logger.info(
                f"Response: {request.method} {request.path} - {response.status_code}",
                extra={
                    "status_code": response.status_code,
                    "duration_ms": round(duration, 2),
                    "method": request.method,
                    "path": request.path,
                },
            )
        return response

    return app


def configure_logging_for_non_flask(level="INFO"):
    """Logging for Celery workers and standalone scripts."""
    logging.config.dictConfig(build_logging_config(level.upper()))
