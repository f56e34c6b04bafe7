# billing_sync/error_handlers.py
import logging

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from billing_sync.errors import BillingError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """Register JSON error handlers for the application"""

    @app.errorhandler(BillingError)
    def handle_billing_error(error):
        log = logger.error if error.status_code >= 500 else logger.warning
        log(
            f"{error.__class__.__name__}: {error.message} - Path: {request.path}",
            extra={"code": error.code, "status_code": error.status_code},
        )
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            "error": error.name,
            "code": error.name.upper().replace(" ", "_"),
            "path": request.path,
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.exception(f"Unhandled error - Path: {request.path}")
        return jsonify({
            "error": "Internal server error",
            "code": "INTERNAL_ERROR",
        }), 500
