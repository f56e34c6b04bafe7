import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from billing_sync.extensions import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


def check_database():
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Database health check failed", extra={"error": str(e)})
        return {"status": "error", "message": "database unavailable"}


@health_bp.route("/health", methods=["GET"])
def health():
    database = check_database()
    healthy = database["status"] == "ok"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "api": "ok",
        "database": database,
    }), 200 if healthy else 503
