# Overview: Health endpoint.

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


@system_bp.get("/health")
def health():
    """
    Database round trip.

    Returns:
    - 200: database reachable
    - 503: database error
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        database = {"status": "healthy"}
        http_status = 200
    except Exception:
        current_app.logger.exception("Database health check failed")
        database = {"status": "unhealthy", "error": "Database error"}
        http_status = 503
    database["latency_ms"] = round((time.time() - start_time) * 1000, 2)

    return {
        "success": http_status == 200,
        "status": database["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database},
    }, http_status
