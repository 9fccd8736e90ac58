# backend/tillcore/routes/system.py
"""
System health endpoint.

Reports database connectivity and the state of the post-commit queue.
"""

import time
from flask import Blueprint, jsonify, current_app
from ..extensions import db
from ..models import OutboxTask
from ..services import outbox_service
from tillcore.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and the outbox backlog.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        pending = db.session.query(OutboxTask).filter_by(status=outbox_service.STATUS_PENDING).count()
        failed = db.session.query(OutboxTask).filter_by(status=outbox_service.STATUS_FAILED).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "outbox_pending": pending,
                "outbox_failed": failed,
            }
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
    }), 200 if healthy else 503
