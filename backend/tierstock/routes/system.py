# backend/tierstock/routes/system.py
"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Actor, PendingOrder
from ..models.orders import ORDER_STATUS_PENDING
from tierstock.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        actor_count = db.session.query(Actor).count()
        pending_orders = db.session.query(PendingOrder).filter_by(status=ORDER_STATUS_PENDING).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "actors": actor_count,
                "pending_orders": pending_orders,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_configuration() -> dict:
    missing = [
        key for key in ("HQ_ACTOR_ID", "PAYMENT_GATEWAY_URL")
        if not current_app.config.get(key)
    ]
    if missing:
        return {"status": "degraded", "warning": f"Missing settings: {', '.join(missing)}"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (missing optional settings)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    config_health = check_configuration()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif config_health["status"] == "degraded":
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "configuration": config_health,
        }
    }
    return response, http_status
