# backend/app/routes/system.py
"""
System health endpoint.

Reports database connectivity and the state of the cash desk: how many
registers are configured, how many sessions are active, and whether the
denomination catalog has been seeded.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Denomination, Register, RegisterSession
from ..models.registers import ACTIVE_SESSION_STATUSES
from app.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        register_count = db.session.query(Register).count()
        active_sessions = db.session.query(RegisterSession).filter(
            RegisterSession.status.in_(ACTIVE_SESSION_STATUSES)
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "registers": register_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_denomination_catalog_health() -> dict:
    """
    A cash count cannot be taken without active denominations.
    """
    start_time = time.time()
    try:
        active = db.session.query(Denomination).filter(Denomination.is_active.is_(True)).count()
        elapsed_ms = (time.time() - start_time) * 1000

        if active == 0:
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "No active denominations; run `flask denominations seed`",
                "details": {"active_denominations": 0},
            }

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"active_denominations": active},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Denomination catalog health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Denomination catalog error"
        }


@system_bp.get("/health")
@system_bp.get("/api/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    database_health = check_database_health()
    catalog_health = check_denomination_catalog_health()

    all_checks = [database_health, catalog_health]
    unhealthy_count = sum(1 for check in all_checks if check["status"] == "unhealthy")
    degraded_count = sum(1 for check in all_checks if check["status"] == "degraded")

    if unhealthy_count > 0:
        overall_status = "unhealthy"
        http_status = 503
    elif degraded_count > 0:
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "denomination_catalog": catalog_health,
        }
    }

    return response, http_status
