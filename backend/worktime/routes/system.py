# backend/worktime/routes/system.py
"""
System health endpoint.

Checks the database and reports cascades left behind by an interrupted
ledger recompute (they are resumed by `flask balances resume`).
"""

import time
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Employee, PendingRecompute
from worktime.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tracked = db.session.query(Employee).filter_by(time_tracking_enabled=True, is_active=True).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tracked_employees": tracked},
        }
    except SQLAlchemyError:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database connection failed",
        }


def check_ledger_health() -> dict:
    """Pending cascades are not an outage, but balances of those employees may be stale."""
    try:
        pending = db.session.query(PendingRecompute).count()
    except SQLAlchemyError:
        current_app.logger.exception("Ledger health check failed")
        return {"status": "unhealthy", "error": "Ledger check failed"}
    if pending:
        return {
            "status": "degraded",
            "warning": f"{pending} balance cascade(s) pending",
            "details": {"pending_recomputes": pending},
        }
    return {"status": "healthy", "details": {"pending_recomputes": 0}}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    ledger_health = (
        check_ledger_health() if database_health["status"] == "healthy" else {"status": "unknown"}
    )

    all_checks = [database_health, ledger_health]
    if any(c["status"] == "unhealthy" for c in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(c["status"] == "degraded" for c in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "ledger": ledger_health,
        },
    }, http_status
