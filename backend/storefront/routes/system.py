# backend/storefront/routes/system.py
"""
System health endpoint.

Reports database connectivity and the settlement backlog (failed and
dead-lettered bookkeeping tasks, orders whose stock commit did not finish).
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, SettlementTask, TaxConfiguration
from ..services import settlement_service
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(func.count(Order.id)).scalar()
        tax_configured = (
            db.session.query(TaxConfiguration.id).filter(TaxConfiguration.is_active.is_(True)).first()
            is not None
        )
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "tax_configured": tax_configured,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_settlement_health() -> dict:
    """Degraded (still operational) when bookkeeping or stock commits need attention."""
    start_time = time.time()
    try:
        failed = db.session.query(func.count(SettlementTask.id)).filter(SettlementTask.status == "failed").scalar()
        dead = db.session.query(func.count(SettlementTask.id)).filter(SettlementTask.status == "dead_letter").scalar()
        inconsistent = (
            db.session.query(func.count(Order.id)).filter(Order.stock_status == "stock_inconsistent").scalar()
        )
        unfinished = settlement_service.unfinished_orders_query().count()
        elapsed_ms = (time.time() - start_time) * 1000
        details = {
            "failed_tasks": failed,
            "dead_letter_tasks": dead,
            "stock_inconsistent_orders": inconsistent,
            "unfinished_orders": unfinished,
        }
        status = "degraded" if (failed or dead or inconsistent or unfinished) else "healthy"
        return {"status": status, "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Settlement health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Settlement backlog unavailable",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    settlement_health = check_settlement_health()

    all_checks = [database_health, settlement_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "settlement": settlement_health,
        },
    }
    return response, http_status
