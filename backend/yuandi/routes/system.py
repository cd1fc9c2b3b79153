# backend/yuandi/routes/system.py
"""
System endpoints: liveness/DB health and the integrity report.

/health is cheap (one round trip plus row counts). /api/system/integrity
rescans movements and the cashbook, so it is meant for operators and
scheduled checks rather than load balancers.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Product, Order
from ..services.cashbook_service import get_current_balance
from ..services.integrity_service import DatabaseIntegrityValidator
from yuandi.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Round-trip to the database and report a few headline numbers."""
    started = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "active_products": db.session.query(Product).filter(Product.is_active.is_(True)).count(),
            "orders": db.session.query(Order).count(),
            "cashbook_balance": get_current_balance(),
        }
        status = {"status": "healthy", "details": details}
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        status = {"status": "unhealthy", "error": "Database error"}

    status["latency_ms"] = round((time.perf_counter() - started) * 1000, 2)
    return status


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unhealthy
    """
    database = check_database_health()
    healthy = database["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database},
    }, (200 if healthy else 503)


@system_bp.get("/api/system/integrity")
def integrity():
    """
    Run the read-only consistency checks (inventory, cashbook, order status).

    Always 200 when the checks ran; `overall` says whether the data is
    consistent. Violations are listed in `issues`.
    """
    try:
        report = DatabaseIntegrityValidator().validate_system_integrity()
    except Exception:
        current_app.logger.exception("Failed to run integrity checks")
        return {"error": "Internal server error"}, 500
    return report.to_dict(), 200
