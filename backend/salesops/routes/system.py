# backend/salesops/routes/system.py
"""
System health endpoint.

Reports database connectivity and the optional modules switched on in
configuration, for deployment debugging.
"""

import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Branch, Product, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "branches": db.session.query(Branch).count(),
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "features": {
            "commissions": bool(current_app.config.get("COMMISSIONS_ENABLED")),
            "tax": bool(current_app.config.get("TAX_ENABLED")),
        },
    }
    return jsonify(body), 200 if healthy else 503
