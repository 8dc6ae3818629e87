# backend/wms/routes/system.py
"""
System health endpoint.

Reports database connectivity and basic ledger table accessibility for
deployment checks.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Location, Product, Stock, Warehouse
from wms.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        warehouse_count = db.session.query(Warehouse).count()
        location_count = db.session.query(Location).count()
        product_count = db.session.query(Product).count()
        stock_rows = db.session.query(Stock).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "warehouses": warehouse_count,
                "locations": location_count,
                "products": product_count,
                "stock_rows": stock_rows,
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


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Database reachable
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503
