# backend/freight_billing/routes/system.py
"""
System health endpoint.

Reports database connectivity and whether exchange rates are loaded, since
every money-displaying view depends on them.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import ExchangeRate, Invoice
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        rate_count = db.session.query(ExchangeRate).count()
        invoice_count = db.session.query(Invoice).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "exchange_rates": rate_count,
                "invoices": invoice_count,
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


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    body = {
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "base_currency": current_app.config.get("BASE_CURRENCY"),
        "database": database,
    }
    return jsonify(body), 200 if healthy else 503
