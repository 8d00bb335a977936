# Overview: Flask API routes for system health.

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Branch, Product, User

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Run a few cheap counts and report latency."""
    start_time = time.time()
    try:
        branch_count = db.session.query(Branch).count()
        user_count = db.session.query(User).count()
        product_count = db.session.query(Product).count()

        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "details": {
                "branches": branch_count,
                "users": user_count,
                "products": product_count,
            },
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "database": database,
    }), 200 if healthy else 503
