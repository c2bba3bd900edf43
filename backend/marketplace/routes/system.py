# backend/marketplace/routes/system.py
"""
System health endpoint.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..responses import fail, ok
from marketplace.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/api/health")
def health():
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
    except Exception:
        current_app.logger.exception("Health check failed")
        return fail("Database unavailable", 503, status="unhealthy")

    return ok({
        "status": "healthy",
        "database_ms": round((time.time() - start_time) * 1000, 2),
        "timestamp": to_utc_z(utcnow()),
    })
