"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database and attachment backend status
"""

import logging
import os
import time

from flask import Blueprint, current_app, jsonify
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db
from tracker.services.attachment_store import LocalAttachmentStore

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Simple readiness probe — always 200 if app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Detailed liveness check with dependency status."""
    checks = {}
    overall = True

    # ── Database ─────────────────────────────────────────────────────
    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except SQLAlchemyError as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    # ── Attachments ──────────────────────────────────────────────────
    store = current_app.extensions.get("attachment_store")
    if isinstance(store, LocalAttachmentStore):
        writable = os.path.isdir(store.root) and os.access(store.root, os.W_OK)
        checks["attachments"] = {"status": "ok" if writable else "error", "backend": "local"}
        overall = overall and writable
    else:
        # Remote storage is not probed; uploads report their own failures
        checks["attachments"] = {"status": "skipped", "backend": "object_storage"}

    checks["app"] = {
        "name": "Construction Project Tracker",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status = "ok" if overall else "degraded"
    return jsonify({"status": status, "checks": checks}), 200 if overall else 503
