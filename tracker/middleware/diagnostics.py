"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database and the attachment backend and logs a summary banner.
"""

import logging
import os
import sys

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from tracker.models import db

logger = logging.getLogger(__name__)


def _attachment_status(app: Flask) -> tuple[str, str | None]:
    backend = app.config.get("ATTACHMENT_BACKEND", "local")
    if backend == "local":
        folder = app.config.get("UPLOAD_FOLDER", "")
        if os.path.isdir(folder) and os.access(folder, os.W_OK):
            return f"local ({folder})", None
        return "local (folder not writable)", f"Upload folder not writable: {folder}"
    if not app.config.get("STORAGE_URL") or not app.config.get("STORAGE_API_KEY"):
        return "object storage (NOT CONFIGURED)", "STORAGE_URL / STORAGE_API_KEY not set"
    return f"object storage (bucket {app.config.get('STORAGE_BUCKET')})", None


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        attachments, attachment_issue = _attachment_status(app)
        if attachment_issue:
            issues.append(attachment_issue)

        if not app.config.get("ADMIN_PASSWORD"):
            issues.append("ADMIN_PASSWORD not set — admin creation and deletion are disabled")

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Construction Project Tracker — Startup Diagnostics         ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Attachments : {attachments[:46]:<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
