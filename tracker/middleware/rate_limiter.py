"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in tracker/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from tracker.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
# Applied in project_bp as a shared limit; deletion carries the admin credential check
DELETE_LIMIT = "10/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Project endpoints:   60/minute
        - Project deletion:    10/minute
        - Reference reads:     200/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("projects")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in ("reference", "attachments"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — projects: %s, delete: %s, reference: %s",
        WRITE_LIMIT, DELETE_LIMIT, READ_LIMIT,
    )
