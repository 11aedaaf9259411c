"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in admissions/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from admissions.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# Public intake form, reachable without staff credentials
INTAKE_LIMIT = "20/minute"
# Staff workflow mutations and reads
WORKFLOW_LIMIT = "120/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - admissions (intake + reads):  20/minute
        - workflow (staff console):     120/minute
        - health check:                 exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("admissions")
    if bp:
        limiter.limit(INTAKE_LIMIT)(bp)

    bp = app.blueprints.get("workflow")
    if bp:
        limiter.limit(WORKFLOW_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — admissions: %s, workflow: %s",
        INTAKE_LIMIT, WORKFLOW_LIMIT,
    )
