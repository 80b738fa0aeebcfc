"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in workplan/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from workplan.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Request submission/decision: REQUEST_RATE_LIMIT (default 60/minute)
        - Hierarchy and inbox routes:  200/minute
        - Health check:                exempt

    Rate limiting is disabled in testing mode or when RATELIMIT_ENABLED is off.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    write_limit = app.config.get("REQUEST_RATE_LIMIT", "60/minute")

    bp = app.blueprints.get("approval")
    if bp:
        limiter.limit(write_limit)(bp)

    for bp_name in ("hierarchy", "notification", "scheduler"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: requests %s, other %s",
                    write_limit, READ_LIMIT)
