"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in edms/__init__.py with no default limits; this module applies
granular limits per route category.

Usage:
    from edms.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

SETUP_LIMIT = "10/minute"
WRITE_LIMIT = "60/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - System setup + platform admin: 10/minute (whole-tenant provisioning)
        - Configuration + documents:     60/minute
        - Health check:                  exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("system_setup", "platform_admin"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(SETUP_LIMIT)(bp)

    for bp_name in ("approval_levels", "workflow_templates", "documents"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — setup: %s, api: %s", SETUP_LIMIT, WRITE_LIMIT,
    )
