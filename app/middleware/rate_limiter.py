"""
Rate limiting configuration.

Applies per-blueprint and per-route limits using Flask-Limiter. The Limiter
instance is created in app/__init__.py with no default limits; this module
applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Orchestration turns: ORCHESTRATE_RATE_LIMIT (several LLM calls each)
        - Workspaces, tools:   60/minute
        - Artifact reads:      200/minute
        - Health check:        exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    orchestrate_limit = app.config.get("ORCHESTRATE_RATE_LIMIT", "30/minute")
    view = app.view_functions.get("sessions.orchestrate")
    if view:
        app.view_functions["sessions.orchestrate"] = limiter.limit(orchestrate_limit)(view)

    bp = app.blueprints.get("workspaces")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    bp = app.blueprints.get("artifacts")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("tools")
    if bp:
        limiter.limit(WRITE_LIMIT)(bp)

    app.logger.info("Rate limiter configured: orchestrate=%s, workspaces=%s, artifacts=%s",
                    orchestrate_limit, WRITE_LIMIT, READ_LIMIT)
