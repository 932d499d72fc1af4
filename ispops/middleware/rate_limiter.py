"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in ispops/__init__.py with no default limits; limits are keyed by
organization when the request carries one, else by remote address.

Usage:
    from ispops.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

EXPLORER_LIMIT = "60/minute"
STRATEGY_LIMIT = "30/minute"


def organization_rate_limit_key():
    """organization id if resolved, else remote IP."""
    organization_id = getattr(g, "organization_id", None)
    if organization_id:
        return f"org:{organization_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

        - Data explorer:  60/minute (every query hits the database)
        - Strategy:       30/minute (manual triggers run generation inline)
        - Health check:   exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("data_explorer")
    if bp:
        limiter.limit(EXPLORER_LIMIT, key_func=organization_rate_limit_key)(bp)

    bp = app.blueprints.get("strategy")
    if bp:
        limiter.limit(STRATEGY_LIMIT, key_func=organization_rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: explorer %s, strategy %s",
                    EXPLORER_LIMIT, STRATEGY_LIMIT)
