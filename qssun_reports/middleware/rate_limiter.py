"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in ``qssun_reports/__init__.py`` with no default limits; this module
applies granular limits per route category.

Usage:
    from qssun_reports.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

LOGIN_LIMIT = "10/minute"
WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"

_WRITE_HEAVY = ("reports", "workflows", "packages", "users", "branches", "teams")
_READ_HEAVY = ("notifications", "audit")


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Login:            10/minute  (credential stuffing)
        - Write blueprints: 120/minute
        - Read blueprints:  300/minute (bell polling)
        - Health / uploads: exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auth")
    if bp:
        limiter.limit(LOGIN_LIMIT)(bp)

    for bp_name in _WRITE_HEAVY:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT)(bp)

    for bp_name in _READ_HEAVY:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    for bp_name in ("health", "files"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — login: %s, write: %s, read: %s",
        LOGIN_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
