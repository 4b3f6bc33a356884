"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
the AI generation route carries its own stricter limit
(BUDGET_GENERATION_RATE_LIMIT) in budget_bp.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

WRITE_LIMIT = "120/minute"
READ_LIMIT = "300/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - budget / work writes:  120/minute (POST/PUT/PATCH/DELETE)
        - budget / work reads:   300/minute (GET)
        - budget generation:    BUDGET_GENERATION_RATE_LIMIT (route decorator)
        - health check:             exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for bp_name in ("budget", "work"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, methods=["POST", "PUT", "PATCH", "DELETE"])(bp)
            limiter.limit(READ_LIMIT, methods=["GET"])(bp)

    app.logger.info(
        "Rate limiter configured — write: %s, read: %s, generation: %s",
        WRITE_LIMIT, READ_LIMIT, app.config.get("BUDGET_GENERATION_RATE_LIMIT"),
    )
