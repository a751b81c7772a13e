"""
Rate limiting configuration.

Applies per-endpoint rate limits using Flask-Limiter.
The Limiter instance is created in sitetrack/__init__.py with no default
limits; this module applies granular limits after blueprints are registered.

Usage:
    from sitetrack.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

# A bulk migration scans the whole collection; keep it rare
MIGRATION_LIMIT = "5/minute"

# Endpoints that write chantiers; the read-only status endpoint stays unlimited
MIGRATION_RUN_ENDPOINTS = (
    "migration_bp.run_migration",
    "migration_bp.migrate_one",
)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API endpoints.

    Limits (per remote IP, per endpoint):
        - Migration run endpoints: 5/minute

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    for endpoint in MIGRATION_RUN_ENDPOINTS:
        view = app.view_functions.get(endpoint)
        if view is not None:
            app.view_functions[endpoint] = limiter.limit(MIGRATION_LIMIT)(view)

    app.logger.info("Rate limiter configured: migration runs=%s", MIGRATION_LIMIT)
