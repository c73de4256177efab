"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter. The Limiter instance
is created in hse_kpi/__init__.py with no default limits; this module applies
limits per route category.

Usage:
    from hse_kpi.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)

READ_LIMIT = "300/minute"
EXPORT_LIMIT = "20/minute"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Cell writes:  KPI_WRITE_RATE_LIMIT (default 120/minute)
        - Catalog:      60/minute
        - Grid/analytics/audit reads: 300/minute
        - Exports:      20/minute (workbook generation is the heaviest call)
        - Health check: exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    write_limit = app.config.get("KPI_WRITE_RATE_LIMIT", "120 per minute")
    bp = app.blueprints.get("kpi_value")
    if bp:
        limiter.limit(write_limit)(bp)

    bp = app.blueprints.get("catalog")
    if bp:
        limiter.limit("60/minute")(bp)

    for bp_name in ("grid", "analytics", "audit"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("export")
    if bp:
        limiter.limit(EXPORT_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — writes: %s, reads: %s, exports: %s",
        write_limit, READ_LIMIT, EXPORT_LIMIT,
    )
