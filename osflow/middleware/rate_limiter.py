"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in osflow/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from osflow.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Order mutations:  60/minute
        - Webhooks:         120/minute (bursty scheduler callbacks)
        - SLA / jobs:       30/minute  (sweeps hit every active order)
        - Metrics:          200/minute
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    limits = {
        "orders_bp": "60/minute",
        "webhooks_bp": "120/minute",
        "sla_bp": "30/minute",
        "metrics_bp": "200/minute",
    }
    for bp_name, limit in limits.items():
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(limit)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured: orders: 60/min, webhooks: 120/min, sla: 30/min")
