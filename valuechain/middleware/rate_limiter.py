"""
Rate limiting — per-blueprint limits on top of Flask-Limiter.

The Limiter instance is created in valuechain/__init__.py with no default
limits; this module attaches limits per blueprint:

    value_chains:  60/minute, keyed by tenant (falls back to remote IP)
    directory:     200/minute
    health:        exempt

Plan quotas are an additional per-tenant ceiling on the value chain routes:

    trial 100/min · starter 300/min · professional 600/min · enterprise 5000/min

Rate limiting is disabled when TESTING is set.
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

PLAN_RATE_LIMITS = {
    "trial": "100/minute",
    "starter": "300/minute",
    "professional": "600/minute",
    "premium": "1000/minute",
    "enterprise": "5000/minute",
}

DEFAULT_PLAN_LIMIT = "100/minute"
WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"


def tenant_rate_limit_key():
    """tenant:<id> when a tenant is resolved, else the remote address."""
    tenant_id = getattr(g, "tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def tenant_plan_limit():
    """Rate limit string for the current tenant's plan."""
    tenant = getattr(g, "tenant", None)
    if tenant:
        plan = getattr(tenant, "plan", "trial") or "trial"
        return PLAN_RATE_LIMITS.get(plan, DEFAULT_PLAN_LIMIT)
    return DEFAULT_PLAN_LIMIT


def init_rate_limits(app, limiter):
    """Attach limits to the registered blueprints. Call after registration."""
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("value_chains")
    if bp:
        limiter.limit(WRITE_LIMIT, key_func=tenant_rate_limit_key)(bp)
        limiter.limit(tenant_plan_limit, key_func=tenant_rate_limit_key)(bp)

    bp = app.blueprints.get("directory")
    if bp:
        limiter.limit(READ_LIMIT)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — value chains: %s per tenant, directory: %s",
        WRITE_LIMIT, READ_LIMIT,
    )
