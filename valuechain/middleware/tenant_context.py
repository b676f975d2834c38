"""
Tenant context middleware — resolves the tenant a request acts for.

The tenant id is taken from, in order:
  1. X-Tenant-ID header
  2. ?tenant_id= query parameter
  3. "tenant_id" field of a JSON body

When an id is supplied, the tenant must exist and be active, otherwise the
request is refused with 403 before it reaches a blueprint. Requests without
a tenant id pass through with g.tenant_id = None; blueprints that need one
answer 400 themselves.

Chain order:
  auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, jsonify, request

from valuechain.models import db
from valuechain.models.auth import Tenant

logger = logging.getLogger(__name__)

TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def _requested_tenant_id():
    raw = request.headers.get("X-Tenant-ID") or request.args.get("tenant_id")
    if raw is None and request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            raw = body.get("tenant_id")
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        raise ValueError(raw)
    return int(raw)


def init_tenant_context(app):
    """Register tenant context middleware as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant = None
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None
        if request.method == "OPTIONS":
            return None

        try:
            tenant_id = _requested_tenant_id()
        except (TypeError, ValueError):
            return jsonify({"error": "tenant_id must be an integer", "code": "ERR_VALIDATION_INVALID"}), 400
        if tenant_id is None:
            return None

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            logger.warning("Request for unknown tenant_id=%s path=%s", tenant_id, request.path)
            return jsonify({"error": "Tenant not found"}), 403
        if not tenant.is_active:
            logger.warning("Request for deactivated tenant_id=%s path=%s", tenant_id, request.path)
            return jsonify({"error": "Tenant account is deactivated"}), 403

        g.tenant = tenant
        g.tenant_id = tenant.id
        return None

    logger.info("Tenant context middleware installed")
