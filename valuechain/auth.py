"""
API key authentication and role checks.

Provides:
    - API key authentication via X-API-Key header or ?api_key= query param
    - Role-based access control decorator (require_role)
    - Content-Type enforcement for state-changing requests
    - current_identity(): acting user + approval capability for services

Security model:
    - All /api/v1/* endpoints require a valid API key (except /api/v1/health*)
    - Mutating value chain endpoints require 'editor'
    - Approving/rejecting chains requires 'admin' (can_approve)
    - Same-origin SPA requests without a key act as 'editor'

Configuration (env vars):
    API_KEYS          — comma-separated "<key>:<role>" pairs, role is admin|editor|viewer
                        e.g. "key1:admin,key2:viewer,key3:editor"
    API_AUTH_ENABLED  — set to "false" to disable auth (development only)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, jsonify, request

logger = logging.getLogger(__name__)

ROLES = {"admin", "editor", "viewer"}

# admin > editor > viewer
ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
}

APPROVER_ROLES = frozenset({"admin"})
SPA_SESSION_ROLE = "editor"

DEFAULT_ACTOR = "system"


def _parse_api_keys() -> dict[str, str]:
    """Parse API_KEYS into {key: role}. Keys without a role are viewers."""
    raw = os.getenv("API_KEYS", "")
    if not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
                role = "viewer"
            keys[key.strip()] = role
        else:
            keys[entry] = "viewer"
    return keys


def _is_auth_enabled() -> bool:
    """Env var wins over app config; outside an app context auth is on."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in (
            "false", "0", "no", "off",
        )
    except RuntimeError:
        return True


def _get_api_key_from_request() -> Optional[str]:
    key = request.headers.get("X-API-Key", "").strip()
    if key:
        return key
    return request.args.get("api_key", "").strip() or None


def _is_same_origin_request() -> bool:
    """Same-origin browser requests from the bundled SPA.

    Sec-Fetch-Site cannot be set by page JavaScript; Referer is the fallback.
    """
    if request.headers.get("Sec-Fetch-Site", "") in ("same-origin", "same-site"):
        return True
    referer = request.headers.get("Referer", "")
    return bool(referer) and referer.startswith(request.host_url.rstrip("/"))


def _check_content_type():
    """POST/PUT/PATCH/DELETE with a body must be JSON (HTML forms cannot send it)."""
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return jsonify({
                "error": "Content-Type must be application/json for state-changing requests"
            }), 415
    return None


def require_role(minimum_role: str):
    """
    Decorator: require a minimum role level.

    Usage:
        @value_chain_bp.route("/value-chains/<chain_id>", methods=["DELETE"])
        @require_role("editor")
        def delete_chain(chain_id): ...
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_role = getattr(g, "current_user_role", None)
            if not user_role:
                return jsonify({"error": "Authentication required"}), 401

            if minimum_role not in ROLE_HIERARCHY.get(user_role, set()):
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user_role, minimum_role, request.path,
                )
                return jsonify({"error": "Insufficient permissions", "code": "ERR_FORBIDDEN"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator


def current_identity() -> tuple[str, bool]:
    """(acting_user_id, can_approve) for the current request.

    The acting user comes from the X-User header; the approval capability
    from the authenticated role.
    """
    user = request.headers.get("X-User", "").strip() or DEFAULT_ACTOR
    role = getattr(g, "current_user_role", None)
    return user, role in APPROVER_ROLES


def init_auth(app):
    """Install the authentication before_request hook."""

    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path == "/api/v1/health" or request.path.startswith("/api/v1/health/"):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        if not _is_auth_enabled():
            g.current_user_role = "admin"
            g.api_key = "dev-mode"
            return None

        api_key = _get_api_key_from_request()
        if not api_key and _is_same_origin_request():
            # Approving needs an admin key even from the SPA.
            g.current_user_role = SPA_SESSION_ROLE
            g.api_key = "spa-session"
            return None

        if not api_key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
            return jsonify({"error": "Server authentication not configured"}), 500

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return jsonify({"error": "Invalid API key"}), 401

        g.current_user_role = role
        g.api_key = api_key
        return None

    logger.info("Auth middleware installed (enabled=%s)", _is_auth_enabled())
