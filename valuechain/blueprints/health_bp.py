"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — dependency status (database, rate-limit store)
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from valuechain.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe — always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        checks["database"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
    except Exception as exc:
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    redis_url = current_app.config.get("REDIS_URL", "")
    if redis_url.startswith("redis"):
        import redis as redis_lib
        try:
            t0 = time.perf_counter()
            redis_lib.from_url(redis_url, socket_timeout=2).ping()
            checks["redis"] = {"status": "ok", "latency_ms": round((time.perf_counter() - t0) * 1000, 1)}
        except redis_lib.RedisError as exc:
            # Only rate limiting depends on Redis; it does not fail liveness.
            checks["redis"] = {"status": "error", "detail": str(exc)}
    else:
        checks["redis"] = {"status": "skipped", "detail": "in-memory rate-limit storage"}

    checks["app"] = {
        "name": "Value Chain Service",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }
    status = "healthy" if overall else "degraded"
    return jsonify({"status": status, "checks": checks}), 200 if overall else 503
