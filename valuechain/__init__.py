"""
Value Chain Service — Flask application factory.

Usage:
    from valuechain import create_app
    app = create_app()           # APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from valuechain.auth import init_auth
from valuechain.config import config
from valuechain.middleware.logging_config import configure_logging
from valuechain.middleware.rate_limiter import init_rate_limits
from valuechain.middleware.tenant_context import init_tenant_context
from valuechain.middleware.timing import init_request_timing
from valuechain.models import db

logger = logging.getLogger(__name__)


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # per-blueprint limits only, see middleware/rate_limiter.py
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Logging (must be first) ──────────────────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Middleware (order matters: timing → auth → tenant) ───────────────
    init_request_timing(app)
    init_auth(app)
    init_tenant_context(app)

    # ── Import all models so create_all / Alembic see them ──────────────
    from valuechain.models import auth as _auth_models              # noqa: F401
    from valuechain.models import directory as _directory_models    # noqa: F401
    from valuechain.models import value_chain as _value_chain_models  # noqa: F401

    with app.app_context():
        if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///") and not app.testing:
            os.makedirs(app.instance_path, exist_ok=True)
        db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from valuechain.blueprints.directory_bp import directory_bp
    from valuechain.blueprints.health_bp import health_bp
    from valuechain.blueprints.value_chain_bp import value_chain_bp

    app.register_blueprint(value_chain_bp)
    app.register_blueprint(directory_bp)
    app.register_blueprint(health_bp)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("create-tenant")
    @click.argument("name")
    @click.argument("slug")
    @click.option("--plan", default="trial", show_default=True)
    def create_tenant_cmd(name, slug, plan):
        """Create a tenant (association) row."""
        from valuechain.models.auth import Tenant
        tenant = Tenant(name=name, slug=slug, plan=plan)
        db.session.add(tenant)
        db.session.commit()
        logger.info("Created tenant id=%s slug=%s", tenant.id, slug)
        click.echo(f"tenant_id={tenant.id}")

    # ── Health check (summary; detailed probes under /health/*) ─────────
    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Value Chain Service"}

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
