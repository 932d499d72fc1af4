"""
ISP Operations Platform
Flask Application Factory.

Usage:
    from ispops import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine, event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from ispops.config import config
from ispops.middleware.logging_config import configure_logging
from ispops.middleware.organization_context import init_organization_context
from ispops.middleware.rate_limiter import init_rate_limits
from ispops.middleware.timing import init_request_timing
from ispops.models import db

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
    default_limits=[],                     # no global limit, applied per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    os.makedirs(app.instance_path, exist_ok=True)

    # ── Structured logging (must be first) ───────────────────────────────
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

    # ── Request middleware (timing first so rejected requests are logged) ─
    init_request_timing(app)
    init_organization_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from ispops.models import explorer as _explorer_models          # noqa: F401
    from ispops.models import operations as _operations_models      # noqa: F401
    from ispops.models import organization as _organization_models  # noqa: F401
    from ispops.models import strategy as _strategy_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from ispops.blueprints.data_explorer_bp import data_explorer_bp
    from ispops.blueprints.health_bp import health_bp
    from ispops.blueprints.strategy_bp import strategy_bp

    app.register_blueprint(data_explorer_bp)
    app.register_blueprint(strategy_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "NotFound", "message": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "MethodNotAllowed", "message": "Method not allowed"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "TooManyRequests", "message": "Too many requests",
                "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s: %s", request.path, e, exc_info=True)
        return {"error": "InternalError", "message": "Internal server error"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Per-organization cron scheduler ──────────────────────────────────
    from ispops.services.cron_scheduler import OrgCronScheduler
    scheduler = OrgCronScheduler(app)
    if app.config.get("CRON_SCHEDULER_ENABLED"):
        scheduler.initialize()
    else:
        app.logger.info("Cron scheduler disabled (CRON_SCHEDULER_ENABLED=False)")

    return app
