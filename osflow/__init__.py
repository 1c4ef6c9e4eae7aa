"""
Content OS Workflow Platform
Flask Application Factory.

Usage:
    from osflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import importlib
import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from osflow.config import config
from osflow.middleware.logging_config import configure_logging
from osflow.middleware.rate_limiter import init_rate_limits
from osflow.middleware.timing import init_request_timing
from osflow.models import db

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
    default_limits=[],
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
    config_cls = config[config_name]
    # ProductionConfig validates required env vars on instantiation
    app.config.from_object(config_cls() if config_name == "production" else config_cls)

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

    init_request_timing(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 1 * 1024 * 1024)  # 1 MB

    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from osflow.models import auth as _auth_models                  # noqa: F401
    from osflow.models import workflow as _workflow_models          # noqa: F401
    from osflow.models import audit as _audit_models                # noqa: F401
    from osflow.models import notification as _notification_models  # noqa: F401
    from osflow.models import scheduling as _scheduling_models      # noqa: F401

    if config_name != "production":
        with app.app_context():
            if not app.config.get("TESTING") and app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite:///"):
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Notifier (tests swap app.extensions["notifier"]) ─────────────────
    from osflow.services.notifier import Notifier
    app.extensions["notifier"] = Notifier.from_config(app.config)

    # ── Blueprints ───────────────────────────────────────────────────────
    from osflow.blueprints import register_error_handlers
    from osflow.blueprints.health_bp import health_bp
    from osflow.blueprints.metrics_bp import metrics_bp
    from osflow.blueprints.orders_bp import orders_bp
    from osflow.blueprints.sla_bp import sla_bp
    from osflow.blueprints.webhooks_bp import webhooks_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(sla_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(metrics_bp)

    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("sla-sweep")
    def sla_sweep_cmd():
        """Run one SLA sweep and print the counters."""
        from osflow.services.sla_monitor import SLAMonitor
        result = SLAMonitor(notifier=app.extensions["notifier"]).sweep()
        logger.info("SLA sweep: %s", result.to_dict())

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_VALIDATION_INVALID"}, 405

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description, "code": "ERR_VALIDATION_INVALID"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    # ── Scheduler initialization (import jobs to register them) ──────────
    importlib.import_module("osflow.services.scheduled_jobs")
    from osflow.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)

    return app
