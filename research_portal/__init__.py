"""
Research Administration Portal
Flask Application Factory.

Usage:
    from research_portal import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from research_portal.auth import init_actor_context
from research_portal.config import config
from research_portal.core.exceptions import ValidationError
from research_portal.middleware.logging_config import configure_logging
from research_portal.middleware.rate_limiter import init_rate_limits
from research_portal.middleware.timing import init_request_timing
from research_portal.models import db
from research_portal.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
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
    default_limits=[],                     # no global limit; applied per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _check_permission_default(app):
    from research_portal.models.permission import AccessLevel

    value = app.config.get("PERMISSION_DEFAULT_ACCESS", "full")
    try:
        level = AccessLevel.parse(value)
    except ValidationError as e:
        raise RuntimeError(f"PERMISSION_DEFAULT_ACCESS is invalid: {e}") from e
    if level is AccessLevel.FULL:
        app.logger.info("Permission default is 'full': pairs without an entry are editable")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)
    _check_permission_default(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request middleware ───────────────────────────────────────────────
    init_request_timing(app)
    init_actor_context(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from research_portal.models import research as _research_models        # noqa: F401
    from research_portal.models import application as _application_models  # noqa: F401
    from research_portal.models import permission as _permission_models    # noqa: F401

    # SQLite dev database lives in instance/
    db_uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if db_uri.startswith("sqlite:///") and ":memory:" not in db_uri:
        os.makedirs(os.path.dirname(db_uri[len("sqlite:///"):]), exist_ok=True)

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()
        app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from research_portal.blueprints.application_bp import application_bp
    from research_portal.blueprints.health_bp import health_bp
    from research_portal.blueprints.permission_bp import permission_bp
    from research_portal.blueprints.research_bp import research_bp

    app.register_blueprint(application_bp)
    app.register_blueprint(permission_bp)
    app.register_blueprint(research_bp)
    app.register_blueprint(health_bp)

    init_rate_limits(app, limiter)
    register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-permissions")
    def seed_permissions_cmd():
        """Insert the institutional default role permissions (idempotent)."""
        from research_portal.services.permission_service import seed_default_permissions
        count = seed_default_permissions()
        logger.info("Seeded %s new role permissions.", count)

    @app.cli.command("expire-applications")
    def expire_applications_cmd():
        """Move approved applications past their expiration date to expired."""
        from research_portal.services.workflow_engine import expire_due_applications
        result = expire_due_applications()
        logger.info(
            "Expired %s application(s); %s skipped.",
            len(result["expired"]), len(result["errors"]),
        )

    return app
