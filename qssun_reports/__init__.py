"""
QssunReports
Flask Application Factory.

Usage:
    from qssun_reports import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from sqlalchemy.exc import SQLAlchemyError

from qssun_reports.config import config
from qssun_reports.core.exceptions import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from qssun_reports.middleware.jwt_auth import init_jwt_middleware
from qssun_reports.middleware.logging_config import configure_logging
from qssun_reports.middleware.rate_limiter import init_rate_limits
from qssun_reports.middleware.security_headers import init_security_headers
from qssun_reports.middleware.timing import init_request_timing
from qssun_reports.models import db
from qssun_reports.utils.errors import E, api_error

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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def _register_error_handlers(app):
    """Translate domain exceptions into the standard error body."""

    @app.errorhandler(NotFoundError)
    def _not_found(e):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(e))

    @app.errorhandler(ValidationError)
    def _validation(e):
        db.session.rollback()
        return api_error(E.BUSINESS_RULE, str(e), details=e.details)

    @app.errorhandler(StateConflictError)
    def _state_conflict(e):
        db.session.rollback()
        details = {"currentStatus": e.current_status} if e.current_status else None
        return api_error(E.CONFLICT_STATE, str(e), details=details)

    @app.errorhandler(ConflictError)
    def _conflict(e):
        db.session.rollback()
        return api_error(E.CONFLICT_DUPLICATE, str(e), details={"field": e.field})

    @app.errorhandler(PermissionDeniedError)
    def _forbidden(e):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(e) or "Forbidden")

    @app.errorhandler(AuthenticationError)
    def _unauthorized(e):
        db.session.rollback()
        return api_error(E.UNAUTHORIZED, str(e) or "Authentication required")

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
        db.session.rollback()
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


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
    app.config.from_object(config[config_name])

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

    # ── Middleware ───────────────────────────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from qssun_reports.models import audit as _audit_models              # noqa: F401
    from qssun_reports.models import auth as _auth_models                # noqa: F401
    from qssun_reports.models import notification as _notification_models  # noqa: F401
    from qssun_reports.models import package as _package_models          # noqa: F401
    from qssun_reports.models import report as _report_models            # noqa: F401
    from qssun_reports.models import team as _team_models                # noqa: F401
    from qssun_reports.models import workflow as _workflow_models        # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from qssun_reports.blueprints.audit_bp import audit_bp
    from qssun_reports.blueprints.auth_bp import auth_bp
    from qssun_reports.blueprints.branch_bp import branch_bp
    from qssun_reports.blueprints.files_bp import files_bp
    from qssun_reports.blueprints.health_bp import health_bp
    from qssun_reports.blueprints.notification_bp import notification_bp
    from qssun_reports.blueprints.package_bp import package_bp
    from qssun_reports.blueprints.report_bp import report_bp
    from qssun_reports.blueprints.team_bp import team_bp
    from qssun_reports.blueprints.user_bp import user_bp
    from qssun_reports.blueprints.workflow_bp import workflow_bp

    for bp in (
        auth_bp, report_bp, workflow_bp, package_bp, user_bp, branch_bp,
        team_bp, notification_bp, audit_bp, files_bp, health_bp,
    ):
        app.register_blueprint(bp)

    # ── Error handlers ───────────────────────────────────────────────────
    _register_error_handlers(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
