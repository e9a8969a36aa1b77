"""
EDMS Approval Workflow Engine
Flask Application Factory.

Usage:
    from edms import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from edms.config import config
from edms.models import db
from edms.middleware.logging_config import configure_logging
from edms.middleware.rate_limiter import init_rate_limits
from edms.middleware.jwt_auth import init_jwt_middleware
from edms.middleware.tenant_context import init_tenant_context
from edms.utils.errors import init_error_handlers

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


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
    default_limits=[],  # per-blueprint limits only
)


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

    # ── JWT auth middleware (sets g.jwt_user_id / g.jwt_tenant_id) ──────
    init_jwt_middleware(app)

    # ── Tenant context middleware (sets g.current_user / g.tenant) ──────
    init_tenant_context(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    @app.before_request
    def _guard_request():
        from flask import request as _req, abort
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and _req.content_length and _req.content_length > max_len:
            abort(413, description="Request body too large")
        if _req.method in ("POST", "PUT", "PATCH") and _req.path.startswith("/api/"):
            ct = _req.content_type or ""
            if _req.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from edms.models import auth as _auth_models                # noqa: F401
    from edms.models import workflow as _workflow_models        # noqa: F401
    from edms.models import document as _document_models        # noqa: F401
    from edms.models import audit as _audit_models              # noqa: F401
    from edms.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS; migrations own changes) ─
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except Exception as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from edms.blueprints.health_bp import health_bp
    from edms.blueprints.system_setup_bp import system_setup_bp
    from edms.blueprints.approval_level_bp import approval_level_bp
    from edms.blueprints.workflow_template_bp import workflow_template_bp
    from edms.blueprints.document_bp import document_bp
    from edms.blueprints.platform_admin_bp import platform_admin_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(system_setup_bp)
    app.register_blueprint(approval_level_bp)
    app.register_blueprint(workflow_template_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(platform_admin_bp)

    # ── Service exception → JSON mapping ─────────────────────────────────
    init_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-roles")
    def seed_roles_cmd():
        """Create the platform_admin / super_admin / tenant_user system roles."""
        from edms.services.industry_instance_service import ensure_system_roles
        roles = ensure_system_roles()
        db.session.commit()
        logger.info("System roles present: %s", ", ".join(sorted(roles)))

    @app.cli.command("create-platform-admin")
    @click.option("--email", required=True)
    @click.option("--password", required=True)
    @click.option("--tenant-slug", default="platform", show_default=True)
    def create_platform_admin_cmd(email, password, tenant_slug):
        """Create the operator tenant and a platform admin user."""
        from edms.services.industry_instance_service import create_platform_admin
        user = create_platform_admin(email, password, tenant_slug)
        logger.info("Platform admin %s ready (user #%d)", user.email, user.id)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        db.session.rollback()
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(415)
    def unsupported_media_type(e):
        return {"error": "Content-Type must be application/json"}, 415

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
