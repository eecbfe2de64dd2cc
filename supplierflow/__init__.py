"""
Supplier Onboarding Workflow
Flask Application Factory.

Usage:
    from supplierflow import create_app
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
from sqlalchemy.exc import SQLAlchemyError

from supplierflow.config import config
from supplierflow.integrations.company_registry import CompanyRegistryGateway
from supplierflow.integrations.document_store import LocalDocumentStore
from supplierflow.integrations.virus_scanner import build_virus_scanner
from supplierflow.middleware.identity_auth import init_identity_auth
from supplierflow.middleware.logging_config import configure_logging
from supplierflow.middleware.rate_limiter import init_rate_limits
from supplierflow.middleware.security_headers import init_security_headers
from supplierflow.middleware.timing import init_request_timing
from supplierflow.models import db
from supplierflow.services.role_registry import RoleRegistry

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
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def _init_integrations(app):
    """Build the role registry, document store, virus scanner and registry gateway."""
    app.extensions["role_registry"] = RoleRegistry.from_config(app.config)

    root = app.config.get("DOCUMENT_STORE_ROOT") or os.path.join(app.instance_path, "documents")
    os.makedirs(root, exist_ok=True)
    app.extensions["document_store"] = LocalDocumentStore(root)
    app.extensions["virus_scanner"] = build_virus_scanner(app.config)

    app.extensions["company_registry"] = CompanyRegistryGateway(
        app.config.get("COMPANY_REGISTRY_URL"),
        app.config.get("COMPANY_REGISTRY_API_KEY"),
        timeout=app.config.get("COMPANY_REGISTRY_TIMEOUT", 10),
    )


def _cors_origins(cfg):
    """Allowed origins for Flask-CORS, or None to leave CORS off.

    Production never falls back to every origin when CORS_ORIGINS is empty.
    """
    raw = (cfg.get("CORS_ORIGINS") or "").strip()
    if raw == "*":
        return "*"
    origins = [o.strip() for o in raw.split(",") if o.strip()]
    if origins:
        return origins
    if cfg.get("ENV_NAME") == "production":
        return None
    return "*"


def create_app(config_name=None, overrides=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        overrides: Optional mapping applied on top of the config class
                   (tests use it for DOCUMENT_STORE_ROOT and friends).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    if overrides:
        app.config.update(overrides)

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = _cors_origins(app.config)
    if cors_origins is None:
        app.logger.warning("CORS_ORIGINS not set in production: cross-origin requests are refused")
    else:
        CORS(app, origins=cors_origins)

    # ── Security headers (CSP, HSTS, X-Frame-Options, etc.) ─────────────
    init_security_headers(app)

    # ── Request timing (assigns g.request_id, so it runs before identity) ──
    init_request_timing(app)

    # ── Identity resolution (sets g.request_context) ─────────────────────
    init_identity_auth(app)

    # ── Rate limiter (its before_request hook runs after identity) ─────────
    limiter.init_app(app)

    _init_integrations(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from supplierflow.models import submission as _submission_models  # noqa: F401
    from supplierflow.models import audit as _audit_models            # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        try:
            db.create_all()
            app.logger.info("db.create_all() completed successfully")
        except SQLAlchemyError as e:
            app.logger.warning("db.create_all() failed: %s", e)

    # ── Blueprints ───────────────────────────────────────────────────────
    from supplierflow.blueprints.submission_bp import submission_bp
    from supplierflow.blueprints.document_bp import document_bp
    from supplierflow.blueprints.health_bp import health_bp

    app.register_blueprint(submission_bp)
    app.register_blueprint(document_bp)
    app.register_blueprint(health_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large", "code": "ERR_PAYLOAD_TOO_LARGE"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error on %s %s", request.method, request.path, exc_info=True)
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
