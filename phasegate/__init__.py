"""
Phase Window Engine
Flask Application Factory.

Usage:
    from phasegate import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from phasegate.config import config
from phasegate.core.exceptions import StorageError
from phasegate.middleware.jwt_auth import init_jwt_middleware
from phasegate.middleware.logging_config import configure_logging
from phasegate.middleware.rate_limiter import init_rate_limits
from phasegate.middleware.timing import init_request_timing
from phasegate.models import db
from phasegate.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, set per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


def create_app(config_name=None, **overrides):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.
        **overrides: Extra config values applied last (e.g. CLOCK).

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])
    app.config.update(overrides)

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

    # ── Request timing + JWT principal ───────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 256 * 1024)

    @app.before_request
    def _guard_request():
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import models so Alembic can detect them ─────────────────────────
    from phasegate.models import window as _window_models  # noqa: F401

    if app.config.get("TESTING") or config_name == "development":
        with app.app_context():
            if config_name == "development":
                os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from phasegate.blueprints import register_blueprints

    register_blueprints(app)
    init_rate_limits(app, limiter)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("purge-ended-windows")
    @click.option("--track", default=None, help="Only purge windows of this track.")
    def purge_ended_windows_cmd(track):
        """Delete every window whose end has passed."""
        from phasegate.services.window_service import purge_ended_windows

        deleted = purge_ended_windows(track)
        click.echo(f"Purged {deleted} ended window(s).")

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

    @app.errorhandler(415)
    def unsupported_media(e):
        return {"error": e.description}, 415

    @app.errorhandler(StorageError)
    def storage_error(e):
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(SQLAlchemyError)
    def sqlalchemy_error(e):
        logger.exception("Unhandled database error on %s %s", request.method, request.path)
        db.session.rollback()
        return api_error(E.DATABASE, "Database error")

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return {"error": "Internal server error"}, 500

    return app
