"""
Journey Map Workspace
Flask Application Factory.

Usage:
    from journeymap import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS

from journeymap.config import config
from journeymap.core.exceptions import NotFoundError, PersistenceError, ValidationError
from journeymap.middleware.logging_config import configure_logging
from journeymap.middleware.timing import init_request_timing
from journeymap.models import db
from journeymap.services.storage import get_store
from journeymap.services.workspace_engine import init_engine
from journeymap.utils.errors import E, api_error, workspace_error

logger = logging.getLogger(__name__)


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

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request guards (input length cap) ────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Request id + timing ──────────────────────────────────────────────
    init_request_timing(app)

    # ── Database tables for the "database" backend ───────────────────────
    from journeymap.models import workspace as _workspace_models  # noqa: F401
    if app.config["STORAGE_BACKEND"] == "database":
        os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()

    # ── Workspace engine ─────────────────────────────────────────────────
    init_engine(app, get_store(app))

    # ── Blueprints ───────────────────────────────────────────────────────
    from journeymap.blueprints import ALL_BLUEPRINTS
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(ValidationError)
    @app.errorhandler(NotFoundError)
    def workspace_rule_error(e):
        return workspace_error(e)

    @app.errorhandler(PersistenceError)
    def persistence_error(e):
        logger.error("Storage backend unavailable: %s", e, extra={"backend": e.backend})
        return workspace_error(e)

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.VALIDATION_INVALID, "Method not allowed", status=405)

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")

    logger.info("Journey map workspace started: env=%s backend=%s",
                config_name, app.config["STORAGE_BACKEND"])
    return app
