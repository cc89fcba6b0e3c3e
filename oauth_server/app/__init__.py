"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - `alembic` and the provisioning CLI to import models without
             starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name] and validate it
  2. Initialise SQLAlchemy via init_app()
  3. Register the token blueprint under /api/v1/oauth
  4. Register global error handlers (AppError → JSON, Exception → 500)
  5. Register the provisioning CLI commands
"""

from __future__ import annotations

import traceback

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from oauth_server.config import (
    config_by_name,
    validate_production_config,
    validate_token_config,
)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)
    app.json.sort_keys = app.config["JSON_SORT_KEYS"]

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured
    validate_token_config(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from oauth_server.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Populates db.metadata for create_all() and Alembic autogenerate.
    with app.app_context():
        from oauth_server.app import models  # noqa: F401

    _register_blueprints(app)
    _register_error_handlers(app)

    from oauth_server.app.cli import register_commands
    register_commands(app)

    return app


def _register_blueprints(app: Flask) -> None:
    from oauth_server.app.routes.tokens import tokens_bp

    app.register_blueprint(tokens_bp, url_prefix="/api/v1/oauth")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → {"Error": message, "code": CODE} with the error's status
                        and extra headers (WWW-Authenticate on 401)
      HTTPException   → werkzeug's status and description (404, 405, ...)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from oauth_server.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        if error.http_status >= 500:
            # Persistence failures chain the SQLAlchemy error as __cause__.
            app.logger.error("%r", error, exc_info=error)
        elif error.http_status == 401:
            # Which check failed is deliberately not recorded.
            app.logger.warning("Authentication failed: %s", error.code)
        return jsonify(error.to_dict()), error.http_status, error.headers

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        return jsonify({
            "Error": error.description,
            "code": error.name.upper().replace(" ", "_"),
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "Error": "An unexpected error occurred. Please try again later.",
            "code": ErrorCode.INTERNAL_ERROR,
        }), 500
