"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build isolated
         app instances and `alembic` can import the models without a server.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Set the log level from LOG_LEVEL
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Register all route blueprints under /api/v1
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Register a custom JSON provider to serialise Decimal as string
     (monetary amounts are transmitted as strings, never JSON numbers)
"""

from __future__ import annotations

import logging
import os
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError
from werkzeug.exceptions import HTTPException

from groupledger.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Flask's default JSON encoder does not handle Decimal.

class DecimalJSONProvider(DefaultJSONProvider):
    """
    Extends Flask's default JSON provider to serialise Decimal as str.

    Example: Decimal("10.50") → "10.50" (not 10.5 or 10.500000001)
    """

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    `flask --app groupledger.app run` calls this with no argument.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to FLASK_ENV, then "development".
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_name = config_name or os.getenv("FLASK_ENV", "development")
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from groupledger.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from groupledger.app.models import (  # noqa: F401
            expense_split,
            group,
            group_balance,
            membership,
            settlement,
            shared_expense,
            user,
        )

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Applies LOG_LEVEL to the app logger and to the groupledger package
    loggers (services log through logging.getLogger(__name__)).
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    app.logger.setLevel(level)
    package_logger = logging.getLogger("groupledger")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        package_logger.addHandler(handler)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "/" and "/<int:id>").
    """
    from groupledger.app.routes.balances import balances_bp
    from groupledger.app.routes.expenses import expenses_bp
    from groupledger.app.routes.groups import groups_bp
    from groupledger.app.routes.settlements import settlements_bp
    from groupledger.app.routes.users import users_bp

    app.register_blueprint(users_bp,       url_prefix="/api/v1/users")
    app.register_blueprint(groups_bp,      url_prefix="/api/v1/groups")
    # expenses_bp owns BOTH /groups/<id>/expenses and /expenses/<id>.
    app.register_blueprint(expenses_bp,    url_prefix="/api/v1")
    app.register_blueprint(balances_bp,    url_prefix="/api/v1/groups")
    app.register_blueprint(settlements_bp, url_prefix="/api/v1/groups")


def _first_validation_message(messages) -> tuple[str | None, str]:
    """
    Walks marshmallow's (possibly nested) messages and returns the first
    (field, message) pair. Nested list indices are skipped in the field name:
    {"participants": {0: {"amount": ["..."]}}} → ("participants", "...").
    """
    if isinstance(messages, dict):
        for key, value in messages.items():
            field = key if isinstance(key, str) and key != "_schema" else None
            nested_field, message = _first_validation_message(value)
            return field or nested_field, message
    elif isinstance(messages, list):
        if messages:
            return _first_validation_message(messages[0])
    elif messages is not None:
        return None, str(messages)
    return None, "Invalid input."


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct status
      ValidationError → first schema error as MISSING_FIELD / INVALID_FIELD
                        or a registered code raised as the message (400)
      Exception       → generic INTERNAL_ERROR (500); traceback logged

    Stack traces never leave the server.
    """
    from groupledger.app.errors import AppError, ErrorCode

    known_codes = {
        value for name, value in vars(ErrorCode).items() if not name.startswith("_")
    }

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError — they let it propagate here."""
        if error.http_status >= 500:
            app.logger.error("%r", error)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Returns the FIRST validation error only ("one error, not many").

        The message is used as the error code if it matches a registered
        ErrorCode constant; otherwise INVALID_FIELD / MISSING_FIELD is used.
        """
        field, raw_message = _first_validation_message(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        else:
            message = raw_message
            if raw_message.startswith("Missing data for required field"):
                code = ErrorCode.MISSING_FIELD
            else:
                code = ErrorCode.INVALID_FIELD

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.
        The full traceback goes to the application logger only.
        """
        if isinstance(error, HTTPException):
            return error  # 404 / 405 from routing keep their status
        app.logger.exception("Unhandled exception: %s", error)
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """
    Returns a human-readable default message for a known error code.
    Used when a ValidationError message IS the error code constant itself.
    """
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amount must have at most 2 decimal places.",
        "INVALID_SPLIT_TYPE": "split_type must be 'equal' or 'custom'.",
        "INVALID_ROLE": "role must be 'admin' or 'member'.",
        "DUPLICATE_PARTICIPANT": "The same user_id appears more than once.",
        "AMOUNT_SENT_FOR_EQUAL_SPLIT": "Do not send participant amounts when split_type is 'equal'.",
        "MISSING_SPLIT_AMOUNT": "Every participant needs an amount when split_type is 'custom'.",
        "SETTLEMENT_NOT_CONFIRMED": "Settlement must be confirmed to proceed.",
    }
    return _messages.get(code, "Invalid input.")
