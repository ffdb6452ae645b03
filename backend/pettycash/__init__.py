# backend/pettycash/__init__.py
import logging

from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import PettyCashError
from .extensions import db, migrate
from .responses import error_response, fail, unexpected_error


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    # Leave headroom for the multipart envelope; the file store enforces the real ceiling
    app.config["MAX_CONTENT_LENGTH"] = int(app.config["MAX_UPLOAD_BYTES"]) + 512 * 1024

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    from .services.outbound import OutboundDispatcher
    OutboundDispatcher(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.transactions import transactions_bp
    from .routes.fund_transfers import fund_transfers_bp, balance_bp
    from .routes.categories import categories_bp
    from .routes.clients import clients_bp
    from .routes.users import users_bp
    from .routes.reports import reports_bp
    from .routes.activity import activity_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(fund_transfers_bp)
    app.register_blueprint(balance_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(activity_bp)

    @app.errorhandler(PettyCashError)
    def handle_domain_error(exc):
        return error_response(exc)

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        if exc.code == 413:
            return fail("File too large. Maximum size is 5MB.", 413, "FILE_TOO_LARGE")
        return fail(exc.description or exc.name, exc.code or 500, exc.name.upper().replace(" ", "_"))

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        return unexpected_error(f"handle {request.method} {request.path}", exc)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
