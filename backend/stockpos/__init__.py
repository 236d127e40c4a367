# backend/stockpos/__init__.py
import logging

from flask import Flask, jsonify, request

from .config import Config
from .errors import LedgerError
from .extensions import db, migrate



def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db, render_as_batch=True)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.catalog import catalog_bp
    from .routes.customers import customers_bp
    from .routes.sales import sales_bp
    from .routes.stock_entries import stock_entries_bp
    from .routes.reports import reports_bp
    from .routes.settings import settings_bp
    from .routes.users import users_bp
    from .routes.activity import activity_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(stock_entries_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(settings_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(activity_bp)

    @app.errorhandler(LedgerError)
    def handle_ledger_error(error):
        if error.http_status >= 500:
            app.logger.error("%s %s failed: %s", request.method, request.path, error.message)
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(500)
    def handle_internal_error(error):
        original = getattr(error, "original_exception", None)
        app.logger.exception("Unhandled error on %s %s", request.method, request.path, exc_info=original)
        return jsonify({"error": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ORIGINS", []))
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
