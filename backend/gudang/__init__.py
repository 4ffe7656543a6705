# backend/gudang/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None, *, email_sender=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.notification_service import init_email_sender
    init_email_sender(app, email_sender)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.approvals import approvals_bp
    from .routes.delivery_notes import delivery_notes_bp
    from .routes.approval_levels import approval_levels_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(delivery_notes_bp)
    app.register_blueprint(approval_levels_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config["CORS_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
