# backend/retailcore/__init__.py
import uuid

from flask import Flask, g, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Bounded wait when SQLite is busy; server databases use lock_timeout instead
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(engine_options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config["STORAGE_TIMEOUT_SECONDS"])
        connect_args.setdefault("check_same_thread", False)
        engine_options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .services.audit_service import DatabaseAuditSink
    app.extensions.setdefault("audit_sink", DatabaseAuditSink())

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.sales import sales_bp
    from .routes.branches import branches_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(branches_bp)

    @app.before_request
    def assign_correlation_id():
        g.correlation_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def echo_correlation_id(response):
        correlation_id = getattr(g, "correlation_id", None)
        if correlation_id:
            response.headers["X-Request-ID"] = correlation_id
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
