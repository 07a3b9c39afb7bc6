# backend/merchant_dash/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("merchant_dash").setLevel(level)


def create_app(config_overrides: dict | None = None, *, auth=None, remote=None) -> Flask:
    """
    Application factory.

    remote: the RemoteStore to inject; defaults to the SQL-backed store
    over this app's database. auth: the AuthSession; defaults to a
    LocalAuthSession.
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    _configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Sync runtime: one RemoteStore for the life of the process
    from .auth import LocalAuthSession
    from .decorators import EXTENSION_KEY
    from .remote.sql_store import SqlRemoteStore
    from .runtime import DashboardRuntime
    from .sync.session import SyncSettings

    if remote is None:
        remote = SqlRemoteStore(app)
    if auth is None:
        auth = LocalAuthSession(rounds=app.config["BCRYPT_ROUNDS"])
    app.extensions[EXTENSION_KEY] = DashboardRuntime(
        remote,
        SyncSettings.from_config(app.config),
        auth,
        call_timeout=app.config["RUNTIME_CALL_TIMEOUT_SECONDS"],
    )

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.dashboard import dashboard_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
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
