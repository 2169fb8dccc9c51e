# backend/stockflow/__init__.py
from flask import Flask, current_app, jsonify

from .config import Config
from .errors import InventoryError
from .extensions import db, migrate
from .logging_config import configure_logging


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Writers on SQLite wait for the lock instead of failing with "database is locked"
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        connect_args = dict(engine_options.get("connect_args") or {})
        connect_args.setdefault("timeout", app.config["SQLITE_TIMEOUT"])
        engine_options["connect_args"] = connect_args
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.purchase_orders import purchase_orders_bp
    from .routes.sales import sales_bp
    from .routes.inventory import inventory_bp

    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(inventory_bp)

    @app.errorhandler(InventoryError)
    def handle_inventory_error(exc: InventoryError):
        if exc.http_status >= 500:
            current_app.logger.error("%s: %s %s", exc.code, exc.message, exc.details)
        return jsonify(exc.to_dict()), exc.http_status

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
