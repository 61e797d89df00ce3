# backend/agripos/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(overrides: dict | None = None) -> Flask:
    """Application factory; `overrides` win over Config (tests pass an in-memory DB)."""
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported before Alembic or create_all reads the metadata
    from . import models  # noqa: F401

    from .routes.accounts import accounts_bp
    from .routes.auth import auth_bp
    from .routes.egg_collections import egg_collections_bp
    from .routes.payments import payments_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.staff import staff_bp
    from .routes.system import system_bp

    for blueprint in (
        system_bp, auth_bp, staff_bp, accounts_bp, products_bp, sales_bp, payments_bp, egg_collections_bp,
    ):
        app.register_blueprint(blueprint)

    cors_origins = frozenset(app.config.get("CORS_ORIGINS", ()))

    @app.after_request
    def allow_pos_frontend(response):
        origin = request.headers.get("Origin")
        if origin and origin in cors_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, OPTIONS"
            response.headers["Vary"] = "Origin"
        return response

    from .cli import register_commands
    register_commands(app)

    app.logger.debug("agripos app created (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"])
    return app
