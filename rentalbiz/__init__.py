# rentalbiz/__init__.py
from __future__ import annotations

import logging
import os
from typing import Any, Optional

import click
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from .errors import register_error_handlers
from .extensions import cors, db, jwt, migrate


def _configure_logging(app: Flask) -> None:
    """JSON logs to stdout."""
    level = app.config.get("LOG_LEVEL", "INFO").upper()
    app.logger.setLevel(level)
    root = logging.getLogger()
    root.setLevel(level)

    # avoid duplicate handlers in reloaders
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            fmt='{"ts":"%(asctime)s","level":"%(levelname)s","msg":"%(message)s","name":"%(name)s"}',
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)


def _configure_cors(app: Flask) -> None:
    cors.init_app(
        app,
        resources={r"/api/*": {"origins": app.config.get("CORS_ALLOWED_ORIGINS", [])}},
        supports_credentials=True,
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
        max_age=86400,
    )


def _configure_proxy(app: Flask) -> None:
    """Respect X-Forwarded-* from the reverse proxy."""
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)  # type: ignore


def _init_extensions(app: Flask) -> None:
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    # JWT loaders and models register themselves on import
    from . import models, security  # noqa: F401


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db():
        """Create all tables (local SQLite setups)."""
        db.create_all()
        click.echo("Database tables created")


def _load_config(app: Flask, config_object: Optional[str | Any]) -> None:
    if config_object is None:
        config_object = os.getenv("CONFIG_CLASS", "rentalbiz.config.Config")

    if isinstance(config_object, str):
        # load "package.ClassName"
        module, _, cls = config_object.rpartition(".")
        config_object = getattr(__import__(module, fromlist=[cls]), cls)
    if isinstance(config_object, type):
        config_object = config_object()
    app.config.from_object(config_object)


# --- Application Factory ------------------------------------------------------
def create_app(config_object: Optional[str | Any] = None) -> Flask:
    """
    Standard Flask application factory.

    `config_object` may be:
      - a config object or class
      - dotted path to a config class (e.g., "rentalbiz.config.ProductionConfig")
      - None (then CONFIG_CLASS env or rentalbiz.config.Config)
    """
    app = Flask(__name__)
    _load_config(app, config_object)

    _configure_logging(app)
    _configure_proxy(app)
    _configure_cors(app)

    _init_extensions(app)
    register_error_handlers(app)

    from .routes import register_routes
    register_routes(app)
    _register_cli(app)

    return app
