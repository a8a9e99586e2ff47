import logging

import click
from flask import Flask, current_app

from .config import get_config
from .db import build_engine, get_pool_status, init_db
from .services import CatalogService


def create_app(config_class=None):
    app = Flask(__name__)

    # Load configuration from environment variables
    config = config_class or get_config()
    app.config.from_object(config)

    logging.getLogger(__name__).setLevel(config.LOG_LEVEL)

    engine = build_engine(config)
    app.db_engine = engine

    # Tables are created if missing; existing data is left alone
    init_db(engine)

    app.catalog_service = CatalogService.from_engine(engine, max_page_size=config.MAX_PAGE_SIZE)

    @app.cli.command("init-db")
    def init_db_command():
        """Create the movies, genres and ratings tables."""
        init_db(current_app.db_engine)
        click.echo("Initialized the database.")

    @app.cli.command("pool-status")
    def pool_status_command():
        """Print connection pool statistics."""
        for key, value in get_pool_status(current_app.db_engine).items():
            click.echo(f"{key}: {value}")

    app.logger.info(f"Catalog app created ({config.ENVIRONMENT})")
    return app


def get_catalog_service() -> CatalogService:
    """The CatalogService of the current application."""
    return current_app.catalog_service
