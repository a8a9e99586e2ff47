"""
Database Connection Management Module
Engine construction, schema initialization and scoped connection helpers.
Every operation acquires its own connection; writes run in their own transaction.
"""

from contextlib import contextmanager
import logging
import threading
from typing import Optional

from flask import current_app
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool

from .errors import DatabaseConnectionError, OperationCancelledError
from .models import metadata

logger = logging.getLogger(__name__)


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def build_engine(config) -> Engine:
    """
    Create the SQLAlchemy engine described by a config class.

    Args:
        config: Config class (see catalog.config)

    Returns:
        Engine: pooled engine
    """
    url = make_url(config.DATABASE_URL)

    if url.get_backend_name() == "sqlite":
        kwargs = {"echo": config.DB_ECHO}
        if url.database in (None, "", ":memory:"):
            # One shared connection, otherwise each checkout sees an empty database
            kwargs.update(
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        engine = create_engine(url, **kwargs)

        @event.listens_for(engine, "connect")
        def _configure_sqlite_connection(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
            # Built-in LOWER only folds ASCII
            dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)

        return engine

    # pool_pre_ping: check connections before use (avoids stale connections)
    return create_engine(
        url,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        pool_timeout=config.DB_POOL_TIMEOUT,
        pool_recycle=config.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=config.DB_ECHO,
    )


def init_db(db_engine: Optional[Engine] = None) -> None:
    """Create the movies, genres and ratings tables if they do not exist."""
    db_engine = _resolve_engine(db_engine)
    try:
        metadata.create_all(db_engine)
    except (OperationalError, InterfaceError) as e:
        logger.error(f"Could not initialize database schema: {e}", exc_info=True)
        raise DatabaseConnectionError(f"Database unreachable: {e}") from e
    logger.info("Database schema initialized")


def check_cancelled(cancel: Optional[threading.Event]) -> None:
    """Raise OperationCancelledError if the caller has set the cancel event."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Operation cancelled")


def _resolve_engine(db_engine: Optional[Engine]) -> Engine:
    if db_engine is None:
        try:
            db_engine = current_app.db_engine
        except RuntimeError:
            raise RuntimeError("No application context. Use 'with app.app_context():'")
    return db_engine


def _connect(db_engine: Engine):
    try:
        return db_engine.connect()
    except (OperationalError, InterfaceError) as e:
        logger.error(f"Database unreachable: {e}", exc_info=True)
        raise DatabaseConnectionError(f"Database unreachable: {e}") from e


@contextmanager
def get_db_connection(db_engine: Optional[Engine] = None, cancel: Optional[threading.Event] = None):
    """
    Context manager for read operations.
    The connection is always returned to the pool; nothing is committed.

    Args:
        db_engine: SQLAlchemy engine (if None, taken from current_app)
        cancel: Optional threading.Event; checked before acquiring

    Usage:
        with get_db_connection(engine) as conn:
            rows = conn.execute(text("SELECT ...")).mappings().all()
    """
    db_engine = _resolve_engine(db_engine)
    check_cancelled(cancel)
    conn = _connect(db_engine)
    try:
        yield conn
    except SQLAlchemyError as e:
        logger.error(f"Database error: {e}", exc_info=True)
        raise
    finally:
        conn.close()


@contextmanager
def get_db_transaction(db_engine: Optional[Engine] = None, cancel: Optional[threading.Event] = None):
    """
    Context manager for multi-statement writes.
    Commits when the block exits cleanly, rolls back on any exception
    (including cancellation) and always releases the connection.

    Usage:
        with get_db_transaction(engine) as conn:
            conn.execute(text("INSERT INTO ..."))
            conn.execute(text("UPDATE ..."))
    """
    db_engine = _resolve_engine(db_engine)
    check_cancelled(cancel)
    conn = _connect(db_engine)
    try:
        with conn.begin():
            yield conn
    except OperationCancelledError:
        logger.info("Transaction cancelled, rolled back")
        raise
    except IntegrityError as e:
        # Constraint outcomes are reported by the caller
        logger.warning(f"Transaction rolled back by a constraint: {e.orig}")
        raise
    except SQLAlchemyError as e:
        logger.error(f"Transaction error: {e}", exc_info=True)
        raise
    finally:
        conn.close()


def get_pool_status(db_engine: Optional[Engine] = None) -> dict:
    """
    Connection pool status information.

    Returns:
        dict: Pool status information
    """
    db_engine = _resolve_engine(db_engine)
    pool = db_engine.pool
    status = {
        'pool': type(pool).__name__,
        'status': pool.status(),
    }
    if isinstance(pool, QueuePool):
        status.update({
            'size': pool.size(),
            'checked_in': pool.checkedin(),
            'checked_out': pool.checkedout(),
            'overflow': pool.overflow(),
        })
    return status
