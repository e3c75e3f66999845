from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from loguru import logger
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from coachplan.config.settings import settings
from coachplan.core.errors import EngineError
from coachplan.core.locks import aggregate_lock

# Lazy initialization to avoid import-time database connections
_engine = None
_SessionLocal = None


def _get_engine():
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        is_sqlite = "sqlite" in settings.database_url.lower()
        connect_args = {}
        if is_sqlite:
            logger.warning("Using SQLite database (local development only)")
            connect_args = {"check_same_thread": False}
        else:
            connect_args = {
                "connect_timeout": 10,
                "application_name": "coachplan",
            }

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=settings.sql_echo,
            pool_pre_ping=True,  # Verify connections before using (important for cloud DBs)
        )
        if is_sqlite:
            configure_sqlite(_engine)
        logger.info("Database engine initialized")
    return _engine


def configure_sqlite(engine: Engine) -> None:
    """Enable foreign keys and real transactions (SAVEPOINT support) on SQLite.

    pysqlite defers BEGIN until the first DML statement, which breaks
    SAVEPOINT-based rollback; SQLAlchemy then emits BEGIN itself.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine():
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local():
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


def init_db() -> None:
    """Create all tables that do not exist yet."""
    from coachplan.db.models import Base

    Base.metadata.create_all(bind=_get_engine())
    logger.info("Database tables verified")


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get database session context manager.

    One session is one transaction: committed on normal exit, rolled back
    on any exception.
    - EngineError: rolled back and re-raised without error logging
      (business rule violation, not a database error)
    - Other exceptions: logged as database errors, rolled back and re-raised
    """
    logger.debug("Creating new database session")
    session = _get_session_local()()
    try:
        yield session
        # Services flush eagerly, so an empty dirty/new set can still hold pending SQL
        session.commit()
        logger.debug("Database session committed successfully")
    except EngineError as e:
        logger.debug(f"{type(e).__name__} in session, rolling back: {e.message}")
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Database session error, rolling back: {e}. Error type: {type(e).__name__}")
        logger.exception("Full exception traceback:")
        session.rollback()
        raise
    finally:
        session.close()
        logger.debug("Database session closed")


@contextmanager
def locked_session(kind: str, aggregate_id: str) -> Generator[Session, None, None]:
    """Transaction on one aggregate, serialized with other writers of it.

    The per-aggregate lock is released only after the transaction has
    committed or rolled back.
    """
    with aggregate_lock(kind, aggregate_id), get_session() as session:
        yield session
