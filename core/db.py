# marketplace-ledger/core/db.py
"""
Database management for the marketplace ledger.
Single database, one engine per process.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from config import Config
from models.base import Base

logger = logging.getLogger(__name__)

# Database engines
_engine: Optional[Engine] = None
_SessionFactory = None


def init_engine(database_url: Optional[str] = None, **engine_kwargs) -> Engine:
    """
    (Re)create the process-wide engine for given URL.

    Used by entry points and tests that need an explicit database.
    """
    global _engine, _SessionFactory

    if _engine is not None:
        _engine.dispose()

    database_url = database_url or Config.get(Config.DATABASE_URL)
    _engine = create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        **engine_kwargs
    )
    _SessionFactory = None
    logger.info(f"Database engine created: {database_url}")
    return _engine


def get_engine() -> Engine:
    """Get or create database engine."""
    if _engine is None:
        return init_engine()
    return _engine


def get_session_factory():
    """Get or create session factory."""
    global _SessionFactory
    if _SessionFactory is None:
        engine = get_engine()
        _SessionFactory = sessionmaker(bind=engine)
        logger.info("Session factory created")
    return _SessionFactory


def get_session() -> Session:
    """
    Get a new database session.

    Returns:
        Session instance
    """
    factory = get_session_factory()
    return factory()


@contextmanager
def get_db_session_ctx():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session_ctx() as session:
            receipt = session.query(Receipt).first()
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(f"Database error: {e}")
        raise
    finally:
        session.close()


def setup_database():
    """Initialize database - create all tables."""
    # Model modules must be imported so their tables are registered on Base
    import models  # noqa: F401

    logger.info("Setting up database...")
    engine = get_engine()
    Base.metadata.create_all(engine)
    logger.info("Database setup completed")


def drop_all_tables():
    """Drop all tables - USE WITH CAUTION!"""
    logger.warning("Dropping all tables...")
    engine = get_engine()
    Base.metadata.drop_all(engine)
    logger.info("All tables dropped")


def dispose_engine():
    """Close all pooled connections and forget the engine."""
    global _engine, _SessionFactory
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionFactory = None
