"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Table definitions for users and project documents
"""
from typing import Optional
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, String, DateTime, JSON, Text, Index, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.sql import func
import logging
import os

from projecthub.core.config import settings

logger = logging.getLogger("projecthub")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None
_schema_ready = False


def get_database_url() -> Optional[str]:
    """Get the database URL from settings or environment."""
    return os.getenv("DATABASE_URL") or settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal, _schema_ready

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if url.startswith("sqlite"):
        # SQLite manages its own pool; sizing arguments are rejected
        _engine = create_engine(url, echo=False)
    else:
        _engine = create_engine(
            url,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            echo=False,  # Set to True for SQL query logging
        )

    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )
    _schema_ready = False

    return _engine


def dispose_engine() -> None:
    """Dispose of the current engine (tests switch databases between runs)."""
    global _engine, _SessionLocal, _schema_ready
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
    _schema_ready = False


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def ensure_schema() -> None:
    """Create tables once per engine; later calls are no-ops."""
    global _schema_ready
    if _schema_ready:
        return
    create_all_tables()
    _schema_ready = True


def check_connection() -> bool:
    """Check if database connection is available."""
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Users and their subscription plan
users = Table(
    'app_users',
    metadata,
    Column('user_id', String(100), primary_key=True),
    Column('plan', String(20), nullable=False, server_default='free'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Projects; data_info holds the whole document (entry id -> value)
projects = Table(
    'projects',
    metadata,
    Column('id', String(32), primary_key=True),
    Column('owner_id', String(100), nullable=False),
    Column('name', Text, nullable=False),
    Column('data_info', JSON, nullable=False),
    Column('created_at', DateTime(timezone=True), nullable=False),
    Column('updated_at', DateTime(timezone=True), nullable=False),
    Index('idx_projects_owner_id', 'owner_id'),
)
