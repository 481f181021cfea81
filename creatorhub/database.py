"""Database session and base configuration.

WHAT:
    Provides the SQLAlchemy engine and session factory, and exposes the
    FastAPI dependency for database access.

WHY:
    - One sync engine serves API endpoints, scripts and tests
    - PostgreSQL in production; SQLite (in-memory) in tests

USAGE:
    from creatorhub.database import SessionLocal, get_db

    @router.get("/items")
    def get_items(db: Session = Depends(get_db)):
        return db.query(Item).all()

REFERENCES:
    - https://docs.sqlalchemy.org/en/20/orm/session_basics.html
    - creatorhub/routers/ (consumers of these sessions)
"""

import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .utils.env import load_env_file


# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================

def _get_database_url() -> str:
    """Get DATABASE_URL from environment, loading .env if needed.

    Raises:
        RuntimeError: If DATABASE_URL is not configured
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        load_env_file()
        database_url = os.getenv("DATABASE_URL")

    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is not set. "
            "Create a .env file or export the variable."
        )

    # Heroku-style URLs
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    return database_url


DATABASE_URL = _get_database_url()


# =============================================================================
# ENGINE
# =============================================================================

# SQLite engines (tests/dev) do not support pool_size/max_overflow.
if DATABASE_URL.startswith("sqlite"):
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
    )
else:
    engine = create_engine(
        DATABASE_URL,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
    )

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


# Base is defined in creatorhub.models to ensure a single registry across the app
from .models import Base  # noqa: E402,F401


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """Yield a database session for FastAPI dependency injection."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Context manager for sessions outside FastAPI (scripts, jobs).

    Example:
        with get_sync_session() as db:
            due = EmailCampaignStore(db).find_due_scheduled()
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
