"""
Engine and session lifecycle for the promo store.

The API resolves sessions through get_db_session; cron jobs and scripts
iterate get_db_session_sync.
"""

import logging
from typing import Generator, Optional

from fastapi import HTTPException, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from promolens.config.settings import AppSettings

logger = logging.getLogger(__name__)

_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        # Local runs and demo seeding share one file across threads
        return create_engine(database_url, connect_args={"check_same_thread": False})
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from DATABASE_URL."""
    global _engine
    if _engine is None:
        database_url = AppSettings.from_env().database_url
        if not database_url:
            logger.error("Promo store unavailable: DATABASE_URL is not set")
            raise ValueError("DATABASE_URL environment variable is not set")
        _engine = _build_engine(database_url)
        logger.info("Promo store engine ready", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(autocommit=False, autoflush=False, bind=get_engine())
    return _session_factory


def get_db_session() -> Generator[Session, None, None]:
    """Per-request session dependency. 503 when no database is configured."""
    try:
        factory = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    session = factory()
    try:
        yield session
    finally:
        session.close()


def get_db_session_sync() -> Generator[Session, None, None]:
    """Single-session generator for jobs: ``for session in get_db_session_sync(): ...``"""
    try:
        factory = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}")

    session = factory()
    try:
        yield session
    finally:
        session.close()
