"""
Database initialization script.

Creates all tables defined in the SQLAlchemy models.
Existing tables are not modified.

Usage:
    python -m promolens.scripts.init_db

Environment variables:
    DATABASE_URL: PostgreSQL connection string
"""

import logging
import sys

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from promolens.database.session import get_engine
from promolens.db_base import Base

# Import models to register them with Base.metadata
import promolens.models  # noqa: F401

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init_database(engine: Engine) -> list[str]:
    """
    Create every table registered on Base.metadata if missing.

    Returns:
        Sorted table names that were created or verified
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
        logger.info("Database connection successful")
    except SQLAlchemyError as e:
        logger.error(f"Failed to connect to database: {e}")
        raise

    table_names = sorted(Base.metadata.tables.keys())
    logger.info(f"Tables to create/verify: {', '.join(table_names)}")

    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create tables: {e}")
        raise

    logger.info("All tables created/verified successfully")
    return table_names


def main():
    try:
        init_database(get_engine())
    except (ValueError, SQLAlchemyError) as e:
        logger.error(f"Database initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
