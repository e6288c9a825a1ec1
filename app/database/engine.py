"""
Database engine configuration.
"""
import logging
from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from app.services.config_service import ConfigService, config_service

logger = logging.getLogger("app.database")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_database_engine(database_url: Optional[str] = None, config: Optional[ConfigService] = None) -> Engine:
    """
    Create and configure SQLAlchemy engine.

    Args:
        database_url: Explicit URL, otherwise DB_URL from configuration
        config: Configuration service

    Returns:
        Configured SQLAlchemy engine
    """
    config = config or config_service
    database_url = database_url or config.get_setting("DB_URL", "sqlite:///./payroll.db")
    echo = config.get_bool("DB_ECHO", False)

    logger.info(f"Creating database engine for: {database_url.split('@')[1] if '@' in database_url else database_url}")

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=echo,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        # Connection pool settings
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=echo,
    )
