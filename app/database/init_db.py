"""
Database initialization.
"""
import logging

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from app.models import payroll_models  # noqa: F401  registers tables

logger = logging.getLogger("app.database")


def init_database(engine: Engine) -> None:
    """
    Create payroll tables if they do not exist.
    """
    logger.info("Initializing database...")
    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created")
