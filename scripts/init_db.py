#!/usr/bin/env python3
"""
Prepare the payroll database.

By default the tables are created directly from the models. With
``--migrate`` the Alembic migrations under ``migrations/`` are applied
instead, which is what deployed databases should use.
"""

import argparse
import logging
import sys
from pathlib import Path

# Project root on the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from app.database.engine import create_database_engine
from app.database.init_db import init_database
from app.services.config_service import config_service

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def run_migrations(engine) -> bool:
    """Apply Alembic migrations up to head."""
    try:
        alembic_cfg = Config()
        alembic_cfg.set_main_option("script_location", str(project_root / "migrations"))
        alembic_cfg.set_main_option("sqlalchemy.url", str(engine.url.render_as_string(hide_password=False)))

        script = ScriptDirectory.from_config(alembic_cfg)
        with engine.connect() as conn:
            current_rev = MigrationContext.configure(conn).get_current_revision()
        head_rev = script.get_current_head()

        if current_rev != head_rev:
            logger.info(f"Applying migrations: {current_rev} -> {head_rev}")
            command.upgrade(alembic_cfg, "head")
            logger.info("Migrations applied")
        else:
            logger.info("Database is up to date")
        return True
    except Exception as e:
        logger.error(f"Migration failed: {e}")
        return False


def main() -> int:
    parser = argparse.ArgumentParser(description="Prepare the payroll database")
    parser.add_argument("--migrate", action="store_true", help="apply Alembic migrations instead of create_all")
    args = parser.parse_args()

    engine = create_database_engine(config=config_service)
    try:
        if args.migrate:
            if not run_migrations(engine):
                return 1
        else:
            init_database(engine)
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        return 1
    finally:
        engine.dispose()
    logger.info("Database ready")
    return 0


if __name__ == "__main__":
    sys.exit(main())
