#!/usr/bin/env python3
"""
Check that the payroll service components are reachable.
"""

import logging
import os
import sys
from pathlib import Path

import requests

# Project root on the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


def check_database() -> bool:
    """Check database connectivity."""
    try:
        from app.database.engine import create_database_engine
        from app.database.session import create_session_factory
        from app.services.job_repository import JobRepository

        engine = create_database_engine()
        try:
            JobRepository(create_session_factory(engine)).ping()
        finally:
            engine.dispose()

        logger.info("Database available")
        return True
    except Exception as e:
        logger.error(f"Database unavailable: {e}")
        return False


def check_broker() -> bool:
    """Check message broker connectivity."""
    try:
        from worker.celery_app import celery_app

        with celery_app.connection_for_write() as connection:
            connection.ensure_connection(max_retries=1)

        logger.info("Message broker available")
        return True
    except Exception as e:
        logger.error(f"Message broker unavailable: {e}")
        return False


def check_api() -> bool:
    """Check the HTTP API liveness endpoint."""
    base_url = os.getenv("APP_BASE_URL", "http://localhost:8000")
    try:
        response = requests.get(f"{base_url}/healthz", timeout=5)
        response.raise_for_status()
        logger.info(f"API available at {base_url}")
        return True
    except requests.exceptions.RequestException as e:
        logger.error(f"API unavailable at {base_url}: {e}")
        return False


def main() -> int:
    checks = {
        "database": check_database(),
        "broker": check_broker(),
        "api": check_api(),
    }
    failed = [name for name, ok in checks.items() if not ok]
    if failed:
        logger.error(f"Failed checks: {', '.join(failed)}")
        return 1
    logger.info("All components available")
    return 0


if __name__ == "__main__":
    sys.exit(main())
