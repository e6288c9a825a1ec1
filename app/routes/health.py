"""
Health check endpoints.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.dependencies import get_repository
from app.services.job_repository import JobRepository

router = APIRouter()
logger = logging.getLogger("app.health")

SERVICE_NAME = "payroll-batch"
SERVICE_VERSION = "0.1.0"


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for Kubernetes/Docker health probes.

    Returns:
        Dict with status information
    """
    logger.debug("Health check requested")

    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


@router.get("/health")
async def detailed_health(repository: JobRepository = Depends(get_repository)) -> JSONResponse:
    """
    Detailed health check with database connectivity.

    Returns:
        200 when the database answers, 503 otherwise
    """
    logger.info("Detailed health check requested")

    try:
        repository.ping()
        database = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database = "unavailable"

    healthy = database == "connected"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "components": {
                "database": database,
            },
        },
    )
