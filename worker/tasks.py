"""
Celery tasks for bulk payroll processing.
"""
import logging
from typing import Any, Dict, Optional

from celery.signals import worker_process_init, worker_process_shutdown

from app.errors import NotFoundError
from app.services.config_service import config_service
from app.services.dispatch_service import PROCESS_JOB_TASK
from app.services.job_processor import JobProcessor
from worker.celery_app import celery_app
from worker.runtime import WorkerRuntime

logger = logging.getLogger("worker.tasks")

# Opened once per worker process
_runtime: Optional[WorkerRuntime] = None


def get_processor() -> JobProcessor:
    global _runtime
    if _runtime is None:
        _runtime = WorkerRuntime.from_config(config_service)
    return _runtime.processor


@worker_process_init.connect
def open_runtime(**kwargs) -> None:
    get_processor()
    logger.info("Worker runtime opened")


@worker_process_shutdown.connect
def close_runtime(**kwargs) -> None:
    global _runtime
    if _runtime is not None:
        _runtime.close()
        _runtime = None
        logger.info("Worker runtime closed")


@celery_app.task(bind=True, name=PROCESS_JOB_TASK, max_retries=config_service.dispatch_attempts - 1)
def process_payroll_job(self, job_id: str, uploader_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Process a payroll job in background.

    Args:
        job_id: Payroll job ID to process
        uploader_id: Uploader of the job
    """
    logger.info(f"Starting payroll job processing: {job_id} (uploader {uploader_id})")

    try:
        summary = get_processor().run(job_id)
    except NotFoundError as e:
        # Fatal: retrying cannot make the job appear
        logger.error(f"Payroll job not found: {job_id} - {e}")
        raise
    except Exception as e:
        logger.error(f"Payroll job failed: {job_id} - {e}")
        # Re-raise exception for Celery; retried while top-level attempts remain
        raise self.retry(exc=e, countdown=60)

    logger.info(
        f"Payroll job done: {job_id} - {summary.status}, "
        f"{summary.processed} rows processed, {summary.failed} failed"
    )
    return summary.to_dict()
