"""
Work dispatch for payroll jobs.

A unit of work is ``{job_id, uploader_id}``. Dispatchers deliver each unit
at least once, run at most one unit per job id at a time, and can withdraw
units that have not started yet.
"""
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, Optional

from celery import Celery

from app.errors import InternalError, NotFoundError
from app.services.config_service import ConfigService

logger = logging.getLogger("app.dispatch")

PROCESS_JOB_TASK = "payroll.process_job"


def task_id_for(job_id: str) -> str:
    return f"payroll-{job_id}"


class WorkDispatcher(ABC):
    """Queue interface used by the upload and cancel operations."""

    @abstractmethod
    def enqueue(self, job_id: str, uploader_id: str) -> str:
        """Queue a job for processing and return the unit id."""

    @abstractmethod
    def withdraw(self, job_id: str) -> int:
        """Remove not-yet-started units for a job; returns how many were withdrawn."""

    @abstractmethod
    def shutdown(self, timeout: Optional[float] = None) -> bool:
        """Stop accepting work and wait for running units until the deadline."""


class CeleryDispatcher(WorkDispatcher):
    """
    Sends jobs to the Celery ``ingest`` queue.

    The task id is derived from the job id, so a queued unit can be revoked
    without storing the task id anywhere. Waiting for running units on
    shutdown is the worker's warm shutdown; here shutdown only stops new
    sends and releases broker connections.
    """

    def __init__(self, celery_app: Celery, attempts: int = 1):
        self.celery_app = celery_app
        self.attempts = attempts
        self._accepting = True

    def enqueue(self, job_id: str, uploader_id: str) -> str:
        if not self._accepting:
            raise InternalError("Dispatcher is shut down")

        result = self.celery_app.send_task(
            PROCESS_JOB_TASK,
            kwargs={"job_id": job_id, "uploader_id": uploader_id},
            task_id=task_id_for(job_id),
            queue="ingest",
        )
        logger.info(f"Job {job_id} enqueued, task: {result.id}")
        return result.id

    def withdraw(self, job_id: str) -> int:
        self.celery_app.control.revoke(task_id_for(job_id))
        logger.info(f"Revoked task for job {job_id}")
        return 1

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        self._accepting = False
        self.celery_app.close()
        logger.info("Celery dispatcher shut down")
        return True


class LocalDispatcher(WorkDispatcher):
    """
    Runs jobs on an in-process thread pool, for setups without a broker.

    Args:
        runner: Callable processing one job id (e.g. ``JobProcessor.run``)
        concurrency: Number of jobs processed at the same time
        attempts: Top-level attempts per unit of work
    """

    def __init__(self, runner: Callable[[str], Any], concurrency: int = 2, attempts: int = 1):
        self.runner = runner
        self.attempts = max(1, attempts)
        self._executor = ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="payroll-job")
        self._units: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self._accepting = True

    def enqueue(self, job_id: str, uploader_id: str) -> str:
        with self._lock:
            if not self._accepting:
                raise InternalError("Dispatcher is shut down")

            existing = self._units.get(job_id)
            if existing is not None and not existing.done():
                logger.info(f"Job {job_id} already queued or running, not enqueued again")
                return task_id_for(job_id)

            future = self._executor.submit(self._run_unit, job_id, uploader_id)
            self._units[job_id] = future
            future.add_done_callback(lambda done, job_id=job_id: self._forget(job_id, done))

        logger.info(f"Job {job_id} enqueued locally for uploader {uploader_id}")
        return task_id_for(job_id)

    def _forget(self, job_id: str, future: Future) -> None:
        with self._lock:
            if self._units.get(job_id) is future:
                del self._units[job_id]

    def _run_unit(self, job_id: str, uploader_id: str) -> Any:
        for attempt in range(1, self.attempts + 1):
            try:
                return self.runner(job_id)
            except NotFoundError:
                logger.error(f"Job {job_id} not found, unit dropped")
                raise
            except Exception as e:
                if attempt >= self.attempts:
                    logger.error(f"Job {job_id} failed after {attempt} attempt(s): {e}")
                    raise
                logger.warning(f"Job {job_id} attempt {attempt} failed, retrying: {e}")

    def withdraw(self, job_id: str) -> int:
        with self._lock:
            future = self._units.get(job_id)
        if future is not None and future.cancel():
            logger.info(f"Withdrew queued job {job_id}")
            return 1
        return 0

    def pending(self, job_id: str) -> Optional[Future]:
        with self._lock:
            return self._units.get(job_id)

    def shutdown(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            self._accepting = False
            futures = list(self._units.values())

        done, not_done = wait(futures, timeout=timeout)
        self._executor.shutdown(wait=False, cancel_futures=True)
        if not_done:
            logger.warning(f"Dispatcher shut down with {len(not_done)} unit(s) still running")
        else:
            logger.info("Local dispatcher shut down")
        return not not_done


def create_dispatcher(
    config: ConfigService,
    runner: Optional[Callable[[str], Any]] = None,
    celery_app: Optional[Celery] = None,
) -> WorkDispatcher:
    """
    Build the dispatcher selected by DISPATCH_BACKEND.

    Raises:
        ValueError: Unknown backend, or the local backend without a runner
    """
    backend = str(config.get_setting("DISPATCH_BACKEND", "celery")).lower()

    if backend == "celery":
        if celery_app is None:
            from worker.celery_app import celery_app
        return CeleryDispatcher(celery_app, attempts=config.dispatch_attempts)

    if backend == "local":
        if runner is None:
            raise ValueError("Local dispatch requires a job runner")
        return LocalDispatcher(
            runner,
            concurrency=config.get_int("DISPATCH_CONCURRENCY", 2),
            attempts=config.dispatch_attempts,
        )

    raise ValueError(f"Unknown dispatch backend: {backend}")
