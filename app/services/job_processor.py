"""
Job processor: drives a payroll job's rows through the payments adapter.

Rows are processed in fixed-size batches. Batches run one after another;
rows inside a batch run concurrently. Each row gets up to ``max_retries``
payment attempts with exponential backoff (1s, 2s, 4s, ...) between them.
Row outcomes and the job's aggregate counters are written only after a
batch has finished, so readers never see a partially counted batch.

A job whose rows all ran is COMPLETED even when some rows FAILED. Only an
infrastructure failure (e.g. the database going away) makes the job FAILED;
that error is re-raised for the dispatch layer.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from app.errors import AppError, InternalError, NotFoundError
from app.models.payment_row import PaymentRow
from app.models.payroll_models import (
    CANCELLABLE_JOB_STATUSES,
    JobStatus,
    PayrollRow,
    RowStatus,
    utcnow,
)
from app.services.job_repository import JobRepository
from app.services.payments_adapter import PaymentsAdapter

logger = logging.getLogger("app.job_processor")


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with the job id."""

    def process(self, msg, kwargs):
        return f"job={self.extra['job_id']} {msg}", kwargs


@dataclass
class RowOutcome:
    success: bool
    attempts: int
    provider_response: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None


@dataclass
class ProcessingSummary:
    job_id: str
    status: str
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: bool = False
    batches: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "batches": self.batches,
        }


def backoff_seconds(attempt: int) -> int:
    """Delay after the given (1-based) failed attempt."""
    return 2 ** (attempt - 1)


class JobProcessor:
    """Processes one job per call; the dispatch layer runs at most one call per job."""

    def __init__(
        self,
        repository: JobRepository,
        adapter: PaymentsAdapter,
        batch_size: int = 10,
        max_retries: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.repository = repository
        self.adapter = adapter
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.sleep = sleep

    def run(self, job_id: str) -> ProcessingSummary:
        """Synchronous entry point for worker tasks."""
        return asyncio.run(self.process_job(job_id))

    async def process_job(self, job_id: str) -> ProcessingSummary:
        """
        Process every pending row of a job.

        Args:
            job_id: Job to process

        Returns:
            ProcessingSummary with final counters

        Raises:
            NotFoundError: The job does not exist
            InternalError: Processing was interrupted by an infrastructure failure
        """
        log = JobLogAdapter(logger, {"job_id": job_id})

        try:
            job = self.repository.get_job(job_id, with_rows=True)
        except Exception as e:
            log.error(f"Failed to load job: {e}")
            raise InternalError(f"Failed to load job {job_id}: {e}") from e

        if job is None:
            log.error("Job not found")
            raise NotFoundError(f"Job {job_id}")

        if JobStatus(job.status).is_terminal:
            log.info(f"Job already {job.status}, nothing to do")
            return ProcessingSummary(job_id=job_id, status=job.status, skipped=True)

        try:
            started = self.repository.transition_status(
                job_id, CANCELLABLE_JOB_STATUSES, JobStatus.PROCESSING, started_at=utcnow()
            )
        except Exception as e:
            log.error(f"Failed to start job: {e}")
            raise InternalError(f"Failed to start job {job_id}: {e}") from e
        if not started:
            log.info("Job left the queue before processing started")
            return ProcessingSummary(job_id=job_id, status=JobStatus.CANCELLED.value, skipped=True)

        log.info(f"Job started, {len(job.rows)} rows, batch_size={self.batch_size}")

        try:
            summary = await self._process_rows(job_id, job.rows, log)
        except Exception as e:
            log.error(f"Job failed: {e}")
            try:
                self.repository.transition_status(
                    job_id, CANCELLABLE_JOB_STATUSES, JobStatus.FAILED, completed_at=utcnow()
                )
            except Exception as db_error:
                log.error(f"Failed to update job status: {db_error}")
            if isinstance(e, AppError):
                raise
            raise InternalError(f"Processing of job {job_id} failed: {e}") from e

        log.info(
            f"Job finished with status {summary.status}: {summary.processed} processed, "
            f"{summary.succeeded} succeeded, {summary.failed} failed"
        )
        return summary

    async def _process_rows(self, job_id: str, rows: List[PayrollRow], log: logging.LoggerAdapter) -> ProcessingSummary:
        rows = sorted(rows, key=lambda row: row.row_index)
        # Rows finished by an earlier delivery of this job are counted, not re-run
        pending = [row for row in rows if not row.is_terminal]
        summary = ProcessingSummary(job_id=job_id, status=JobStatus.PROCESSING.value)
        summary.processed = len(rows) - len(pending)
        summary.failed = sum(1 for row in rows if row.status == RowStatus.FAILED.value)
        summary.succeeded = summary.processed - summary.failed

        for start in range(0, len(pending), self.batch_size):
            batch = pending[start:start + self.batch_size]
            summary.batches += 1
            log.info(f"Processing batch {summary.batches} ({len(batch)} rows of {len(pending)} pending)")

            outcomes = await asyncio.gather(
                *(self.process_row(row, log) for row in batch),
                return_exceptions=True,
            )

            for row, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    log.error(f"Row {row.row_index} processing crashed: {outcome}")
                    outcome = RowOutcome(
                        success=False,
                        attempts=self._max_attempts(row),
                        error_message=str(outcome) or type(outcome).__name__,
                    )
                self._save_row(row, outcome)
                summary.processed += 1
                if outcome.success:
                    summary.succeeded += 1
                else:
                    summary.failed += 1

            counted = self.repository.update_job(
                job_id,
                statuses=[JobStatus.PROCESSING],
                processed_row_count=summary.processed,
                failed_row_count=summary.failed,
            )
            if not counted:
                # Cancelled while this batch ran; remaining rows stay PENDING
                log.warning(f"Job left PROCESSING during batch {summary.batches}, stopping")
                break
            log.info(
                f"Batch {summary.batches} completed: processed={summary.processed} "
                f"succeeded={summary.succeeded} failed={summary.failed}"
            )

        completed = self.repository.transition_status(
            job_id,
            [JobStatus.PROCESSING],
            JobStatus.COMPLETED,
            completed_at=utcnow(),
            processed_row_count=summary.processed,
            failed_row_count=summary.failed,
        )
        if completed:
            summary.status = JobStatus.COMPLETED.value
        else:
            current = self.repository.get_job(job_id)
            summary.status = current.status if current else JobStatus.CANCELLED.value
            log.warning(f"Job was moved to {summary.status} while processing")
        return summary

    def _max_attempts(self, row: PayrollRow) -> int:
        return row.max_retries if row.max_retries and row.max_retries > 0 else self.max_retries

    def _save_row(self, row: PayrollRow, outcome: RowOutcome) -> None:
        self.repository.update_row(
            row.id,
            status=RowStatus.SUCCESS.value if outcome.success else RowStatus.FAILED.value,
            attempts=outcome.attempts,
            provider_response_json=json.dumps(outcome.provider_response) if outcome.provider_response else None,
            error_message=outcome.error_message,
        )

    async def process_row(self, row: PayrollRow, log: logging.LoggerAdapter = None) -> RowOutcome:
        """
        Attempt one row's payment until it succeeds or attempts run out.

        Adapter failures and adapter exceptions are both counted as failed
        attempts and never escape this method.

        Args:
            row: Persisted row with its normalized snapshot
            log: Logger carrying the job context

        Returns:
            RowOutcome with the number of attempts made
        """
        log = log or JobLogAdapter(logger, {"job_id": row.job_id})
        payment = PaymentRow.from_snapshot(row.normalized_snapshot or {})
        max_attempts = self._max_attempts(row)
        attempts = 0
        last_error: Optional[str] = None

        while attempts < max_attempts:
            attempts += 1
            log.debug(f"Processing row {row.row_index}, attempt {attempts}/{max_attempts}")
            try:
                result = await self.adapter.create_payment(payment)
            except Exception as e:
                last_error = str(e) or type(e).__name__
                log.warning(f"Row {row.row_index} attempt {attempts} raised: {last_error}")
            else:
                if result.success:
                    log.info(f"Row {row.row_index} paid, provider_id={result.provider_id}")
                    response = dict(result.raw_response)
                    if result.provider_id:
                        response.setdefault("id", result.provider_id)
                    return RowOutcome(success=True, attempts=attempts, provider_response=response)
                last_error = result.error or "Payment failed"
                log.warning(f"Row {row.row_index} attempt {attempts} failed: {last_error}")

            if attempts < max_attempts:
                await self.sleep(backoff_seconds(attempts))

        log.error(f"Row {row.row_index} failed after {attempts} attempts: {last_error}")
        return RowOutcome(
            success=False,
            attempts=attempts,
            error_message=last_error or "Payment processing failed",
        )
