"""
Bulk payroll upload, listing, detail, cancel and export operations.
"""
import json
import logging
import math
import uuid
from typing import Any, Dict, List, Mapping, Optional

from app.errors import ConflictError, InternalError, NotFoundError, ValidationError
from app.models.payroll_models import (
    CANCELLABLE_JOB_STATUSES,
    JobStatus,
    PayrollJob,
    PayrollRow,
    RowStatus,
)
from app.services.batch_validation_service import BatchValidationService
from app.services.column_mapper import detect_mapping
from app.services.config_service import ConfigService
from app.services.csv_service import parse_csv, rows_to_csv
from app.services.dispatch_service import WorkDispatcher
from app.services.job_repository import JobRepository
from app.services.validation_service import PaymentRowValidator

logger = logging.getLogger("app.upload")

PREVIEW_ROWS = 10
MAX_PAGE_SIZE = 100


def collect_headers(rows: List[Mapping[str, Any]]) -> List[str]:
    """Column names across all rows, in first-seen order."""
    headers: Dict[str, None] = {}
    for row in rows:
        for key in row.keys():
            headers.setdefault(str(key), None)
    return list(headers)


class UploadService:
    """Service behind the bulk payroll endpoints."""

    def __init__(self, repository: JobRepository, dispatcher: WorkDispatcher, config: ConfigService):
        self.repository = repository
        self.dispatcher = dispatcher
        self.config = config
        self.batch_validation = BatchValidationService(PaymentRowValidator(config.today))

    def upload_csv(self, content: str, uploader_id: str) -> Dict[str, Any]:
        headers, rows = parse_csv(content)
        if not rows:
            raise ValidationError("CSV file is empty")
        return self.upload_rows(rows, uploader_id, headers=headers)

    def upload_rows(
        self,
        raw_rows: Any,
        uploader_id: str,
        headers: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Validate rows, persist the job with its valid rows and queue it.

        Args:
            raw_rows: List of row objects keyed by column name
            uploader_id: Uploading user
            headers: Column order when known (CSV uploads)

        Returns:
            Upload result with job id, counts and the first rejected rows

        Raises:
            ValidationError: Rows are not a list of objects, empty, or too many
            InternalError: The job could not be stored or queued
        """
        if not isinstance(raw_rows, list):
            raise ValidationError("Invalid request body: rows must be an array")
        if not raw_rows:
            raise ValidationError("No rows provided")
        if len(raw_rows) > self.config.max_rows_per_upload:
            raise ValidationError(
                f"Exceeded maximum rows per upload ({self.config.max_rows_per_upload})",
                details={"rows": len(raw_rows)},
            )
        if not all(isinstance(row, Mapping) for row in raw_rows):
            raise ValidationError("Invalid request body: every row must be an object")

        headers = headers or collect_headers(raw_rows)
        column_mapping = detect_mapping(headers)
        outcome = self.batch_validation.validate_batch(raw_rows, column_mapping)
        error_summary = outcome.error_summary(self.config.error_summary_limit)

        job = PayrollJob(
            id=uuid.uuid4().hex,
            uploader_id=uploader_id,
            status=JobStatus.QUEUED.value,
            total_rows=outcome.total_rows,
            valid_row_count=len(outcome.valid_rows),
            invalid_row_count=outcome.rejected_count,
            raw_payload_json=json.dumps({
                "headers": headers,
                "column_mapping": column_mapping,
                "valid_rows_preview": [row.to_snapshot() for row in outcome.valid_rows[:PREVIEW_ROWS]],
            }),
            error_summary_json=json.dumps(error_summary),
        )
        rows = [
            PayrollRow(
                id=uuid.uuid4().hex,
                job_id=job.id,
                row_index=position,
                input_json=json.dumps(dict(raw_rows[source_index]), default=str),
                normalized_json=json.dumps(payment.to_snapshot()),
                status=RowStatus.PENDING.value,
                max_retries=self.config.max_retries,
            )
            for position, (payment, source_index) in enumerate(
                zip(outcome.valid_rows, outcome.valid_row_indices)
            )
        ]

        self.repository.create_job(job)
        try:
            self.repository.create_rows(rows)
        except Exception as e:
            logger.error(f"Failed to store rows for job {job.id}: {e}")
            self.repository.delete_job(job.id)
            raise InternalError("Failed to store payroll rows") from e

        try:
            self.dispatcher.enqueue(job.id, uploader_id)
        except Exception as e:
            logger.error(f"Failed to enqueue job {job.id}: {e}")
            self.repository.transition_status(job.id, [JobStatus.QUEUED], JobStatus.FAILED)
            raise InternalError("Failed to queue payroll job") from e

        logger.info(
            f"Bulk payroll job created: {job.id} uploader={uploader_id} valid={job.valid_row_count} "
            f"invalid={len(outcome.invalid_rows)} duplicates={len(outcome.duplicates)}"
        )

        return {
            "job_id": job.id,
            "total_rows": job.total_rows,
            "valid_row_count": job.valid_row_count,
            "invalid_row_count": job.invalid_row_count,
            "error_summary": error_summary,
            "message": "Job queued for processing",
        }

    def list_jobs(self, uploader_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        page = max(1, page)
        limit = min(MAX_PAGE_SIZE, max(1, limit))
        jobs, total = self.repository.list_jobs(uploader_id, page=page, limit=limit)
        return {
            "items": [job.to_summary() for job in jobs],
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        }

    def _get_owned_job(self, job_id: str, uploader_id: str, with_rows: bool = False) -> PayrollJob:
        job = self.repository.get_job(job_id, with_rows=with_rows)
        # Other users' jobs are indistinguishable from missing ones
        if job is None or job.uploader_id != uploader_id:
            raise NotFoundError("Job")
        return job

    def get_job_detail(self, job_id: str, uploader_id: str) -> Dict[str, Any]:
        job = self._get_owned_job(job_id, uploader_id, with_rows=True)
        detail = job.to_summary()
        detail["error_summary"] = job.error_summary
        detail["rows"] = [row.to_summary() for row in sorted(job.rows, key=lambda row: row.row_index)]
        return detail

    def cancel_job(self, job_id: str, uploader_id: str) -> Dict[str, Any]:
        """
        Cancel a QUEUED or PROCESSING job.

        Raises:
            NotFoundError: Unknown job or not the caller's
            ConflictError: The job is already in a terminal state
        """
        job = self._get_owned_job(job_id, uploader_id)
        if JobStatus(job.status) not in CANCELLABLE_JOB_STATUSES:
            raise ConflictError(f"Cannot cancel job with status {job.status}")

        if job.status == JobStatus.QUEUED.value:
            try:
                withdrawn = self.dispatcher.withdraw(job_id)
                logger.info(f"Withdrew {withdrawn} queued unit(s) for job {job_id}")
            except Exception as e:
                logger.warning(f"Failed to withdraw queued job {job_id}: {e}")

        if not self.repository.transition_status(job_id, CANCELLABLE_JOB_STATUSES, JobStatus.CANCELLED):
            current = self.repository.get_job(job_id)
            raise ConflictError(f"Cannot cancel job with status {current.status if current else 'unknown'}")

        logger.info(f"Job {job_id} cancelled by {uploader_id}")
        return {"id": job_id, "status": JobStatus.CANCELLED.value, "message": "Job cancelled successfully"}

    def export_rows_csv(self, job_id: str, uploader_id: str, status: Optional[str] = None) -> str:
        """
        Export the input of a job's rows as CSV, optionally only rows in ``status``.
        """
        if status is not None:
            status = status.upper()
            if status not in {item.value for item in RowStatus}:
                raise ValidationError(f"Unknown row status: {status}")

        job = self._get_owned_job(job_id, uploader_id)
        rows = [row.input_snapshot for row in self.repository.get_rows(job_id, status=status)]
        payload = job.raw_payload or {}
        headers = payload.get("headers") or collect_headers(rows)
        return rows_to_csv(rows, headers)
