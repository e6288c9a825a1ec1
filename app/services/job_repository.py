"""
Persistence for payroll jobs and rows.
"""
import logging
from typing import Any, Iterable, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.orm import selectinload, sessionmaker

from app.database.session import session_scope
from app.models.payroll_models import JobStatus, PayrollJob, PayrollRow, utcnow

logger = logging.getLogger("app.job_repository")


def _status_values(statuses: Iterable[Any]) -> List[str]:
    return [status.value if isinstance(status, JobStatus) else str(status) for status in statuses]


class JobRepository:
    """
    Reads and writes jobs and rows through a session factory.

    Objects returned are detached copies; write through the update methods.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def create_job(self, job: PayrollJob) -> PayrollJob:
        with session_scope(self.session_factory) as db:
            db.add(job)
        logger.info(f"Created payroll job {job.id} for uploader {job.uploader_id}")
        return job

    def create_rows(self, rows: List[PayrollRow]) -> int:
        if not rows:
            return 0
        with session_scope(self.session_factory) as db:
            db.add_all(rows)
        logger.info(f"Created {len(rows)} payroll rows for job {rows[0].job_id}")
        return len(rows)

    def get_job(self, job_id: str, with_rows: bool = False) -> Optional[PayrollJob]:
        with session_scope(self.session_factory) as db:
            query = db.query(PayrollJob).filter(PayrollJob.id == job_id)
            if with_rows:
                query = query.options(selectinload(PayrollJob.rows))
            return query.first()

    def get_rows(self, job_id: str, status: Optional[str] = None) -> List[PayrollRow]:
        with session_scope(self.session_factory) as db:
            query = db.query(PayrollRow).filter(PayrollRow.job_id == job_id)
            if status:
                query = query.filter(PayrollRow.status == status)
            return query.order_by(PayrollRow.row_index).all()

    def update_job(self, job_id: str, statuses: Optional[Iterable[Any]] = None, **fields: Any) -> bool:
        """
        Update job fields, optionally only while the job is in one of ``statuses``.

        Returns:
            True if the job was updated
        """
        fields["updated_at"] = utcnow()
        with session_scope(self.session_factory) as db:
            query = db.query(PayrollJob).filter(PayrollJob.id == job_id)
            if statuses is not None:
                query = query.filter(PayrollJob.status.in_(_status_values(statuses)))
            updated = query.update(fields, synchronize_session=False)
        return bool(updated)

    def update_row(self, row_id: str, **fields: Any) -> None:
        fields["updated_at"] = utcnow()
        with session_scope(self.session_factory) as db:
            db.query(PayrollRow).filter(PayrollRow.id == row_id).update(fields, synchronize_session=False)

    def transition_status(
        self,
        job_id: str,
        from_statuses: Iterable[Any],
        to_status: JobStatus,
        **fields: Any,
    ) -> bool:
        """
        Move a job to ``to_status`` only if its current status is one of ``from_statuses``.

        Returns:
            True if the job was updated
        """
        allowed = _status_values(from_statuses)
        fields["status"] = to_status.value
        fields["updated_at"] = utcnow()
        with session_scope(self.session_factory) as db:
            updated = (
                db.query(PayrollJob)
                .filter(PayrollJob.id == job_id, PayrollJob.status.in_(allowed))
                .update(fields, synchronize_session=False)
            )
        if updated:
            logger.info(f"Job {job_id} moved to {to_status.value}")
        else:
            logger.warning(f"Job {job_id} not moved to {to_status.value}: status not in {allowed}")
        return bool(updated)

    def list_jobs(self, uploader_id: str, page: int = 1, limit: int = 20) -> Tuple[List[PayrollJob], int]:
        """
        List an uploader's jobs, newest first.

        Returns:
            Tuple of (jobs on the requested page, total job count)
        """
        with session_scope(self.session_factory) as db:
            query = db.query(PayrollJob).filter(PayrollJob.uploader_id == uploader_id)
            total = query.count()
            items = (
                query.order_by(PayrollJob.created_at.desc(), PayrollJob.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
        return items, total

    def delete_job(self, job_id: str) -> bool:
        with session_scope(self.session_factory) as db:
            job = db.query(PayrollJob).filter(PayrollJob.id == job_id).first()
            if not job:
                return False
            db.delete(job)
        logger.info(f"Deleted payroll job {job_id}")
        return True

    def ping(self) -> None:
        """Round trip to the database; raises if unavailable."""
        with session_scope(self.session_factory) as db:
            db.execute(text("SELECT 1"))
