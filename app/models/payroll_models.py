"""
Payroll job and row models.
"""
import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class JobStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


TERMINAL_JOB_STATUSES = frozenset([JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED])
CANCELLABLE_JOB_STATUSES = frozenset([JobStatus.QUEUED, JobStatus.PROCESSING])


class RowStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


def _load(value: Optional[str]) -> Any:
    return json.loads(value) if value else None


class PayrollJob(SQLModel, table=True):
    """One bulk payroll upload and its processing lifecycle."""

    __tablename__ = "payroll_jobs"

    id: str = Field(primary_key=True, max_length=50)
    uploader_id: str = Field(max_length=100, index=True)
    status: str = Field(default=JobStatus.QUEUED.value, max_length=20, index=True)
    total_rows: int = Field(default=0)
    # Fixed at upload time; describe the initial validation outcome
    valid_row_count: int = Field(default=0)
    invalid_row_count: int = Field(default=0)
    # Written by the job processor at batch boundaries
    processed_row_count: int = Field(default=0)
    failed_row_count: int = Field(default=0)
    raw_payload_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_summary_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(default_factory=utcnow, index=True)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    rows: List["PayrollRow"] = Relationship(
        back_populates="job",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "PayrollRow.row_index"},
    )

    @property
    def raw_payload(self) -> Optional[Dict[str, Any]]:
        return _load(self.raw_payload_json)

    @property
    def error_summary(self) -> List[Dict[str, Any]]:
        return _load(self.error_summary_json) or []

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "total_rows": self.total_rows,
            "valid_row_count": self.valid_row_count,
            "invalid_row_count": self.invalid_row_count,
            "processed_row_count": self.processed_row_count,
            "failed_row_count": self.failed_row_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class PayrollRow(SQLModel, table=True):
    """One validated payment row of a job."""

    __tablename__ = "payroll_rows"
    __table_args__ = (UniqueConstraint("job_id", "row_index", name="uq_payroll_rows_job_row_index"),)

    id: str = Field(primary_key=True, max_length=50)
    job_id: str = Field(foreign_key="payroll_jobs.id", ondelete="CASCADE", max_length=50, index=True)
    # Position within the job's valid rows, not the original input line
    row_index: int = Field()
    input_json: str = Field(sa_column=Column(Text, nullable=False))
    normalized_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    status: str = Field(default=RowStatus.PENDING.value, max_length=20, index=True)
    attempts: int = Field(default=0)
    max_retries: int = Field(default=3)
    provider_response_json: Optional[str] = Field(default=None, sa_column=Column(Text))
    error_message: Optional[str] = Field(default=None, max_length=1000)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    # Relationships
    job: Optional[PayrollJob] = Relationship(back_populates="rows")

    @property
    def input_snapshot(self) -> Dict[str, Any]:
        return _load(self.input_json) or {}

    @property
    def normalized_snapshot(self) -> Optional[Dict[str, Any]]:
        return _load(self.normalized_json)

    @property
    def provider_response(self) -> Optional[Dict[str, Any]]:
        return _load(self.provider_response_json)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RowStatus.SUCCESS.value, RowStatus.FAILED.value)

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "row_index": self.row_index,
            "status": self.status,
            "attempts": self.attempts,
            "error_message": self.error_message,
            "provider_response": self.provider_response,
        }
