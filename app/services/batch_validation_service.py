"""
Batch validation: mapping, per-row validation and duplicate detection.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from app.models.payment_row import PaymentRow
from app.services.validation_service import PaymentRowValidator, RowError

logger = logging.getLogger("app.batch_validation")


@dataclass
class InvalidRow:
    row_index: int
    raw_data: Dict[str, Any]
    errors: List[RowError]

    def to_summary(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "error": "; ".join(error.message for error in self.errors),
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class DuplicateRow:
    row_index: int
    raw_data: Dict[str, Any]
    duplicate_of_index: int

    def to_summary(self) -> Dict[str, Any]:
        return {
            "row_index": self.row_index,
            "error": f"Duplicate of row {self.duplicate_of_index}",
            "duplicate_of_index": self.duplicate_of_index,
        }


@dataclass
class ValidationOutcome:
    """
    Partition of a batch. Every input index is in exactly one of
    ``valid_row_indices``, ``invalid_rows`` or ``duplicates``.
    """

    valid_rows: List[PaymentRow] = field(default_factory=list)
    valid_row_indices: List[int] = field(default_factory=list)
    invalid_rows: List[InvalidRow] = field(default_factory=list)
    duplicates: List[DuplicateRow] = field(default_factory=list)
    total_rows: int = 0

    @property
    def rejected_count(self) -> int:
        return len(self.invalid_rows) + len(self.duplicates)

    def error_summary(self, limit: int) -> List[Dict[str, Any]]:
        """First ``limit`` invalid or duplicate rows, in input order."""
        rejected = sorted(self.invalid_rows + self.duplicates, key=lambda item: item.row_index)
        return [item.to_summary() for item in rejected[:limit]]


def project_row(raw_row: Mapping[str, Any], mapping: Mapping[str, Optional[str]]) -> Dict[str, Any]:
    """Pick canonical field values out of a raw row; unmapped fields are omitted."""
    candidate = {}
    for field_name, column in mapping.items():
        if column is not None and column in raw_row:
            candidate[field_name] = raw_row[column]
    return candidate


class BatchValidationService:
    """Validates a whole upload and partitions it into valid, invalid and duplicate rows."""

    def __init__(self, validator: Optional[PaymentRowValidator] = None):
        self.validator = validator or PaymentRowValidator()

    def validate_batch(
        self,
        raw_rows: List[Mapping[str, Any]],
        mapping: Mapping[str, Optional[str]],
        today: Optional[date] = None,
    ) -> ValidationOutcome:
        """
        Validate raw rows in input order.

        The first occurrence of a payment key (recipient, amount, pay date)
        is kept; later rows with the same key are reported as duplicates of
        it. Rows that fail validation are never considered for duplicates.

        Args:
            raw_rows: Rows keyed by input column name
            mapping: Canonical field to input column mapping
            today: Reference date for pay date checks

        Returns:
            ValidationOutcome with the three partitions
        """
        today = today or self.validator.today_provider()
        outcome = ValidationOutcome(total_rows=len(raw_rows))
        seen: Dict[str, int] = {}

        for index, raw_row in enumerate(raw_rows):
            result = self.validator.validate(project_row(raw_row, mapping), today=today)
            if not result.ok:
                outcome.invalid_rows.append(InvalidRow(index, dict(raw_row), result.errors))
                continue

            key = result.row.payment_key
            if key in seen:
                outcome.duplicates.append(DuplicateRow(index, dict(raw_row), seen[key]))
                continue

            seen[key] = index
            outcome.valid_rows.append(result.row)
            outcome.valid_row_indices.append(index)

        logger.info(
            f"Batch validated: {outcome.total_rows} rows, {len(outcome.valid_rows)} valid, "
            f"{len(outcome.invalid_rows)} invalid, {len(outcome.duplicates)} duplicates"
        )
        return outcome
