"""
Tests for batch validation and duplicate detection.
"""
from datetime import date, timedelta

import pytest

from app.services.batch_validation_service import BatchValidationService, project_row
from app.services.column_mapper import detect_mapping
from app.services.validation_service import PaymentRowValidator

TODAY = date(2026, 3, 15)
TOMORROW = (TODAY + timedelta(days=1)).isoformat()


@pytest.fixture
def service():
    return BatchValidationService(PaymentRowValidator(lambda: TODAY))


def validate(service, rows):
    headers = list(rows[0].keys()) if rows else []
    return service.validate_batch(rows, detect_mapping(headers))


class TestBatchValidation:
    """Test BatchValidationService.validate_batch."""

    def test_valid_and_invalid_rows(self, service):
        rows = [
            {"email": "a@x.com", "amount": "1500.00", "currency": "usd", "pay_date": TOMORROW},
            {"email": "bad-email", "amount": "abc", "currency": "ZZZ", "pay_date": TOMORROW},
        ]
        outcome = validate(service, rows)

        assert len(outcome.valid_rows) == 1
        assert len(outcome.invalid_rows) == 1
        assert outcome.valid_rows[0].currency == "USD"
        assert outcome.invalid_rows[0].row_index == 1
        assert outcome.invalid_rows[0].raw_data == rows[1]

    def test_duplicates_point_at_first_occurrence(self, service):
        rows = [
            {"employee_id": "EMP001", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
            {"employee_id": "EMP002", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
            {"employee_id": "EMP001", "amount": "100.00", "currency": "EUR", "pay_date": TOMORROW},
            {"employee_id": "EMP001", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
        ]
        outcome = validate(service, rows)

        assert outcome.valid_row_indices == [0, 1]
        assert [(d.row_index, d.duplicate_of_index) for d in outcome.duplicates] == [(2, 0), (3, 0)]

    def test_invalid_row_never_counts_as_first_occurrence(self, service):
        rows = [
            {"employee_id": "EMP001", "amount": "100", "currency": "ZZZ", "pay_date": TOMORROW},
            {"employee_id": "EMP001", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
        ]
        outcome = validate(service, rows)

        assert outcome.valid_row_indices == [1]
        assert outcome.duplicates == []

    def test_id_and_email_of_same_person_are_different_keys(self, service):
        rows = [
            {"employee_id": "EMP001", "employee_email": "", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
            {"employee_id": "", "employee_email": "emp001@x.com", "amount": "100", "currency": "USD", "pay_date": TOMORROW},
        ]
        outcome = validate(service, rows)
        assert len(outcome.valid_rows) == 2

    def test_every_index_in_exactly_one_partition(self, service):
        rows = [
            {"employee_id": f"EMP{i % 4:03d}", "amount": "10" if i % 3 else "x", "currency": "USD", "pay_date": TOMORROW}
            for i in range(12)
        ]
        outcome = validate(service, rows)

        indices = (
            outcome.valid_row_indices
            + [row.row_index for row in outcome.invalid_rows]
            + [row.row_index for row in outcome.duplicates]
        )
        assert sorted(indices) == list(range(12))
        assert outcome.total_rows == 12
        assert outcome.valid_row_indices == sorted(outcome.valid_row_indices)
        assert [row.row_index for row in outcome.invalid_rows] == sorted(row.row_index for row in outcome.invalid_rows)

    def test_error_summary_in_row_order_and_bounded(self, service):
        rows = [{"employee_id": "EMP001", "amount": "100", "currency": "USD", "pay_date": TOMORROW}]
        rows += [{"employee_id": "EMP001", "amount": "100", "currency": "USD", "pay_date": TOMORROW}] * 3
        rows += [{"employee_id": "EMP001", "amount": "bad", "currency": "USD", "pay_date": TOMORROW}] * 30
        outcome = validate(service, rows)

        summary = outcome.error_summary(20)
        assert len(summary) == 20
        assert [entry["row_index"] for entry in summary] == list(range(1, 21))
        assert summary[0]["error"] == "Duplicate of row 0"
        assert outcome.rejected_count == 33

    def test_unmapped_columns_are_ignored(self, service):
        rows = [{"employee_id": "EMP001", "amount": "5", "currency": "USD", "pay_date": TOMORROW, "team": "ops"}]
        outcome = validate(service, rows)
        assert len(outcome.valid_rows) == 1


def test_project_row_uses_mapping():
    mapping = {"amount": "Salary", "currency": None, "pay_date": "Date"}
    candidate = project_row({"Salary": "10", "Date": "2026-01-01", "Other": "x"}, mapping)
    assert candidate == {"amount": "10", "pay_date": "2026-01-01"}
