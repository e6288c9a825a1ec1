"""
Pytest configuration and fixtures for bulk payroll tests.
"""

import json
import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.database.engine import create_database_engine
from app.database.init_db import init_database
from app.database.session import create_session_factory
from app.main import create_app
from app.middleware.auth import TokenIdentityResolver
from app.models.payment_row import PaymentRow
from app.models.payroll_models import JobStatus, PayrollJob, PayrollRow
from app.services.config_service import ConfigService
from app.services.dispatch_service import WorkDispatcher
from app.services.job_repository import JobRepository

TODAY = date(2026, 3, 15)
TEST_SECRET = "test-secret-key"


class RecordingDispatcher(WorkDispatcher):
    """Dispatcher that only records calls."""

    def __init__(self, fail: bool = False):
        self.enqueued = []
        self.withdrawn = []
        self.fail = fail
        self.closed = False

    def enqueue(self, job_id, uploader_id):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.enqueued.append((job_id, uploader_id))
        return f"payroll-{job_id}"

    def withdraw(self, job_id):
        self.withdrawn.append(job_id)
        return 1

    def shutdown(self, timeout=None):
        self.closed = True
        return True


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def test_config():
    """Configuration with a fixed reference date."""
    return ConfigService({
        "APP_NOW_MODE": "fake",
        "APP_FAKE_NOW": TODAY.isoformat(),
        "AUTH_SECRET_KEY": TEST_SECRET,
        "MAX_ROWS_PER_UPLOAD": "50",
        "MAX_RETRIES": "3",
        "BATCH_SIZE": "10",
    })


@pytest.fixture
def test_engine(tmp_path):
    """Isolated sqlite database per test."""
    engine = create_database_engine(f"sqlite:///{tmp_path / 'test.db'}", config=ConfigService())
    init_database(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def repository(test_engine):
    return JobRepository(create_session_factory(test_engine))


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def identity_resolver():
    return TokenIdentityResolver(TEST_SECRET)


@pytest.fixture
def auth_headers(identity_resolver):
    """Build Authorization headers for a user."""

    def build(user_id="user-1", role="USER"):
        return {"Authorization": f"Bearer {identity_resolver.issue_token(user_id, role)}"}

    return build


@pytest.fixture
def client(test_config, repository, dispatcher, identity_resolver):
    """Create a test client wired to the test database and dispatcher."""
    app = create_app(
        config=test_config,
        repository=repository,
        dispatcher=dispatcher,
        identity_resolver=identity_resolver,
    )
    with TestClient(app) as test_client:
        yield test_client


def make_payment_row(index, amount="100.00", currency="USD", pay_date=None):
    return PaymentRow(
        employee_id=f"EMP{index:03d}",
        amount=Decimal(amount),
        currency=currency,
        pay_date=pay_date or TODAY + timedelta(days=1),
    )


@pytest.fixture
def make_job(repository):
    """Create a QUEUED job with ``row_count`` pending rows."""

    def build(row_count=3, uploader_id="user-1", max_retries=3, status=JobStatus.QUEUED):
        job = PayrollJob(
            id=uuid.uuid4().hex,
            uploader_id=uploader_id,
            status=status.value,
            total_rows=row_count,
            valid_row_count=row_count,
            invalid_row_count=0,
            raw_payload_json=json.dumps({"headers": ["employee_id", "amount", "currency", "pay_date"]}),
            error_summary_json="[]",
        )
        repository.create_job(job)
        rows = []
        for index in range(row_count):
            payment = make_payment_row(index)
            rows.append(PayrollRow(
                id=uuid.uuid4().hex,
                job_id=job.id,
                row_index=index,
                input_json=json.dumps({
                    "employee_id": payment.employee_id,
                    "amount": str(payment.amount),
                    "currency": payment.currency,
                    "pay_date": payment.pay_date.isoformat(),
                }),
                normalized_json=json.dumps(payment.to_snapshot()),
                max_retries=max_retries,
            ))
        repository.create_rows(rows)
        return job

    return build


@pytest.fixture
def payment_row_factory():
    return make_payment_row
