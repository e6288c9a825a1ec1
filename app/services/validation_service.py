"""
Validation rules for a single payroll payment row.

Every rule is a plain function returning a list of ``RowError``. Rules for
different fields never short-circuit each other, so a row reports all of its
problems at once. Within one field, a value that cannot be coerced (e.g. an
amount that is not a number) suppresses the remaining checks on that field.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from email_validator import EmailNotValidError, validate_email

from app.models.payment_row import PaymentRow
from app.services.config_service import config_service

logger = logging.getLogger("app.validation")

# ISO 4217 codes accepted for payouts
RECOGNIZED_CURRENCIES = frozenset([
    "USD", "EUR", "GBP", "JPY", "CAD", "AUD", "CHF", "CNY",
    "SEK", "NZD", "MXN", "SGD", "HKD", "NOK", "KRW", "TRY",
    "RUB", "INR", "BRL", "ZAR", "AED", "SAR", "QAR", "KWD",
    "BHD", "OMR", "JOD", "ILS", "BGN", "HRK", "CZK", "DKK",
    "HUF", "PLN", "RON", "IDR", "MYR", "PHP", "THB",
    "VND", "PKR", "BDT", "LKR", "MMK", "KHR", "LAK",
])

MAX_AMOUNT = Decimal("1000000")
MAX_DESCRIPTION_LENGTH = 255
PAST_WINDOW_DAYS = 30
FUTURE_WINDOW_DAYS = 365

EMPLOYEE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{3,64}$")
PAY_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
# Plain decimal notation, no exponent or digit separators
AMOUNT_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class RowError:
    """One validation problem. ``field`` is None for row-level errors."""

    message: str
    field: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "message": self.message}


@dataclass
class RowValidationResult:
    row: Optional[PaymentRow] = None
    errors: List[RowError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.row is not None


def _clean(value: Any) -> Optional[str]:
    """Trim a raw value; empty and missing values become None."""
    if value is None:
        return None
    text = value.strip() if isinstance(value, str) else str(value).strip()
    return text or None


def check_amount(value: Any) -> Tuple[Optional[Decimal], List[RowError]]:
    text = _clean(value)
    if text is None:
        return None, [RowError("amount is required", "amount")]

    if not AMOUNT_PATTERN.match(text):
        return None, [RowError("amount must be a valid number", "amount")]
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None, [RowError("amount must be a valid number", "amount")]

    errors = []
    if amount <= 0:
        errors.append(RowError("Amount must be greater than 0", "amount"))
    if amount > MAX_AMOUNT:
        errors.append(RowError("Amount cannot exceed 1,000,000", "amount"))
    # Trailing zeros do not count as fractional digits: "10.50" has two.
    if amount.normalize().as_tuple().exponent < -2:
        errors.append(RowError("Amount must have at most 2 decimal places", "amount"))

    if errors:
        return None, errors
    return amount.quantize(Decimal("0.01")), []


def check_currency(value: Any) -> Tuple[Optional[str], List[RowError]]:
    text = _clean(value)
    if text is None:
        return None, [RowError("currency is required", "currency")]
    if len(text) != 3:
        return None, [RowError("Currency code must be 3 characters", "currency")]

    code = text.upper()
    if code not in RECOGNIZED_CURRENCIES:
        return None, [RowError("Invalid ISO 4217 currency code", "currency")]
    return code, []


def check_pay_date(value: Any, today: date) -> Tuple[Optional[date], List[RowError]]:
    text = _clean(value)
    if text is None:
        return None, [RowError("pay_date is required", "pay_date")]
    if not PAY_DATE_PATTERN.match(text):
        return None, [RowError("pay_date must be in YYYY-MM-DD format", "pay_date")]

    try:
        pay_date = datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError:
        return None, [RowError("pay_date is not a valid calendar date", "pay_date")]

    earliest = today - timedelta(days=PAST_WINDOW_DAYS)
    latest = today + timedelta(days=FUTURE_WINDOW_DAYS)
    if not earliest <= pay_date <= latest:
        return None, [RowError(
            "pay_date must be within 30 days in the past and 365 days in the future",
            "pay_date",
        )]
    return pay_date, []


def check_employee_id(value: Any) -> Tuple[Optional[str], List[RowError]]:
    text = _clean(value)
    if text is None:
        return None, []
    if not EMPLOYEE_ID_PATTERN.match(text):
        return None, [RowError(
            "employee_id must be 3-64 characters of letters, digits, '_' or '-'",
            "employee_id",
        )]
    return text, []


def check_employee_email(value: Any) -> Tuple[Optional[str], List[RowError]]:
    text = _clean(value)
    if text is None:
        return None, []
    try:
        # Syntax only; internal domains such as corp.local are accepted
        validate_email(text, check_deliverability=False, globally_deliverable=False)
    except EmailNotValidError:
        return None, [RowError("employee_email must be a valid email address", "employee_email")]
    return text, []


def check_description(value: Any) -> Tuple[Optional[str], List[RowError]]:
    text = _clean(value)
    if text is not None and len(text) > MAX_DESCRIPTION_LENGTH:
        return None, [RowError("description cannot exceed 255 characters", "description")]
    return text, []


def check_recipient(employee_id: Any, employee_email: Any) -> List[RowError]:
    if _clean(employee_id) is None and _clean(employee_email) is None:
        return [RowError("At least one of employee_id or employee_email must be provided")]
    return []


class PaymentRowValidator:
    """Validates canonical field candidates into a ``PaymentRow``."""

    def __init__(self, today_provider: Optional[Callable[[], date]] = None):
        self.today_provider = today_provider or config_service.today

    def validate(self, candidate: Mapping[str, Any], today: Optional[date] = None) -> RowValidationResult:
        """
        Validate one row of canonical field values.

        Args:
            candidate: Canonical field name to raw value; missing keys count as empty
            today: Reference date for the pay date window (defaults to the provider)

        Returns:
            Result holding either the validated row or all collected errors
        """
        today = today or self.today_provider()
        errors: List[RowError] = []

        employee_id, field_errors = check_employee_id(candidate.get("employee_id"))
        errors.extend(field_errors)
        employee_email, field_errors = check_employee_email(candidate.get("employee_email"))
        errors.extend(field_errors)
        amount, field_errors = check_amount(candidate.get("amount"))
        errors.extend(field_errors)
        currency, field_errors = check_currency(candidate.get("currency"))
        errors.extend(field_errors)
        pay_date, field_errors = check_pay_date(candidate.get("pay_date"), today)
        errors.extend(field_errors)
        description, field_errors = check_description(candidate.get("description"))
        errors.extend(field_errors)
        errors.extend(check_recipient(candidate.get("employee_id"), candidate.get("employee_email")))

        if errors:
            return RowValidationResult(errors=errors)

        row = PaymentRow(
            employee_id=employee_id,
            employee_email=employee_email,
            amount=amount,
            currency=currency,
            pay_date=pay_date,
            description=description,
            external_reference=_clean(candidate.get("external_reference")),
        )
        return RowValidationResult(row=row)
