"""
Normalized payroll payment row.
"""
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict

CANONICAL_FIELDS = (
    "employee_id",
    "employee_email",
    "amount",
    "currency",
    "pay_date",
    "description",
    "external_reference",
)


def format_amount(amount: Decimal) -> str:
    """Canonical text of an amount: no exponent, no trailing zeros."""
    return format(amount.normalize(), "f")


class PaymentRow(BaseModel):
    """A validated payment instruction. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    employee_id: Optional[str] = None
    employee_email: Optional[str] = None
    amount: Decimal
    currency: str
    pay_date: date
    description: Optional[str] = None
    external_reference: Optional[str] = None

    @property
    def employee_key(self) -> str:
        return self.employee_id or self.employee_email or ""

    @property
    def payment_key(self) -> str:
        """Identifier + amount + pay date, used for duplicate detection."""
        return f"{self.employee_key}:{format_amount(self.amount)}:{self.pay_date.isoformat()}"

    def to_snapshot(self) -> Dict[str, Any]:
        """JSON-safe representation stored with a persisted row."""
        return {
            "employee_id": self.employee_id,
            "employee_email": self.employee_email,
            "amount": str(self.amount),
            "currency": self.currency,
            "pay_date": self.pay_date.isoformat(),
            "description": self.description,
            "external_reference": self.external_reference,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "PaymentRow":
        return cls(
            employee_id=snapshot.get("employee_id"),
            employee_email=snapshot.get("employee_email"),
            amount=Decimal(str(snapshot["amount"])),
            currency=snapshot["currency"],
            pay_date=date.fromisoformat(snapshot["pay_date"]),
            description=snapshot.get("description"),
            external_reference=snapshot.get("external_reference"),
        )
