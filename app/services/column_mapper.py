"""
Header detection for uploaded payroll files.
"""
import logging
from typing import Dict, List, Optional

from app.models.payment_row import CANONICAL_FIELDS

logger = logging.getLogger("app.column_mapper")

# Accepted alternative header names per canonical field, in priority order
FIELD_ALIASES: Dict[str, List[str]] = {
    "employee_id": ["emp_id", "empid", "id", "employee id", "emp", "employee_code"],
    "employee_email": ["email", "emp_email", "empemail", "employee email", "recipient_email"],
    "amount": ["salary", "payment", "pay_amount", "payroll_amount", "value"],
    "currency": ["curr", "code", "currency_code", "iso_code"],
    "pay_date": ["date", "paydate", "payment_date", "salary_date", "pay_period"],
    "description": ["notes", "reason", "comment"],
    "external_reference": ["reference", "ref", "external_ref", "ref_no", "reference_id"],
}


def detect_mapping(headers: List[str]) -> Dict[str, Optional[str]]:
    """
    Map input headers to canonical payroll fields.

    An exact (case-insensitive) header match wins over an alias; among
    aliases the first listed alias present in the headers wins. When the
    same header appears twice, the first occurrence is used.

    Args:
        headers: Header names as they appear in the input

    Returns:
        Canonical field name to input header, or None when unmapped
    """
    normalized = [str(header).strip().lower() for header in headers]

    def find(name: str) -> Optional[str]:
        try:
            return headers[normalized.index(name)]
        except ValueError:
            return None

    mapping: Dict[str, Optional[str]] = {}
    for field_name in CANONICAL_FIELDS:
        column = find(field_name)
        if column is None:
            for alias in FIELD_ALIASES.get(field_name, []):
                column = find(alias)
                if column is not None:
                    break
        mapping[field_name] = column

    unmapped = [name for name, column in mapping.items() if column is None]
    if unmapped:
        logger.debug(f"Unmapped payroll fields: {unmapped}")
    return mapping
