"""
Payment provider adapters.

The job processor depends only on ``PaymentsAdapter.create_payment``. An
adapter makes one payment attempt for one validated row and always returns
a ``PaymentResult``: ordinary payment failures (declines, provider errors)
are reported with ``success=False`` rather than raised. Exceptions are
reserved for adapter misconfiguration; the processor still treats a raised
exception as a failed attempt.
"""
import asyncio
import hashlib
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from app.models.payment_row import PaymentRow, format_amount
from app.services.config_service import ConfigService

logger = logging.getLogger("app.payments")


@dataclass
class PaymentResult:
    success: bool
    provider_id: Optional[str] = None
    error: Optional[str] = None
    raw_response: Dict[str, Any] = field(default_factory=dict)


class PaymentsAdapter(ABC):
    """Interface every payment provider integration implements."""

    name = "base"

    @abstractmethod
    async def create_payment(self, row: PaymentRow) -> PaymentResult:
        """
        Submit one payment.

        Args:
            row: Validated payment row

        Returns:
            PaymentResult with the provider transaction id on success or an
            error message on failure
        """


class SeededRandom:
    """Reproducible values in [0, 1) derived from a seed and a string key."""

    def __init__(self, seed: int):
        self.seed = seed

    def value(self, key: str) -> float:
        digest = hashlib.sha256(f"{self.seed}:{key}".encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") / 2 ** 64


class FakePaymentsAdapter(PaymentsAdapter):
    """
    Deterministic simulated provider for development and tests.

    Outcomes depend only on the seed, the success rate and the row; latency
    affects timing only.
    """

    name = "fake"

    ERRORS = [
        "Insufficient funds",
        "Invalid account",
        "Daily limit exceeded",
        "Temporary service unavailable",
        "Invalid currency for recipient",
    ]

    def __init__(self, seed: int = 42, success_rate: float = 0.8, latency_ms: int = 100):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError(f"success_rate must be between 0 and 1, got {success_rate}")
        if latency_ms < 0:
            raise ValueError(f"latency_ms must not be negative, got {latency_ms}")
        self.seed = seed
        self.success_rate = success_rate
        self.latency_ms = latency_ms
        self.random = SeededRandom(seed)

    @staticmethod
    def _row_key(row: PaymentRow) -> str:
        return f"{row.employee_key}:{format_amount(row.amount)}:{row.pay_date.isoformat()}"

    async def create_payment(self, row: PaymentRow) -> PaymentResult:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)

        key = self._row_key(row)
        timestamp = datetime.now(timezone.utc).isoformat()

        if self.random.value(key) < self.success_rate:
            provider_id = f"fake_{uuid.uuid4().hex[:12]}"
            return PaymentResult(
                success=True,
                provider_id=provider_id,
                raw_response={
                    "provider": "fake",
                    "id": provider_id,
                    "timestamp": timestamp,
                    "status": "completed",
                    "amount": str(row.amount),
                    "currency": row.currency,
                },
            )

        error = self.ERRORS[int(self.random.value(f"{key}_error") * len(self.ERRORS))]
        return PaymentResult(
            success=False,
            error=error,
            raw_response={
                "provider": "fake",
                "timestamp": timestamp,
                "status": "failed",
                "reason": error,
            },
        )


def create_payments_adapter(config: ConfigService) -> PaymentsAdapter:
    """
    Build the adapter selected by PAYMENTS_PROVIDER.

    Raises:
        ValueError: Unknown provider name or invalid provider settings
    """
    provider = str(config.get_setting("PAYMENTS_PROVIDER", "fake")).lower()

    if provider == "fake":
        adapter = FakePaymentsAdapter(
            seed=config.get_int("FAKE_PAYMENTS_SEED", 42),
            success_rate=config.get_float("FAKE_PAYMENTS_SUCCESS_RATE", 0.8),
            latency_ms=config.get_int("FAKE_PAYMENTS_LATENCY_MS", 100),
        )
        logger.info(
            f"Using fake payments adapter seed={adapter.seed} "
            f"success_rate={adapter.success_rate} latency_ms={adapter.latency_ms}"
        )
        return adapter

    raise ValueError(f"Unknown payments provider: {provider}")
