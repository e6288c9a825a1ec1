"""
Configuration service for reading settings from environment.
"""

import logging
import os
from datetime import date, datetime
from typing import Any, Optional

logger = logging.getLogger("app.config")

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigService:
    """Service for managing application configuration."""

    def __init__(self, overrides: Optional[dict[str, Any]] = None):
        self._cache: dict[str, Any] = dict(overrides or {})

    def get_setting(self, key: str, default: Any = None) -> Any:
        """
        Get setting value from environment.

        Priority: Overrides > Environment > Default
        """
        if key in self._cache:
            return self._cache[key]

        value = os.getenv(key, default)
        self._cache[key] = value

        logger.debug(f"Retrieved setting {key}={value}")
        return value

    def get_int(self, key: str, default: int) -> int:
        return int(self.get_setting(key, default))

    def get_float(self, key: str, default: float) -> float:
        return float(self.get_setting(key, default))

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get_setting(key, default)
        if isinstance(value, bool):
            return value
        return str(value).strip().lower() in _TRUE_VALUES

    def set_setting(self, key: str, value: Any) -> None:
        """Override a setting for the lifetime of this instance."""
        self._cache[key] = value
        logger.info(f"Set setting {key}={value}")

    def now(self) -> datetime:
        """
        Get current time (real or fake based on APP_NOW_MODE).

        Returns:
            Current local datetime (real or fake)
        """
        now_mode = self.get_setting("APP_NOW_MODE", "real")

        if now_mode == "fake":
            fake_now_str = self.get_setting("APP_FAKE_NOW")
            if fake_now_str:
                try:
                    fake_date = datetime.strptime(fake_now_str, "%Y-%m-%d")
                    logger.debug(f"Using fake time: {fake_date}")
                    return fake_date
                except ValueError:
                    logger.warning(f"Invalid APP_FAKE_NOW format: {fake_now_str}, using real time")

        return datetime.now()

    def today(self) -> date:
        """Reference calendar date for pay date checks."""
        return self.now().date()

    # Processing settings

    @property
    def batch_size(self) -> int:
        return self.get_int("BATCH_SIZE", 10)

    @property
    def max_retries(self) -> int:
        return self.get_int("MAX_RETRIES", 3)

    @property
    def max_rows_per_upload(self) -> int:
        return self.get_int("MAX_ROWS_PER_UPLOAD", 5000)

    @property
    def max_file_size_bytes(self) -> int:
        return self.get_int("MAX_FILE_SIZE_MB", 10) * 1024 * 1024

    @property
    def error_summary_limit(self) -> int:
        return self.get_int("ERROR_SUMMARY_LIMIT", 20)

    @property
    def dispatch_attempts(self) -> int:
        return max(1, self.get_int("DISPATCH_ATTEMPTS", 1))


# Global instance
config_service = ConfigService()
