"""
Application error types and response formatting.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base error carrying an error code and HTTP status."""

    code = "APP_ERROR"
    status_code = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    """Bad request shape or content; the caller can fix it."""

    code = "VALIDATION_ERROR"
    status_code = 400


class UnauthorizedError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    """Operation is not allowed in the current state."""

    code = "CONFLICT"
    status_code = 409


class InternalError(AppError):
    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str = "Internal Server Error", details: Optional[Any] = None):
        super().__init__(message, details)


def format_error(error: BaseException) -> Dict[str, Any]:
    """
    Format an exception as an API error body.

    Args:
        error: Raised exception

    Returns:
        Dictionary with code, message, status_code, details and timestamp
    """
    timestamp = datetime.now(timezone.utc).isoformat()

    if isinstance(error, AppError):
        body = {
            "code": error.code,
            "message": error.message,
            "status_code": error.status_code,
            "timestamp": timestamp,
        }
        if error.details is not None:
            body["details"] = error.details
        return body

    return {
        "code": InternalError.code,
        "message": str(error) or "An unknown error occurred",
        "status_code": InternalError.status_code,
        "timestamp": timestamp,
    }
