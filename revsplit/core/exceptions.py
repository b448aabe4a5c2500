"""
Application error classes.

Every error raised by the engine carries an HTTP status, a stable error code
and a details dict with correlation identifiers (order id, order item id,
payout id) so failures can be traced across collaborators.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    """Base exception for engine errors."""

    status_code: int = 500
    default_code: str = "APP_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": {k: str(v) if v is not None else None for k, v in self.details.items()},
        }


class ValidationError(AppError):
    """Input failed validation (400)."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(AppError):
    """Requested resource does not exist (404)."""
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AppError):
    """Request conflicts with the current state of the resource (409)."""
    status_code = 409
    default_code = "CONFLICT"


class InternalServerError(AppError):
    """Unexpected persistence or server failure (500)."""
    status_code = 500
    default_code = "INTERNAL_SERVER_ERROR"


class ExternalServiceError(AppError):
    """An external collaborator failed (502)."""
    status_code = 502
    default_code = "EXTERNAL_SERVICE_ERROR"
