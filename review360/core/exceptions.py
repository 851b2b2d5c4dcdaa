from typing import Any


class AppException(Exception):
    """Base class for engine errors; carries the HTTP mapping used by the API layer."""

    status_code: int = 400
    error_code: str = "BUSINESS_ERROR"

    def __init__(self, message: str, details: Any | None = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(AppException):
    """Missing/empty required field or out-of-range value. Nothing was mutated."""

    status_code = 422
    error_code = "VALIDATION_ERROR"


class ConflictError(AppException):
    """Duplicate login code or username."""

    status_code = 409
    error_code = "CONFLICT"


class AuthError(AppException):
    status_code = 401
    error_code = "AUTH_FAILED"

    def __init__(self, message: str = "Invalid credentials"):
        # Same message for every cause: never reveal which field was wrong
        super().__init__(message)


class PermissionDeniedError(AppException):
    status_code = 403
    error_code = "PERMISSION_DENIED"


class NotFoundError(AppException):
    status_code = 404
    error_code = "NOT_FOUND"


class StateError(AppException):
    """Illegal status transition (e.g. re-submitting a submitted review)."""

    status_code = 409
    error_code = "STATE_ERROR"


class ExternalServiceError(AppException):
    """AI collaborator failure. Converted to a fallback before it reaches engine callers."""

    status_code = 503
    error_code = "AI_SERVICE_UNAVAILABLE"
