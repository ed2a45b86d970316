"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the exception handler
in main.py. Every rejection is synchronous and carries enough structure for
a user-facing message; none of them is retried automatically.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    code = "domain_error"

    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}


class NotFoundError(DomainError):
    """Resource not found (404)."""
    code = "not_found"

    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Malformed input (400)."""
    code = "validation_failed"

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class PermissionDeniedError(DomainError):
    """Actor/role not permitted, or not the owner / assigned courier (403)."""
    code = "forbidden"

    def __init__(self, message: str = "Permission denied", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, details=details)


class UnauthorizedError(DomainError):
    """Missing or invalid identity (401)."""
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized", details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, details=details)


class InvalidTransitionError(DomainError):
    """Current status does not match any edge the request could use (409)."""
    code = "invalid_transition"

    def __init__(self, current_status: str, requested_status: str, message: str | None = None):
        message = message or (
            f"Cannot move order from '{current_status}' to '{requested_status}'"
        )
        super().__init__(
            message,
            status_code=status.HTTP_409_CONFLICT,
            details={"currentStatus": current_status, "requestedStatus": requested_status},
        )
        self.current_status = current_status
        self.requested_status = requested_status


class ConflictError(DomainError):
    """Resource conflict: unpaid order, courier already set, stale write (409)."""
    code = "conflict"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)
