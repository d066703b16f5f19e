"""Service error taxonomy shared by the feed and social-graph services."""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for errors that map onto a client-visible response."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ServiceError):
    """Caller-fixable input problem; never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(ServiceError):
    code = "UNAUTHORIZED"
    status_code = 401


class AuthorizationError(ServiceError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ServiceError):
    code = "CONFLICT"
    status_code = 409


class InternalError(ServiceError):
    """Store or dependency failure. Safe for the caller to retry with backoff."""

    code = "INTERNAL"
    status_code = 500


class FilterCompileError(ValidationError):
    """A feed filter document failed structural or semantic validation."""

    def __init__(self, message: str, *, path: str = "$") -> None:
        super().__init__(message, details={"path": path})
        self.path = path


class InvalidCursorError(ValidationError):
    code = "INVALID_CURSOR"


class CursorMismatchError(InvalidCursorError):
    """The cursor was issued for a different filter, ordering or list."""

    code = "CURSOR_MISMATCH"


__all__ = [
    "ServiceError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
    "FilterCompileError",
    "InvalidCursorError",
    "CursorMismatchError",
]
