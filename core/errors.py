"""
core/errors.py -- Typed error taxonomy shared by every layer.

Each error carries a fixed HTTP status and a machine-readable code. Components
raise these and never catch them; the exception handlers in api/main.py map
them onto the ErrorResponse envelope. Nothing here retries -- every failure in
this taxonomy is a caller-input or caller-authorization problem.

InvalidToken and TokenMismatch subclass PermissionDenied and share its public
message, so a client cannot tell which half of the OTP check failed. The
specific class is still visible to logs and tests.

Layer rule: core/ is the kernel. No imports from api/, auth/, or content/.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for every expected, client-facing failure."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailure(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class Unauthenticated(AppError):
    """Missing, malformed, badly signed or expired credentials.

    reason is diagnostic only ("missing", "invalid", "expired"); every reason
    maps to the same 401 at the boundary.
    """

    status_code = 401
    code = "unauthorized"
    default_message = "Authentication required."

    def __init__(self, message: str | None = None, reason: str = "invalid") -> None:
        super().__init__(message)
        self.reason = reason


class PermissionDenied(AppError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class InvalidToken(PermissionDenied):
    """No live OTP row for the user, or the row was already used."""

    default_message = "Token is invalid."


class TokenMismatch(PermissionDenied):
    """The candidate code does not match the stored hash."""

    # Same public message as InvalidToken on purpose.
    default_message = "Token is invalid."


class ResourceNotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


class AlreadyExists(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists."
