"""
auth/errors.py -- Exception hierarchy for the account service.

Business-rule violations are raised where they are detected (store or service)
and propagate unchanged to the HTTP boundary. api/main.py registers one
exception handler for AccountServiceError that turns status_code/code/message
into the standard error envelope, so route handlers never translate these
themselves.

Layer rule: no imports from api/. Pure Python, no third-party imports.
"""

from __future__ import annotations


class AccountServiceError(Exception):
    """Base class for errors the HTTP boundary knows how to render."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConflictError(AccountServiceError):
    """Duplicate email on create or update."""

    status_code = 409
    code = "conflict"
    default_message = "User with this email already exists"


class NotFoundError(AccountServiceError):
    """Operation on a user id that does not exist."""

    status_code = 404
    code = "not_found"
    default_message = "User not found"


class UnauthorizedError(AccountServiceError):
    """Failed login or missing/invalid bearer token.

    The message is deliberately generic. It must never reveal whether the
    email exists or the password was wrong.
    """

    status_code = 401
    code = "unauthorized"
    default_message = "Invalid credentials"


class ForbiddenError(AccountServiceError):
    """Authenticated, but acting on another user's account without ADMIN."""

    status_code = 403
    code = "forbidden"
    default_message = "You do not have permission to perform this action."


class PasswordTooLongError(AccountServiceError):
    """Plaintext password longer than bcrypt's 72-byte input limit."""

    status_code = 422
    code = "validation_error"
    default_message = "Password must be at most 72 bytes when UTF-8 encoded."


class InfrastructureError(AccountServiceError):
    """The store (or another backing system) is unreachable.

    Not a business error. The client only ever sees the generic message; the
    underlying exception is chained (raise ... from exc) and logged server-side.
    """

    status_code = 503
    code = "service_unavailable"
    default_message = "Service temporarily unavailable."


class ConfigError(Exception):
    """Invalid or unusable configuration detected at startup (e.g. unreadable key file)."""
