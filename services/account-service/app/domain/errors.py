"""Business-rule failures raised by the account domain.

Each error carries the HTTP status and the caller-safe message the API
boundary serialises; anything that is not an ``AccountError`` is treated as
an internal failure and never reaches the caller verbatim.
"""

from __future__ import annotations


class AccountError(Exception):
    """Base class for failures surfaced to API callers."""

    status_code: int = 400
    default_message: str = "request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountError):
    status_code = 400
    default_message = "invalid request"


class DuplicateEmailError(AccountError):
    status_code = 409
    default_message = "Email already exists!"


class AuthenticationError(AccountError):
    status_code = 401
    default_message = "Invalid email or password!"


class AccountNotVerifiedError(AuthenticationError):
    default_message = (
        "Your account is not verified. Please check your email for the verification link."
    )


class UnauthenticatedError(AccountError):
    status_code = 401
    default_message = "No authentication token provided. Please login first."


class ForbiddenError(AccountError):
    status_code = 403
    default_message = "Unauthorized access"


class NotFoundError(AccountError):
    status_code = 404
    default_message = "account not found"


class InvalidTokenError(AccountError):
    status_code = 401
    default_message = "invalid or expired token"


class HashingError(AccountError):
    """Internal credential hashing failure; its detail is only ever logged."""

    status_code = 500
    default_message = "password hashing failed"
