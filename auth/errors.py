"""
auth/errors.py -- Error kinds raised by the auth package.

Every error carries a stable machine-readable ``code``, the HTTP status the
routing layer should answer with, and a message that is safe to show to a
client. api/main.py registers one exception handler for AuthError and turns
these into the response envelope; nothing in auth/ imports fastapi for errors.

Enumeration-sensitive kinds (InvalidCredentialsError, UnauthenticatedError)
use fixed messages so callers cannot accidentally leak which branch failed.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every expected auth failure."""

    code: str = "auth_error"
    status_code: int = 400
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    code = "validation_error"
    status_code = 400
    default_message = "Invalid input data."


class DuplicateEmailError(AuthError):
    code = "duplicate_email"
    status_code = 400
    default_message = "An account with that email already exists."


class InvalidCredentialsError(AuthError):
    """Wrong password, unknown email and inactive account all look the same."""

    code = "invalid_credentials"
    status_code = 401
    default_message = "Incorrect email or password."

    def __init__(self) -> None:
        super().__init__()


class TokenInvalidError(AuthError):
    """Session token has a bad signature or a malformed structure."""

    code = "token_invalid"
    status_code = 401
    default_message = "Invalid token."


class TokenExpiredError(AuthError):
    code = "token_expired"
    status_code = 401
    default_message = "Token has expired."


class UnauthenticatedError(AuthError):
    """Umbrella for every session failure surfaced to clients.

    The internal reason (expired, tampered, account gone, password changed)
    is kept in ``reason`` for logging and never placed in the message.
    """

    code = "unauthenticated"
    status_code = 401
    default_message = "You are not logged in. Please log in to get access."

    def __init__(self, reason: str = "") -> None:
        self.reason = reason
        super().__init__()


class ForbiddenError(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "You do not have permission to perform this action."


class ResetTokenInvalidError(AuthError):
    code = "reset_token_invalid"
    status_code = 400
    default_message = "Password reset token is invalid."


class ResetTokenExpiredError(AuthError):
    code = "reset_token_expired"
    status_code = 400
    default_message = "Password reset token has expired."


class EmailDeliveryError(AuthError):
    code = "email_delivery_failed"
    status_code = 500
    default_message = "There was an error sending the email. Try again later."
