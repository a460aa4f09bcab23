"""
auth/errors.py -- Typed failures for the identity and access core.

Every user-input-driven condition (duplicate email, bad token, wrong password)
is raised as one of these and rendered by the API layer as
{"error": {"code": ..., "message": ...}} with the class's status_code.
Persistence and signing faults surface as InternalFailure only, with a
generic message -- the underlying exception is chained for the server log.

projects/ reuses Unauthorized and NotFound so a single exception handler in
api/main.py covers every service.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class. Subclasses set code and status_code; message is per-instance."""

    code: str = "error"
    status_code: int = 400
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    default_message = "An account with that email is already registered."


class UnknownEmail(AuthError):
    code = "unknown_email"
    status_code = 404
    default_message = "No account is registered with that email."


class UnknownAccount(AuthError):
    code = "unknown_account"
    status_code = 401
    default_message = "Account not found."


class InvalidToken(AuthError):
    code = "invalid_token"
    status_code = 404
    default_message = "Invalid or expired token."


class AccountNotConfirmed(AuthError):
    code = "account_not_confirmed"
    status_code = 401
    default_message = "The account has not been confirmed. A new confirmation email has been sent."


class AlreadyConfirmed(AuthError):
    code = "already_confirmed"
    status_code = 403
    default_message = "The account is already confirmed."


class InvalidPassword(AuthError):
    code = "invalid_password"
    status_code = 401
    default_message = "Incorrect password."


class InvalidSignature(AuthError):
    code = "invalid_signature"
    status_code = 401
    default_message = "Invalid session credential."


class Expired(AuthError):
    code = "expired"
    status_code = 401
    default_message = "Session credential has expired."


class Unauthorized(AuthError):
    code = "unauthorized"
    status_code = 403
    default_message = "You are not allowed to perform this action."


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Resource not found."


class InternalFailure(AuthError):
    code = "internal_error"
    status_code = 500
    default_message = "An unexpected error occurred."
