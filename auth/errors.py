"""
auth/errors.py -- Typed failures returned across the Auth Service boundary.

Every AuthService operation either returns its value or raises exactly one
AuthError subclass. Each carries a stable machine code (API clients switch on
it), a user-facing message that is safe to display, and an HTTP status hint
the adapter uses when mapping to a response.

Messages are deliberately coarse where detail would leak account existence:
  InvalidCredentials covers "unknown email", "wrong password" and "locked".
  InvalidOrExpiredToken covers "never issued", "expired" and "already used".

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every failure the core reports to its callers."""

    code = "auth_error"
    status = 400
    default_message = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}

    def __eq__(self, other: object) -> bool:
        # Two failures are the same outcome when type and outward payload match.
        if not isinstance(other, AuthError):
            return NotImplemented
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((type(self), self.code, self.message))


class ValidationError(AuthError):
    """Malformed input. Always user-correctable; field names the culprit."""

    code = "validation_error"
    status = 400
    default_message = "Invalid input."

    def __init__(self, message: str | None = None, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class MissingFields(ValidationError):
    code = "missing_fields"
    default_message = "Both fields are required."


class WeakPassword(ValidationError):
    code = "weak_password"
    default_message = "Password does not meet the strength requirements."

    def __init__(self, message: str | None = None, field: str | None = "password") -> None:
        super().__init__(message, field)


class PasswordMismatch(ValidationError):
    code = "password_mismatch"
    default_message = "Passwords do not match."

    def __init__(self, message: str | None = None, field: str | None = "confirm_password") -> None:
        super().__init__(message, field)


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status = 409
    default_message = "Email address is already registered."


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status = 401
    default_message = "Invalid email or password."


class AccountInactive(AuthError):
    code = "account_inactive"
    status = 403
    default_message = "This account has been deactivated."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status = 400
    default_message = "Your password reset link is invalid or has expired. Please request a new one."


class CurrentPasswordIncorrect(AuthError):
    code = "current_password_incorrect"
    status = 400
    default_message = "Current password is incorrect."


class NotAuthenticated(AuthError):
    code = "not_authenticated"
    status = 401
    default_message = "Authentication required."


class NotAuthorized(AuthError):
    code = "not_authorized"
    status = 403
    default_message = "You do not have permission to perform this action."


class UserNotFound(AuthError):
    code = "user_not_found"
    status = 404
    default_message = "User not found."


class InternalError(AuthError):
    """Unexpected failure inside the core. Details go to the log, never outward."""

    code = "internal_error"
    status = 500
    default_message = "An unexpected error occurred. Please try again."
