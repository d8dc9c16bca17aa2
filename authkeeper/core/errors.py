"""
Error Taxonomy
==============

Every failure an operation can report is tagged with an ``ErrorKind``.

Two separate hierarchies keep expected and unexpected failures apart:

- ``AuthFailure`` subclasses are expected outcomes (bad input, conflicts,
  wrong credentials, throttling). Callers catch these and react.
- ``InternalError`` subclasses mean the operation failed for reasons the
  caller cannot fix. Business logic never catches them; they propagate to
  the application, which should log and alert.

Security Notes:
    - Messages never contain passwords, tokens or raw driver text
    - Authentication failures share one message shape
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class ErrorCategory(Enum):
    """Coarse grouping of failure kinds."""
    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    AUTHENTICATION = "authentication"
    THROTTLING = "throttling"
    INTERNAL = "internal"


class ErrorKind(Enum):
    """Every failure kind an operation can report."""
    INVALID_EMAIL = "invalid_email"
    INVALID_PASSWORD = "invalid_password"
    USER_ALREADY_EXISTS = "user_already_exists"
    DUPLICATE_USERNAME = "duplicate_username"
    AMBIGUOUS_USERNAME = "ambiguous_username"
    UNKNOWN_ID = "unknown_id"
    UNKNOWN_USERNAME = "unknown_username"
    TOKEN_NOT_FOUND = "token_not_found"
    CONFIRMATION_NOT_FOUND = "confirmation_not_found"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    ACCOUNT_BLOCKED = "account_blocked"
    NOT_LOGGED_IN = "not_logged_in"
    RESET_DISABLED = "reset_disabled"
    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"
    TOO_MANY_REQUESTS = "too_many_requests"
    INTERNAL = "internal"

    @property
    def category(self) -> ErrorCategory:
        """Category this kind belongs to."""
        return _CATEGORIES[self]


_CATEGORIES: Final[dict[ErrorKind, ErrorCategory]] = {
    ErrorKind.INVALID_EMAIL: ErrorCategory.VALIDATION,
    ErrorKind.INVALID_PASSWORD: ErrorCategory.VALIDATION,
    ErrorKind.USER_ALREADY_EXISTS: ErrorCategory.CONFLICT,
    ErrorKind.DUPLICATE_USERNAME: ErrorCategory.CONFLICT,
    ErrorKind.AMBIGUOUS_USERNAME: ErrorCategory.CONFLICT,
    ErrorKind.UNKNOWN_ID: ErrorCategory.NOT_FOUND,
    ErrorKind.UNKNOWN_USERNAME: ErrorCategory.NOT_FOUND,
    ErrorKind.TOKEN_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.CONFIRMATION_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.EMAIL_NOT_VERIFIED: ErrorCategory.AUTHENTICATION,
    ErrorKind.ACCOUNT_BLOCKED: ErrorCategory.AUTHENTICATION,
    ErrorKind.NOT_LOGGED_IN: ErrorCategory.AUTHENTICATION,
    ErrorKind.RESET_DISABLED: ErrorCategory.AUTHENTICATION,
    ErrorKind.TOKEN_EXPIRED: ErrorCategory.AUTHENTICATION,
    ErrorKind.INVALID_TOKEN: ErrorCategory.AUTHENTICATION,
    ErrorKind.TOO_MANY_REQUESTS: ErrorCategory.THROTTLING,
    ErrorKind.INTERNAL: ErrorCategory.INTERNAL,
}


class AuthFailure(Exception):
    """Base class for expected, typed failures."""
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind.value.replace("_", " "))

    @property
    def category(self) -> ErrorCategory:
        return self.kind.category


class InvalidEmailError(AuthFailure):
    """Email address is malformed, or no account uses it."""
    kind = ErrorKind.INVALID_EMAIL


class InvalidPasswordError(AuthFailure):
    """Password violates the policy, or does not match."""
    kind = ErrorKind.INVALID_PASSWORD


class UserAlreadyExistsError(AuthFailure):
    kind = ErrorKind.USER_ALREADY_EXISTS


class DuplicateUsernameError(AuthFailure):
    kind = ErrorKind.DUPLICATE_USERNAME


class AmbiguousUsernameError(AuthFailure):
    """More than one account uses the username."""
    kind = ErrorKind.AMBIGUOUS_USERNAME


class UnknownIdError(AuthFailure):
    kind = ErrorKind.UNKNOWN_ID


class UnknownUsernameError(AuthFailure):
    kind = ErrorKind.UNKNOWN_USERNAME


class TokenNotFoundError(AuthFailure):
    """No token record with the given selector."""
    kind = ErrorKind.TOKEN_NOT_FOUND


class ConfirmationRequestNotFoundError(AuthFailure):
    """No earlier confirmation request to resend."""
    kind = ErrorKind.CONFIRMATION_NOT_FOUND


class EmailNotVerifiedError(AuthFailure):
    kind = ErrorKind.EMAIL_NOT_VERIFIED


class AccountBlockedError(AuthFailure):
    """Account status forbids signing in."""
    kind = ErrorKind.ACCOUNT_BLOCKED


class NotLoggedInError(AuthFailure):
    kind = ErrorKind.NOT_LOGGED_IN


class ResetDisabledError(AuthFailure):
    """The account owner disabled password resets."""
    kind = ErrorKind.RESET_DISABLED


class TokenExpiredError(AuthFailure):
    kind = ErrorKind.TOKEN_EXPIRED


class InvalidTokenError(AuthFailure):
    kind = ErrorKind.INVALID_TOKEN


class TooManyRequestsError(AuthFailure):
    """Raised when a throttle bucket is cooling down."""
    kind = ErrorKind.TOO_MANY_REQUESTS

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(f"Too many requests. Try again in {retry_after} seconds.")


class InternalError(Exception):
    """Base class for failures callers must not recover from inline."""
    kind: ErrorKind = ErrorKind.INTERNAL


class DatabaseError(InternalError):
    """
    Wraps an unexpected storage failure.

    The driver's exception is chained as ``__cause__`` for logging, but the
    message shown to callers stays generic.
    """

    def __init__(self, operation: str = "database operation") -> None:
        self.operation = operation
        super().__init__(f"Internal error during {operation}")
