"""
Validation Utilities
====================

Input validation that runs before any storage access.
"""

from __future__ import annotations

import re
from typing import Final, Optional, Pattern

from authkeeper.core.config import PasswordPolicy
from authkeeper.core.errors import InvalidEmailError, InvalidPasswordError


# Pragmatic address check: one "@", no whitespace, a dotted domain
_EMAIL_PATTERN: Final[Pattern[str]] = re.compile(
    r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@"
    r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?)+$"
)
MAX_EMAIL_LENGTH: Final[int] = 249


def validate_email(email: Optional[str]) -> str:
    """
    Validate and normalize an email address.

    Args:
        email: Raw user input

    Returns:
        The trimmed, lower-cased address

    Raises:
        InvalidEmailError: If the address is empty or malformed
    """
    if not isinstance(email, str):
        raise InvalidEmailError()

    email = email.strip()
    if not email or len(email) > MAX_EMAIL_LENGTH or "\x00" in email:
        raise InvalidEmailError()

    if ".." in email or email.startswith(".") or ".@" in email:
        raise InvalidEmailError()

    if not _EMAIL_PATTERN.match(email):
        raise InvalidEmailError()

    return email.lower()


def validate_password(password: Optional[str], policy: PasswordPolicy) -> str:
    """
    Validate a new password against the length policy.

    Raises:
        InvalidPasswordError: If the password is empty, too short or too long
    """
    if not isinstance(password, str):
        raise InvalidPasswordError()

    password = password.strip()

    if not password:
        raise InvalidPasswordError("Password cannot be empty")

    if len(password) < policy.min_length:
        raise InvalidPasswordError(f"Password must be at least {policy.min_length} characters")

    if len(password) > policy.max_length:
        raise InvalidPasswordError(f"Password must be at most {policy.max_length} characters")

    return password


def validate_login_password(password: Optional[str]) -> str:
    """
    Check a password presented at login.

    Only emptiness is checked: accounts created under an older, shorter
    policy must still be able to sign in.
    """
    if not isinstance(password, str) or not password.strip():
        raise InvalidPasswordError()
    return password.strip()


def normalize_username(username: Optional[str]) -> Optional[str]:
    """Trim a username, mapping blank input to None."""
    if username is None:
        return None
    username = username.strip()
    return username or None
