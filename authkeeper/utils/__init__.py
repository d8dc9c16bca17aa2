"""
Utils module - Validation, time sources and cookie framing.
"""

from authkeeper.utils.clock import Clock, TokenFactory, random_token, unix_time
from authkeeper.utils.validators import (
    normalize_username,
    validate_email,
    validate_login_password,
    validate_password,
)

__all__ = [
    "Clock",
    "TokenFactory",
    "random_token",
    "unix_time",
    "normalize_username",
    "validate_email",
    "validate_login_password",
    "validate_password",
]
