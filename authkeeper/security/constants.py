"""
Security Constants
==================

Defines security-related defaults used throughout the library.
These values follow security best practices and should not be relaxed
without careful security review.
"""

from typing import Final

# Password Requirements
MIN_PASSWORD_LENGTH: Final[int] = 8
MAX_PASSWORD_LENGTH: Final[int] = 4096

# Throttling
THROTTLE_MAX_ATTEMPTS: Final[int] = 5
THROTTLE_BASE_DELAY_SECONDS: Final[int] = 30
THROTTLE_MAX_COOLDOWN_SECONDS: Final[int] = 3600  # 1 hour
THROTTLE_WINDOW_SECONDS: Final[int] = 86400  # 24 hours

# Token lifetimes
CONFIRMATION_TOKEN_SECONDS: Final[int] = 86400  # 24 hours
RESET_TOKEN_SECONDS: Final[int] = 21600  # 6 hours
REMEMBER_TOKEN_SECONDS: Final[int] = 2592000  # 30 days
SESSION_RESYNC_SECONDS: Final[int] = 300  # 5 minutes

# Token shapes (token_urlsafe byte counts divisible by 3 give fixed lengths)
SELECTOR_BYTES: Final[int] = 12  # 16 characters
TOKEN_BYTES: Final[int] = 18  # 24 characters
COOKIE_DELIMITER: Final[str] = ":"
REMEMBER_COOKIE_NAME: Final[str] = "authkeeper_remember"
