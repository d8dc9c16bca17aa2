"""
Time and Randomness Sources
===========================

Components take a clock and a token factory as constructor arguments so
that tests can control expiry and backoff precisely.
"""

from __future__ import annotations

import secrets
import time
from typing import Callable

Clock = Callable[[], int]
TokenFactory = Callable[[int], str]


def unix_time() -> int:
    """Current time as whole unix seconds."""
    return int(time.time())


def random_token(nbytes: int) -> str:
    """
    URL-safe random string.

    With ``nbytes`` divisible by 3 the result is exactly ``4 * nbytes / 3``
    characters long, with no padding.
    """
    return secrets.token_urlsafe(nbytes)
