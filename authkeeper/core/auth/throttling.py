"""
Throttle Ledger
===============

Persistent attempt counters with exponential cooldown.

Each bucket is keyed by an action and a dimension (client IP, email
address, user id, selector). An action may only proceed when every bucket
it consults allows it; the most restrictive bucket wins.

Backoff:
    attempts below ``max_attempts`` are free; from then on each attempt
    starts a cooldown of ``base_delay * 2 ** (attempts - max_attempts)``
    seconds, capped at ``max_cooldown``. The count restarts once the
    tracking window has fully elapsed, or when ``reset`` is called after a
    verified success.

Security Notes:
    - Bucket ids are hashes, so emails and IPs are not stored in clear
    - Storage failures propagate (fail-closed), except for resets after a
      success, which are logged and skipped
"""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from authkeeper.core.config import AuthConfig, ThrottleConfig
from authkeeper.core.errors import InternalError, TooManyRequestsError
from authkeeper.db.database import Database
from authkeeper.db.errors import DbError
from authkeeper.utils.clock import Clock, unix_time


@dataclass(frozen=True, slots=True)
class ThrottleKey:
    """Identifies one bucket, e.g. ``ThrottleKey("login", "a@x.com")``."""
    action: str
    dimension: str

    @property
    def bucket(self) -> str:
        """Fixed-length (43 character) bucket id."""
        digest = hashlib.sha256(f"{self.action}\x00{self.dimension}".encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")

    def __repr__(self) -> str:
        # The dimension may be an email address or IP
        return f"ThrottleKey(action={self.action!r}, bucket={self.bucket[:8]}...)"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of consulting a bucket."""
    allowed: bool
    retry_after: int = 0


ALLOWED = Outcome(allowed=True)


def backoff_seconds(attempts: int, config: ThrottleConfig) -> int:
    """
    Cooldown that starts after the given number of attempts.

    Monotonically non-decreasing in ``attempts``.
    """
    if attempts < config.max_attempts:
        return 0
    exponent = attempts - config.max_attempts
    # Cap the exponent so huge counters don't build huge integers
    if exponent >= 32:
        return config.max_cooldown_seconds
    return min(config.max_cooldown_seconds, config.base_delay_seconds * 2 ** exponent)


class ThrottleLedger:
    """
    Attempt counters backed by the ``users_throttling`` table.

    Usage:
        ledger = ThrottleLedger(db, config)
        keys = [ThrottleKey("login", email), ThrottleKey("login", ip)]

        ledger.require(keys)          # raises TooManyRequestsError
        if not password_ok:
            ledger.attempt_all(keys)  # count the failure
        else:
            ledger.reset_quietly(keys)
    """

    __slots__ = ("_db", "_config", "_table", "_clock", "_log")

    def __init__(self, db: Database, config: AuthConfig, clock: Clock = unix_time) -> None:
        self._db = db
        self._config = config.throttle
        self._table = config.table("throttling")
        self._clock = clock
        self._log = logging.getLogger("authkeeper.throttle")

    def _load(self, key: ThrottleKey, lock: bool = False) -> Optional[dict]:
        return self._db.select_row(
            f"SELECT attempts, first_attempt_at, cooldown_until FROM {self._table} "
            f"WHERE bucket = ?{self._db.for_update if lock else ''}",
            (key.bucket,),
        )

    def _blocked(self, row: Optional[dict], now: int) -> Outcome:
        if row is not None and now < row["cooldown_until"]:
            return Outcome(allowed=False, retry_after=row["cooldown_until"] - now)
        return ALLOWED

    def check(self, key: ThrottleKey) -> Outcome:
        """Report whether the bucket currently allows an attempt, without counting one."""
        return self._blocked(self._load(key), self._clock())

    def attempt(self, key: ThrottleKey) -> Outcome:
        """
        Count one attempt against the bucket.

        The read and the write happen in one transaction with the row
        locked, so concurrent attempts never lose an increment.

        Returns:
            Not-allowed (without counting) while the bucket cools down,
            allowed otherwise
        """
        bucket = key.bucket
        with self._db.transaction():
            now = self._clock()
            self._db.execute(
                f"INSERT INTO {self._table} (bucket, attempts, first_attempt_at, cooldown_until) "
                f"VALUES (?, 0, ?, 0) ON CONFLICT (bucket) DO NOTHING",
                (bucket, now),
            )
            row = self._load(key, lock=True)

            blocked = self._blocked(row, now)
            if not blocked.allowed:
                return blocked

            attempts = row["attempts"]
            first_attempt_at = row["first_attempt_at"]
            if attempts == 0 or now - first_attempt_at >= self._config.window_seconds:
                attempts = 0
                first_attempt_at = now

            attempts += 1
            cooldown_until = now + backoff_seconds(attempts, self._config)

            self._db.update(
                self._table,
                {
                    "attempts": attempts,
                    "first_attempt_at": first_attempt_at,
                    "cooldown_until": cooldown_until,
                },
                {"bucket": bucket},
            )

        if cooldown_until > now:
            self._log.info(
                "Throttle engaged for action %s after %d attempts (%d s)",
                key.action, attempts, cooldown_until - now,
            )
        return ALLOWED

    def reset(self, key: ThrottleKey) -> None:
        """Zero the counter and clear any cooldown."""
        self._db.update(
            self._table,
            {"attempts": 0, "cooldown_until": 0},
            {"bucket": key.bucket},
        )

    @staticmethod
    def _most_restrictive(outcomes: Iterable[Outcome]) -> Outcome:
        worst = ALLOWED
        for outcome in outcomes:
            if not outcome.allowed and outcome.retry_after >= worst.retry_after:
                worst = outcome
        return worst

    def check_all(self, keys: Iterable[ThrottleKey]) -> Outcome:
        """Check several buckets; the most restrictive one wins."""
        return self._most_restrictive(self.check(key) for key in keys)

    def attempt_all(self, keys: Iterable[ThrottleKey]) -> Outcome:
        """Count an attempt against every bucket; the most restrictive one wins."""
        return self._most_restrictive([self.attempt(key) for key in keys])

    def require(self, keys: Iterable[ThrottleKey]) -> None:
        """
        Raise unless every bucket allows an attempt.

        Raises:
            TooManyRequestsError: With the longest remaining cooldown
        """
        outcome = self.check_all(keys)
        if not outcome.allowed:
            raise TooManyRequestsError(outcome.retry_after)

    def consume(self, keys: Iterable[ThrottleKey]) -> None:
        """
        Count an attempt against every bucket, raising if any was cooling down.

        Raises:
            TooManyRequestsError: With the longest remaining cooldown
        """
        keys = list(keys)
        self.require(keys)
        outcome = self.attempt_all(keys)
        if not outcome.allowed:
            raise TooManyRequestsError(outcome.retry_after)

    def reset_quietly(self, keys: Iterable[ThrottleKey]) -> None:
        """
        Reset buckets after a verified success.

        A failed reset must not undo the success already granted, so storage
        errors are logged and swallowed here, and only here.
        """
        for key in keys:
            try:
                self.reset(key)
            except (DbError, InternalError):
                self._log.warning("Could not reset throttle for action %s", key.action, exc_info=True)
