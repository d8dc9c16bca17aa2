"""
Session Control
===============

Session assertions and persistent "remember me" tokens.

A session assertion is an in-memory claim about the logged-in user, held
by the facade for the current request context. Remember tokens outlive the
session: the client keeps a ``selector:token`` cookie, the server keeps the
selector and a SHA-256 hash of the token.

Security Features:
- Cryptographically random selectors and tokens
- Only token hashes are stored (raw tokens never hit disk)
- Constant-time hash comparison
- Token rotation on every use, under the same selector
- Lazy deletion of expired tokens at validation time
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass, replace
from typing import Optional

from authkeeper.core.auth.credential_store import User
from authkeeper.core.auth.roles import Role, Status
from authkeeper.core.config import AuthConfig
from authkeeper.core.errors import InvalidTokenError, TokenExpiredError
from authkeeper.db.database import Database, Row
from authkeeper.security.constants import COOKIE_DELIMITER, SELECTOR_BYTES, TOKEN_BYTES
from authkeeper.utils.clock import Clock, TokenFactory, random_token, unix_time


@dataclass(frozen=True, slots=True)
class SessionAssertion:
    """
    Claim about the authenticated user of the current session.

    Roles and status are a snapshot taken at issue time and refreshed at
    every resync with the users table.
    """
    user_id: int
    email: str
    username: Optional[str]
    status: Status
    roles: Role
    verified: bool
    force_logout: int
    issued_at: int
    last_resync: int
    remembered: bool = False
    remember_selector: Optional[str] = None

    def resynced(self, user: User, now: int) -> SessionAssertion:
        """Copy carrying the current state of ``user``."""
        return replace(
            self,
            email=user.email,
            username=user.username,
            status=user.status,
            roles=user.roles,
            verified=user.verified,
            last_resync=now,
        )


@dataclass(frozen=True, slots=True)
class RememberCookie:
    """
    Remember-me cookie to hand to the client.

    Note: value contains the raw token and is never exposed in repr.
    """
    name: str
    value: str
    expires_at: int

    def __repr__(self) -> str:
        return f"RememberCookie(name={self.name!r}, expires_at={self.expires_at})"

    @property
    def selector(self) -> Optional[str]:
        parsed = SessionTokenIssuer.parse_cookie_value(self.value)
        return parsed[0] if parsed else None

    @classmethod
    def deletion(cls, name: str) -> RememberCookie:
        """Cookie that makes the client drop its remember-me cookie."""
        return cls(name=name, value="", expires_at=0)


class SessionTokenIssuer:
    """
    Issues session assertions and manages remember tokens.

    Usage:
        issuer = SessionTokenIssuer(db, config)

        session = issuer.issue_session(user)
        cookie = issuer.issue_remember_token(user.id)

        # Later, from the cookie
        selector, token = issuer.parse_cookie_value(cookie.value)
        user_id, cookie = issuer.rotate_remember_token(selector, token)
    """

    __slots__ = ("_db", "_config", "_table", "_clock", "_token_factory", "_log")

    def __init__(
        self,
        db: Database,
        config: AuthConfig,
        clock: Clock = unix_time,
        token_factory: TokenFactory = random_token,
    ) -> None:
        self._db = db
        self._config = config
        self._table = config.table("remembered")
        self._clock = clock
        self._token_factory = token_factory
        self._log = logging.getLogger("authkeeper.session")

    @staticmethod
    def hash_token(token: str) -> str:
        """SHA-256 hex digest used to store tokens."""
        return hashlib.sha256(token.encode("utf-8")).hexdigest()

    @staticmethod
    def tokens_match(token: str, stored_hash: str) -> bool:
        """Constant-time check of a raw token against its stored hash."""
        return hmac.compare_digest(
            SessionTokenIssuer.hash_token(token).encode("ascii"),
            stored_hash.encode("ascii"),
        )

    @staticmethod
    def encode_cookie_value(selector: str, token: str) -> str:
        return f"{selector}{COOKIE_DELIMITER}{token}"

    @staticmethod
    def parse_cookie_value(value: Optional[str]) -> Optional[tuple[str, str]]:
        """
        Split a cookie value into ``(selector, token)``.

        Returns:
            None for anything that is not exactly two non-empty parts
        """
        if not value:
            return None
        parts = value.split(COOKIE_DELIMITER)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        return parts[0], parts[1]

    def issue_session(
        self,
        user: User,
        remembered: bool = False,
        remember_selector: Optional[str] = None,
    ) -> SessionAssertion:
        """Create a session assertion from the user's current row."""
        now = self._clock()
        return SessionAssertion(
            user_id=user.id,
            email=user.email,
            username=user.username,
            status=user.status,
            roles=user.roles,
            verified=user.verified,
            force_logout=user.force_logout,
            issued_at=now,
            last_resync=now,
            remembered=remembered,
            remember_selector=remember_selector,
        )

    def _cookie(self, selector: str, token: str, expires_at: int) -> RememberCookie:
        return RememberCookie(
            name=self._config.tokens.remember_cookie_name,
            value=self.encode_cookie_value(selector, token),
            expires_at=expires_at,
        )

    def issue_remember_token(self, user_id: int, duration: Optional[int] = None) -> RememberCookie:
        """
        Persist a new remember token for one device.

        Args:
            user_id: Owner of the token
            duration: Lifetime in seconds (default: configured remember lifetime)

        Returns:
            Cookie carrying the raw token; this is the only time it is available
        """
        duration = self._config.tokens.remember_seconds if duration is None else duration
        selector = self._token_factory(SELECTOR_BYTES)
        token = self._token_factory(TOKEN_BYTES)
        expires_at = self._clock() + duration

        self._db.insert(self._table, {
            "user_id": int(user_id),
            "selector": selector,
            "token": self.hash_token(token),
            "expires": expires_at,
        })

        self._log.info("Issued remember token for user %d", user_id)
        return self._cookie(selector, token, expires_at)

    def validate_remember_token(self, selector: str, token: str) -> int:
        """
        Check a presented remember token.

        Returns:
            The owning user id

        Raises:
            InvalidTokenError: If the selector is unknown or the token doesn't match
            TokenExpiredError: If the token matches but expired (the record is deleted)
        """
        row = self._matching_row(selector, token)
        if row["expires"] <= self._clock():
            self._db.delete(self._table, {"id": row["id"]})
            raise TokenExpiredError()

        return int(row["user_id"])

    def _matching_row(self, selector: str, token: str, lock: bool = False) -> Row:
        row = self._db.select_row(
            f"SELECT id, user_id, token, expires FROM {self._table} WHERE selector = ?"
            f"{self._db.for_update if lock else ''}",
            (selector,),
        )
        if row is None:
            raise InvalidTokenError()

        if not self.tokens_match(token, row["token"]):
            self._log.warning("Remember token mismatch for user %d", row["user_id"])
            raise InvalidTokenError()
        return row

    def renew_remember_token(
        self,
        selector: str,
        duration: Optional[int] = None,
        current_token: Optional[str] = None,
    ) -> RememberCookie:
        """
        Rotate the raw token under the same selector and extend its expiry.

        A leaked cookie stops working once the legitimate client uses it.

        Args:
            selector: Token to rotate
            duration: New lifetime in seconds (default: configured remember lifetime)
            current_token: Only rotate if this is still the stored token

        Raises:
            InvalidTokenError: If the selector no longer exists, or
                current_token was already rotated away
        """
        duration = self._config.tokens.remember_seconds if duration is None else duration
        token = self._token_factory(TOKEN_BYTES)
        expires_at = self._clock() + duration

        where = {"selector": selector}
        if current_token is not None:
            where["token"] = self.hash_token(current_token)

        updated = self._db.update(
            self._table,
            {"token": self.hash_token(token), "expires": expires_at},
            where,
        )
        if updated == 0:
            raise InvalidTokenError()
        return self._cookie(selector, token, expires_at)

    def rotate_remember_token(
        self,
        selector: str,
        token: str,
        duration: Optional[int] = None,
    ) -> tuple[int, RememberCookie]:
        """
        Validate a presented token and rotate it in one transaction.

        The row is locked while it is checked, and the rotation only applies
        to the token that was checked, so two requests replaying the same
        cookie cannot both succeed.

        Returns:
            The owning user id and the rotated cookie

        Raises:
            InvalidTokenError: Unknown selector, mismatch or lost a race
            TokenExpiredError: Expired (the record is deleted)
        """
        with self._db.transaction():
            row = self._matching_row(selector, token, lock=True)
            if row["expires"] > self._clock():
                cookie = self.renew_remember_token(selector, duration, current_token=token)
                return int(row["user_id"]), cookie

        self._db.delete(self._table, {"id": row["id"]})
        raise TokenExpiredError()

    def revoke(self, selector: str) -> bool:
        """Delete one remember token."""
        return self._db.delete(self._table, {"selector": selector}) > 0

    def revoke_all_for_user(self, user_id: int, except_selector: Optional[str] = None) -> int:
        """
        Delete every remember token of a user (logout everywhere).

        Args:
            user_id: The user ID
            except_selector: Token to keep, e.g. the current device's

        Returns:
            Number of tokens deleted
        """
        if except_selector is None:
            deleted = self._db.delete(self._table, {"user_id": int(user_id)})
        else:
            deleted = self._db.execute(
                f"DELETE FROM {self._table} WHERE user_id = ? AND selector <> ?",
                (int(user_id), except_selector),
            )
        if deleted:
            self._log.info("Revoked %d remember tokens for user %d", deleted, user_id)
        return deleted

    def purge_expired(self) -> int:
        """
        Remove expired remember tokens.

        Returns:
            Number of tokens removed
        """
        return self._db.execute(
            f"DELETE FROM {self._table} WHERE expires <= ?", (self._clock(),)
        )
