"""
Confirmation and Reset Tokens
=============================

One-time selector/token pairs for email confirmation and password reset.

Callers deliver the pair to the user (usually inside a link); the server
keeps the selector and a hash of the token.

Policy:
    - Redemption is single-use: the record is deleted in the same
      transaction as the effect it unlocks
    - A new password reset request supersedes any outstanding one of the
      same user; email confirmations accumulate until redeemed or expired
    - A wrong token does not delete the record, so retries stay possible
      (the throttle ledger limits them)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from authkeeper.core.auth.session_control import SessionTokenIssuer
from authkeeper.core.config import AuthConfig
from authkeeper.core.errors import InvalidTokenError, TokenExpiredError, TokenNotFoundError
from authkeeper.db.database import Database, Row
from authkeeper.security.constants import SELECTOR_BYTES, TOKEN_BYTES
from authkeeper.utils.clock import Clock, TokenFactory, random_token, unix_time


class TokenPurpose(Enum):
    """What a selector/token pair unlocks."""
    CONFIRMATION = "confirmations"
    RESET = "resets"


@dataclass(frozen=True, slots=True)
class TokenPair:
    """
    Selector/token pair to deliver to the user.

    Decoy pairs have the same shape as real ones but are never persisted;
    they are returned where revealing that no account matched would leak
    information.
    """
    selector: str
    token: str
    expires_at: int
    email: Optional[str] = None
    is_decoy: bool = False

    def __repr__(self) -> str:
        return f"TokenPair(selector={self.selector[:4]}..., expires_at={self.expires_at})"


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Stored request, without its token hash."""
    id: int
    user_id: int
    selector: str
    expires_at: int
    email: Optional[str] = None


class ConfirmationTokenManager:
    """
    Issues and redeems confirmation and reset tokens.

    Usage:
        manager = ConfirmationTokenManager(db, config)

        pair = manager.issue(user_id, TokenPurpose.CONFIRMATION, email=email)
        deliver(pair.selector, pair.token)

        manager.redeem(selector, token, TokenPurpose.CONFIRMATION,
                       effect=lambda record: store.set_verified(record.user_id))
    """

    __slots__ = ("_db", "_config", "_clock", "_token_factory", "_log")

    def __init__(
        self,
        db: Database,
        config: AuthConfig,
        clock: Clock = unix_time,
        token_factory: TokenFactory = random_token,
    ) -> None:
        self._db = db
        self._config = config
        self._clock = clock
        self._token_factory = token_factory
        self._log = logging.getLogger("authkeeper.tokens")

    def _table(self, purpose: TokenPurpose) -> str:
        return self._config.table(purpose.value)

    def _duration(self, purpose: TokenPurpose) -> int:
        if purpose is TokenPurpose.RESET:
            return self._config.tokens.reset_seconds
        return self._config.tokens.confirmation_seconds

    def issue(
        self,
        user_id: int,
        purpose: TokenPurpose,
        email: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> TokenPair:
        """
        Persist a new request and return its selector/token pair.

        Args:
            user_id: Owner of the request
            purpose: Confirmation or reset
            email: Address being confirmed (required for confirmations)
            duration: Lifetime in seconds (default: configured per purpose)
        """
        if purpose is TokenPurpose.CONFIRMATION and not email:
            raise ValueError("Confirmation requests need an email address")

        selector = self._token_factory(SELECTOR_BYTES)
        token = self._token_factory(TOKEN_BYTES)
        expires_at = self._clock() + (self._duration(purpose) if duration is None else duration)

        values = {
            "user_id": int(user_id),
            "selector": selector,
            "token": SessionTokenIssuer.hash_token(token),
            "expires": expires_at,
        }
        if purpose is TokenPurpose.CONFIRMATION:
            values["email"] = email

        table = self._table(purpose)
        with self._db.transaction():
            if purpose is TokenPurpose.RESET:
                superseded = self._db.delete(table, {"user_id": int(user_id)})
                if superseded:
                    self._log.info("Superseded %d reset requests of user %d", superseded, user_id)
            self._db.insert(table, values)

        return TokenPair(selector=selector, token=token, expires_at=expires_at, email=email)

    def decoy(self, purpose: TokenPurpose, email: Optional[str] = None) -> TokenPair:
        """A pair shaped like ``issue``'s that redeems nothing."""
        return TokenPair(
            selector=self._token_factory(SELECTOR_BYTES),
            token=self._token_factory(TOKEN_BYTES),
            expires_at=self._clock() + self._duration(purpose),
            email=email,
            is_decoy=True,
        )

    @staticmethod
    def _record(row: Row, purpose: TokenPurpose) -> TokenRecord:
        return TokenRecord(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            selector=row["selector"],
            expires_at=int(row["expires"]),
            email=row["email"] if purpose is TokenPurpose.CONFIRMATION else None,
        )

    def _columns(self, purpose: TokenPurpose) -> str:
        columns = "id, user_id, selector, token, expires"
        return f"{columns}, email" if purpose is TokenPurpose.CONFIRMATION else columns

    def _verified_record(self, selector: str, token: str, purpose: TokenPurpose) -> TokenRecord:
        row = self._db.select_row(
            f"SELECT {self._columns(purpose)} FROM {self._table(purpose)} WHERE selector = ?",
            (selector,),
        )
        if row is None:
            raise TokenNotFoundError()

        if not SessionTokenIssuer.tokens_match(token, row["token"]):
            raise InvalidTokenError()

        if row["expires"] <= self._clock():
            self._db.delete(self._table(purpose), {"id": row["id"]})
            raise TokenExpiredError()

        return self._record(row, purpose)

    def peek(self, selector: str, token: str, purpose: TokenPurpose) -> TokenRecord:
        """
        Validate a pair without consuming it.

        Raises:
            TokenNotFoundError, InvalidTokenError, TokenExpiredError: As ``redeem``
        """
        return self._verified_record(selector, token, purpose)

    def redeem(
        self,
        selector: str,
        token: str,
        purpose: TokenPurpose,
        effect: Optional[Callable[[TokenRecord], None]] = None,
    ) -> TokenRecord:
        """
        Consume a pair and apply its effect atomically.

        Args:
            selector: Public lookup key
            token: Raw secret token
            purpose: Confirmation or reset
            effect: Called with the record inside the redeeming transaction;
                if it raises, the record survives

        Returns:
            The consumed record

        Raises:
            TokenNotFoundError: Unknown selector, or already redeemed
            InvalidTokenError: Token doesn't match (record kept)
            TokenExpiredError: Past expiry (record deleted)
        """
        record = self._verified_record(selector, token, purpose)

        with self._db.transaction():
            # A concurrent redemption may have won the race since the read
            if self._db.delete(self._table(purpose), {"id": record.id}) != 1:
                raise TokenNotFoundError()
            if effect is not None:
                effect(record)

        self._log.info("Redeemed %s request of user %d", purpose.name.lower(), record.user_id)
        return record

    def latest_confirmation_for(self, user_id: int) -> Optional[TokenRecord]:
        """Most recent confirmation request of a user, expired or not."""
        row = self._db.select_row(
            f"SELECT {self._columns(TokenPurpose.CONFIRMATION)} "
            f"FROM {self._table(TokenPurpose.CONFIRMATION)} "
            f"WHERE user_id = ? ORDER BY id DESC LIMIT 1",
            (int(user_id),),
        )
        return self._record(row, TokenPurpose.CONFIRMATION) if row else None

    def latest_confirmation_for_email(self, email: str) -> Optional[TokenRecord]:
        row = self._db.select_row(
            f"SELECT {self._columns(TokenPurpose.CONFIRMATION)} "
            f"FROM {self._table(TokenPurpose.CONFIRMATION)} "
            f"WHERE email = ? ORDER BY id DESC LIMIT 1",
            (email,),
        )
        return self._record(row, TokenPurpose.CONFIRMATION) if row else None

    def count_active(self, user_id: int, purpose: TokenPurpose) -> int:
        """Number of unexpired requests of a user."""
        return int(self._db.select_value(
            f"SELECT COUNT(*) AS n FROM {self._table(purpose)} WHERE user_id = ? AND expires > ?",
            (int(user_id), self._clock()),
        ) or 0)

    def purge_expired(self, purpose: TokenPurpose) -> int:
        """
        Remove expired requests.

        Returns:
            Number of requests removed
        """
        return self._db.execute(
            f"DELETE FROM {self._table(purpose)} WHERE expires <= ?", (self._clock(),)
        )
