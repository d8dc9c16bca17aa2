"""
User Management
===============

Internals shared by the ``Auth`` facade and ``Administration``: account
creation, password updates and forced logout.

Security Features:
- Secure password hashing (Argon2id)
- Input validated before any database round-trip
- User row and confirmation request written in one transaction
- Storage failures surface as ``DatabaseError`` without driver details
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from authkeeper.core.auth.argon2_auth import Argon2Hasher
from authkeeper.core.auth.credential_store import CredentialStore, User
from authkeeper.core.auth.roles import NO_ROLES, Role
from authkeeper.core.auth.session_control import RememberCookie, SessionAssertion, SessionTokenIssuer
from authkeeper.core.auth.throttling import ThrottleKey, ThrottleLedger
from authkeeper.core.auth.tokens import ConfirmationTokenManager, TokenPair, TokenPurpose
from authkeeper.core.config import AuthConfig
from authkeeper.core.errors import DatabaseError
from authkeeper.db.database import Database
from authkeeper.db.errors import DbError
from authkeeper.utils.clock import Clock, TokenFactory, random_token, unix_time
from authkeeper.utils.validators import normalize_username, validate_email, validate_password


F = TypeVar("F", bound=Callable[..., Any])

UNKNOWN_CLIENT = "unknown"


def storage_operation(operation: str) -> Callable[[F], F]:
    """
    Decorator turning classified driver errors into ``DatabaseError``.

    Typed ``AuthFailure`` exceptions pass through untouched.
    """
    def decorator(method: F) -> F:
        @functools.wraps(method)
        def wrapper(self: UserManager, *args: Any, **kwargs: Any) -> Any:
            try:
                return method(self, *args, **kwargs)
            except DbError as e:
                self._log.error("Storage failure during %s: %s", operation, type(e).__name__)
                raise DatabaseError(operation) from e
        return wrapper  # type: ignore[return-value]
    return decorator


@dataclass
class SessionContext:
    """
    Mutable per-request state shared by a facade and its administration view.

    ``pending_cookie`` holds a remember-me cookie (or a deletion cookie) the
    caller should send with its response.
    """
    session: Optional[SessionAssertion] = None
    pending_cookie: Optional[RememberCookie] = None


@dataclass(frozen=True, slots=True)
class Registration:
    """Outcome of creating an account."""
    user_id: int
    confirmation: Optional[TokenPair] = None


class UserManager:
    """
    Base class wiring the components together.

    Subclasses get a credential store, a throttle ledger, a session token
    issuer and a confirmation token manager, all sharing one database
    handle, clock and token factory.
    """

    def __init__(
        self,
        db: Database,
        config: Optional[AuthConfig] = None,
        client_ip: Optional[str] = None,
        *,
        hasher: Optional[Argon2Hasher] = None,
        clock: Clock = unix_time,
        token_factory: TokenFactory = random_token,
        context: Optional[SessionContext] = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            db: Database handle
            config: Library configuration (default: built-in defaults)
            client_ip: Address of the current client, used for throttling
            hasher: Password hasher (default: Argon2id with production costs)
            clock: Source of unix time
            token_factory: Source of random selectors and tokens
            context: Session state to share with another manager
        """
        self._db = db
        self._config = config or AuthConfig()
        self._client_ip = client_ip or UNKNOWN_CLIENT
        self._hasher = hasher or Argon2Hasher()
        self._clock = clock
        self._token_factory = token_factory
        self._context = context or SessionContext()

        self._store = CredentialStore(db, self._config, clock)
        self._throttle = ThrottleLedger(db, self._config, clock)
        self._issuer = SessionTokenIssuer(db, self._config, clock, token_factory)
        self._tokens = ConfirmationTokenManager(db, self._config, clock, token_factory)
        self._log = logging.getLogger("authkeeper.auth")

    @property
    def config(self) -> AuthConfig:
        return self._config

    @property
    def client_ip(self) -> str:
        return self._client_ip

    def _client_key(self, action: str) -> ThrottleKey:
        """The current client's bucket for an action."""
        return ThrottleKey(action, self._client_ip)

    def _throttle_keys(self, action: str, *dimensions: object) -> list[ThrottleKey]:
        """Buckets for an action: one per dimension, plus the client IP."""
        keys = [ThrottleKey(action, str(dimension)) for dimension in dimensions]
        keys.append(self._client_key(action))
        return keys

    def _create_user_internal(
        self,
        require_unique_username: bool,
        email: str,
        password: str,
        username: Optional[str] = None,
        *,
        verified: bool = False,
        throttle_keys: Optional[list[ThrottleKey]] = None,
        roles: Role = NO_ROLES,
    ) -> Registration:
        """
        Validate input, then create the account.

        Unverified accounts get a confirmation request, issued in the same
        transaction as the user row.

        Raises:
            InvalidEmailError, InvalidPasswordError: Before touching storage
            TooManyRequestsError: If throttle_keys are given and cooling down
            UserAlreadyExistsError, DuplicateUsernameError: On conflicts
        """
        email = validate_email(email)
        password = validate_password(password, self._config.passwords)
        username = normalize_username(username)

        if throttle_keys:
            self._throttle.consume(throttle_keys)

        password_hash = self._hasher.hash(password)

        with self._db.transaction():
            user_id = self._store.create(
                email,
                password_hash,
                username,
                unique_username=require_unique_username,
                verified=verified,
                roles=roles,
            )
            confirmation = None
            if not verified:
                confirmation = self._tokens.issue(user_id, TokenPurpose.CONFIRMATION, email=email)

        return Registration(user_id=user_id, confirmation=confirmation)

    def _force_logout_for_user_by_id(self, user_id: int, except_selector: Optional[str] = None) -> int:
        """
        Revoke remember tokens and invalidate every session of a user.

        Sessions notice the bumped force-logout counter at their next resync.

        Returns:
            The new force-logout counter
        """
        with self._db.transaction():
            self._issuer.revoke_all_for_user(user_id, except_selector=except_selector)
            counter = self._store.bump_force_logout(user_id)
        self._log.info("Forced logout of user %d", user_id)
        return counter

    def _change_password_and_force_logout(self, user_id: int, new_password: str) -> int:
        """
        Store an already validated password and log the user out everywhere.

        Both writes commit together; if either fails the old password and
        every remember token stay valid.

        Returns:
            The new force-logout counter
        """
        password_hash = self._hasher.hash(new_password)
        with self._db.transaction():
            self._store.update_password_hash(user_id, password_hash)
            return self._force_logout_for_user_by_id(user_id)

    def _get_user_data_by_username(self, username: str) -> User:
        """
        Raises:
            UnknownUsernameError, AmbiguousUsernameError
        """
        return self._store.find_by_username(normalize_username(username) or "")

    def _on_login_successful(self, user: User, remember_duration: Optional[int] = None) -> SessionAssertion:
        """Record the login and attach a fresh session to the context."""
        cookie = None
        with self._db.transaction():
            self._store.touch_last_login(user.id)
            if remember_duration is not None:
                cookie = self._issuer.issue_remember_token(user.id, remember_duration)

        selector = None
        if cookie is not None:
            self._context.pending_cookie = cookie
            selector = cookie.selector

        session = self._issuer.issue_session(
            user, remembered=False, remember_selector=selector
        )
        self._context.session = session
        self._log.info("User %d logged in", user.id)
        return session

    def _refresh_session_for(self, user_id: int) -> None:
        """Resync the current session now if it belongs to ``user_id``."""
        session = self._context.session
        if session is None or session.user_id != user_id:
            return
        user = self._store.find_by_id(user_id)
        if user is None or user.force_logout != session.force_logout:
            self._context.session = None
        else:
            self._context.session = session.resynced(user, self._clock())
