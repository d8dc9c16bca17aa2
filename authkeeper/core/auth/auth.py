"""
Auth Facade
===========

Entry point for applications: registration, login, logout, email
confirmation, password reset and the current session.

One ``Auth`` instance serves one request (one client IP). Every operation
runs to completion synchronously and follows the same order: validate
input, consult the throttle ledger, read credentials, write session state.

Account states:
    UNVERIFIED --(confirm email)--> VERIFIED
    VERIFIED --(login)--> AUTHENTICATED
    AUTHENTICATED --(logout | forced logout)--> VERIFIED
    any --(status BANNED/LOCKED/SUSPENDED)--> BLOCKED (login refused)
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from authkeeper.core.auth.administration import Administration
from authkeeper.core.auth.credential_store import User
from authkeeper.core.auth.roles import NO_ROLES, Role, Status
from authkeeper.core.auth.session_control import RememberCookie, SessionAssertion, SessionTokenIssuer
from authkeeper.core.auth.throttling import ThrottleKey
from authkeeper.core.auth.tokens import TokenPair, TokenPurpose, TokenRecord
from authkeeper.core.auth.user_manager import Registration, UserManager, storage_operation
from authkeeper.core.errors import (
    AccountBlockedError,
    AmbiguousUsernameError,
    ConfirmationRequestNotFoundError,
    EmailNotVerifiedError,
    InvalidEmailError,
    InvalidPasswordError,
    InvalidTokenError,
    NotLoggedInError,
    ResetDisabledError,
    TokenExpiredError,
    TokenNotFoundError,
    UnknownUsernameError,
    UserAlreadyExistsError,
)
from authkeeper.utils.validators import (
    normalize_username,
    validate_email,
    validate_login_password,
    validate_password,
)


class Auth(UserManager):
    """
    Authentication facade for the current client.

    Usage:
        auth = Auth(db, config, client_ip=request.remote_addr)

        registration = auth.register("a@x.com", "Passw0rd!")
        send_mail(registration.confirmation.selector, registration.confirmation.token)

        auth.confirm_email(selector, token)
        session = auth.login("a@x.com", "Passw0rd!", remember_duration=86400)

        if auth.pending_cookie is not None:
            response.headers.add("Set-Cookie", dump_remember_cookie(auth.pending_cookie, now))

    Security Notes:
        - Throttle buckets are consulted before any account lookup
        - Unknown accounts cost a full password verification
        - Password changes and resets log the user out everywhere
    """

    # Session state

    def _end_session(self, forget_cookie: bool = False) -> None:
        self._context.session = None
        if forget_cookie:
            self._context.pending_cookie = RememberCookie.deletion(
                self._config.tokens.remember_cookie_name
            )

    @storage_operation("session check")
    def _current_session(self) -> Optional[SessionAssertion]:
        """
        Current session, resynced with the users table when due.

        A deleted user or a bumped force-logout counter ends the session;
        otherwise roles and status are refreshed.
        """
        session = self._context.session
        if session is None:
            return None

        now = self._clock()
        if now - session.last_resync < self._config.tokens.session_resync_seconds:
            return session

        user = self._store.find_by_id(session.user_id)
        if user is None or user.force_logout != session.force_logout:
            self._log.info("Session of user %d ended by resync", session.user_id)
            self._end_session()
            return None

        session = session.resynced(user, now)
        self._context.session = session
        return session

    def _require_session(self) -> SessionAssertion:
        session = self._current_session()
        if session is None:
            raise NotLoggedInError()
        return session

    @property
    def session(self) -> Optional[SessionAssertion]:
        return self._current_session()

    @property
    def pending_cookie(self) -> Optional[RememberCookie]:
        """Remember-me cookie (or deletion cookie) to send with the response."""
        return self._context.pending_cookie

    def is_logged_in(self) -> bool:
        return self._current_session() is not None

    @property
    def user_id(self) -> Optional[int]:
        session = self._current_session()
        return session.user_id if session else None

    @property
    def email(self) -> Optional[str]:
        session = self._current_session()
        return session.email if session else None

    @property
    def username(self) -> Optional[str]:
        session = self._current_session()
        return session.username if session else None

    @property
    def status(self) -> Optional[Status]:
        session = self._current_session()
        return session.status if session else None

    def is_remembered(self) -> bool:
        """Whether the session was restored from a remember-me cookie."""
        session = self._current_session()
        return bool(session and session.remembered)

    def get_roles(self) -> Role:
        session = self._current_session()
        return session.roles if session else NO_ROLES

    def has_role(self, role: Role) -> bool:
        return bool(self.get_roles() & role) if role else False

    def has_any_role(self, *roles: Role) -> bool:
        current = self.get_roles()
        return any(current & role for role in roles)

    def has_all_roles(self, *roles: Role) -> bool:
        current = self.get_roles()
        return bool(roles) and all((current & role) == role for role in roles)

    def _has_status(self, status: Status) -> bool:
        return self.status is status

    def is_normal(self) -> bool:
        return self._has_status(Status.NORMAL)

    def is_archived(self) -> bool:
        return self._has_status(Status.ARCHIVED)

    def is_banned(self) -> bool:
        return self._has_status(Status.BANNED)

    def is_locked(self) -> bool:
        return self._has_status(Status.LOCKED)

    def is_pending_review(self) -> bool:
        return self._has_status(Status.PENDING_REVIEW)

    def is_suspended(self) -> bool:
        return self._has_status(Status.SUSPENDED)

    def admin(self) -> Administration:
        """Administrative operations sharing this facade's session."""
        return Administration(
            self._db,
            self._config,
            self._client_ip,
            hasher=self._hasher,
            clock=self._clock,
            token_factory=self._token_factory,
            context=self._context,
        )

    # Registration

    @storage_operation("registration")
    def register(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
        *,
        unique_username: bool = False,
    ) -> Registration:
        """
        Create an unverified account and its confirmation request.

        Returns:
            The new user id and the selector/token pair to deliver

        Raises:
            InvalidEmailError, InvalidPasswordError: Before touching storage
            TooManyRequestsError: Too many registrations from this client
            UserAlreadyExistsError: If the email is taken
            DuplicateUsernameError: If unique_username and the username is taken
        """
        registration = self._create_user_internal(
            unique_username,
            email,
            password,
            username,
            throttle_keys=self._throttle_keys("register"),
        )
        self._log.info("Registered user %d", registration.user_id)
        return registration

    def register_with_unique_username(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
    ) -> Registration:
        return self.register(email, password, username, unique_username=True)

    # Login

    def _admit(self, user: User, remember_duration: Optional[int] = None) -> SessionAssertion:
        if not user.verified:
            raise EmailNotVerifiedError()
        if user.is_blocked:
            self._log.warning("Refused login of blocked user %d", user.id)
            raise AccountBlockedError()
        return self._on_login_successful(user, remember_duration)

    def _authenticate(
        self,
        user: User,
        password: str,
        account_key: ThrottleKey,
        remember_duration: Optional[int],
    ) -> SessionAssertion:
        if not self._hasher.verify(password, user.password_hash):
            self._throttle.attempt_all([account_key, self._client_key(account_key.action)])
            self._log.info("Wrong password for user %d", user.id)
            raise InvalidPasswordError()

        # The client IP bucket keeps counting; only the account's bucket is cleared
        self._throttle.reset_quietly([account_key])

        if self._hasher.needs_rehash(user.password_hash):
            self._store.update_password_hash(user.id, self._hasher.hash(password))

        return self._admit(user, remember_duration)

    @storage_operation("login")
    def login(
        self,
        email: str,
        password: str,
        remember_duration: Optional[int] = None,
    ) -> SessionAssertion:
        """
        Log in with email address and password.

        Args:
            email: Email address
            password: Password
            remember_duration: Keep the user logged in on this device for
                this many seconds (None: session only)

        Raises:
            InvalidEmailError: Malformed or unknown address
            InvalidPasswordError: Wrong password
            EmailNotVerifiedError: Correct password, email not confirmed yet
            AccountBlockedError: Correct password, account banned, locked or suspended
            TooManyRequestsError: Throttled, regardless of the password
        """
        email = validate_email(email)
        password = validate_login_password(password)

        account_key = ThrottleKey("login", email)
        keys = [account_key, self._client_key("login")]
        self._throttle.require(keys)

        user = self._store.find_by_email(email)
        if user is None:
            self._hasher.verify_dummy(password)
            self._throttle.attempt_all(keys)
            raise InvalidEmailError()

        return self._authenticate(user, password, account_key, remember_duration)

    @storage_operation("login")
    def login_with_username(
        self,
        username: str,
        password: str,
        remember_duration: Optional[int] = None,
    ) -> SessionAssertion:
        """
        Log in with username and password.

        Raises:
            UnknownUsernameError: Nobody uses the username
            AmbiguousUsernameError: Several accounts use the username
            (plus everything ``login`` raises)
        """
        username = normalize_username(username)
        if username is None:
            raise UnknownUsernameError()
        password = validate_login_password(password)

        account_key = ThrottleKey("login", username)
        keys = [account_key, self._client_key("login")]
        self._throttle.require(keys)

        users = self._store.find_all_by_username(username)
        if not users:
            self._hasher.verify_dummy(password)
            self._throttle.attempt_all(keys)
            raise UnknownUsernameError()
        if len(users) > 1:
            raise AmbiguousUsernameError()

        return self._authenticate(users[0], password, account_key, remember_duration)

    @storage_operation("remembered login")
    def login_with_remember_cookie(self, cookie_value: Optional[str]) -> SessionAssertion:
        """
        Restore a session from a remember-me cookie.

        The token is rotated on every use; the new cookie is exposed in
        ``pending_cookie``. Roles and status come from the current user row.

        Raises:
            InvalidTokenError: Malformed, unknown or mismatched cookie
            TokenExpiredError: Expired cookie
            EmailNotVerifiedError, AccountBlockedError: As for ``login``
            TooManyRequestsError: Too many bad cookies from this client
        """
        keys = self._throttle_keys("remembered_login")
        self._throttle.require(keys)

        parsed = SessionTokenIssuer.parse_cookie_value(cookie_value)
        if parsed is None:
            self._throttle.attempt_all(keys)
            self._end_session(forget_cookie=True)
            raise InvalidTokenError()
        selector, token = parsed

        # A refused login rolls the rotation back, so the cookie stays usable
        try:
            with self._db.transaction():
                user_id, cookie = self._issuer.rotate_remember_token(selector, token)
                user = self._store.find_by_id(user_id)
                if user is None:
                    raise InvalidTokenError()
                if not user.verified:
                    raise EmailNotVerifiedError()
                if user.is_blocked:
                    raise AccountBlockedError()
                self._store.touch_last_login(user.id)
        except InvalidTokenError:
            self._throttle.attempt_all(keys)
            self._end_session(forget_cookie=True)
            raise
        except TokenExpiredError:
            self._issuer.revoke(selector)
            self._end_session(forget_cookie=True)
            raise

        self._context.pending_cookie = cookie
        session = self._issuer.issue_session(user, remembered=True, remember_selector=selector)
        self._context.session = session
        return session

    # Logout

    @storage_operation("logout")
    def log_out(self, forget_device: bool = False) -> None:
        """
        End the current session.

        Args:
            forget_device: Also revoke this device's remember-me token
        """
        session = self._context.session
        if session is None:
            return
        if forget_device and session.remember_selector:
            self._issuer.revoke(session.remember_selector)
        self._end_session(forget_cookie=forget_device)
        self._log.info("User %d logged out", session.user_id)

    @storage_operation("logout")
    def log_out_everywhere_else(self) -> None:
        """
        End every other session and remembered device of the current user.

        Raises:
            NotLoggedInError
        """
        session = self._require_session()
        counter = self._force_logout_for_user_by_id(
            session.user_id, except_selector=session.remember_selector
        )
        self._context.session = replace(session, force_logout=counter)

    @storage_operation("logout")
    def log_out_everywhere(self) -> None:
        """
        End every session and remembered device of the current user, this one included.

        Raises:
            NotLoggedInError
        """
        session = self._require_session()
        self._force_logout_for_user_by_id(session.user_id)
        self._end_session(forget_cookie=True)

    # Email confirmation

    @storage_operation("email confirmation")
    def confirm_email(self, selector: str, token: str) -> tuple[Optional[str], str]:
        """
        Redeem a confirmation request.

        Confirms a new account, or applies a requested email change.

        Returns:
            ``(old_email, new_email)``; old_email is None unless the
            address changed

        Raises:
            TokenNotFoundError, InvalidTokenError, TokenExpiredError
            UserAlreadyExistsError: The new address was taken meanwhile
            TooManyRequestsError
        """
        self._throttle.consume(self._throttle_keys("confirm_email", selector))

        old_email: Optional[str] = None

        def apply(record: TokenRecord) -> None:
            nonlocal old_email
            user = self._store.require(record.user_id)
            self._store.set_verified(user.id)
            if record.email and record.email != user.email:
                self._store.update_email(user.id, record.email)
                old_email = user.email

        record = self._tokens.redeem(selector, token, TokenPurpose.CONFIRMATION, effect=apply)
        self._refresh_session_for(record.user_id)
        self._log.info("Confirmed email of user %d", record.user_id)
        return old_email, record.email or ""

    @storage_operation("email confirmation")
    def confirm_email_and_sign_in(
        self,
        selector: str,
        token: str,
        remember_duration: Optional[int] = None,
    ) -> SessionAssertion:
        """Redeem a confirmation request and log its user in."""
        _, email = self.confirm_email(selector, token)
        user = self._store.find_by_email(email)
        if user is None:
            raise TokenNotFoundError()
        return self._admit(user, remember_duration)

    def _resend_confirmation(self, record: Optional[TokenRecord]) -> TokenPair:
        if record is None:
            raise ConfirmationRequestNotFoundError()
        return self._tokens.issue(record.user_id, TokenPurpose.CONFIRMATION, email=record.email)

    @storage_operation("resend confirmation")
    def resend_confirmation_for_email(self, email: str) -> TokenPair:
        """
        Issue a fresh pair for the latest confirmation request of an address.

        Raises:
            ConfirmationRequestNotFoundError: No earlier request exists
            TooManyRequestsError
        """
        email = validate_email(email)
        self._throttle.consume(self._throttle_keys("resend_confirmation", email))
        return self._resend_confirmation(self._tokens.latest_confirmation_for_email(email))

    @storage_operation("resend confirmation")
    def resend_confirmation_for_user_id(self, user_id: int) -> TokenPair:
        self._throttle.consume(self._throttle_keys("resend_confirmation", int(user_id)))
        return self._resend_confirmation(self._tokens.latest_confirmation_for(user_id))

    # Password reset

    @storage_operation("password reset request")
    def request_password_reset(self, email: str, duration: Optional[int] = None) -> TokenPair:
        """
        Start a password reset.

        The result has the same shape whether or not an account can be
        reset. Unknown, unverified or non-resettable accounts get a decoy
        pair (``is_decoy``) that redeems nothing; callers decide whether to
        deliver it.

        Raises:
            InvalidEmailError: Malformed address
            TooManyRequestsError
        """
        email = validate_email(email)
        self._throttle.consume(self._throttle_keys("request_password_reset", email))

        user = self._store.find_by_email(email)
        if user is None or not user.verified or not user.resettable:
            return self._tokens.decoy(TokenPurpose.RESET, email=email)

        return self._tokens.issue(user.id, TokenPurpose.RESET, email=email, duration=duration)

    @storage_operation("password reset")
    def reset_password(self, selector: str, token: str, new_password: str) -> int:
        """
        Redeem a reset request and set a new password.

        Every session and remembered device of the user is logged out.

        Returns:
            The user id

        Raises:
            InvalidPasswordError: Before touching storage
            TokenNotFoundError, InvalidTokenError, TokenExpiredError
            ResetDisabledError: The user disabled password resets
            TooManyRequestsError
        """
        new_password = validate_password(new_password, self._config.passwords)
        self._throttle.consume(self._throttle_keys("reset_password", selector))

        password_hash = self._hasher.hash(new_password)

        def apply(record: TokenRecord) -> None:
            user = self._store.require(record.user_id)
            if not user.resettable:
                raise ResetDisabledError()
            self._store.update_password_hash(user.id, password_hash)
            self._force_logout_for_user_by_id(user.id)

        record = self._tokens.redeem(selector, token, TokenPurpose.RESET, effect=apply)

        session = self._context.session
        if session is not None and session.user_id == record.user_id:
            self._end_session(forget_cookie=True)

        self._log.info("Reset password of user %d", record.user_id)
        return record.user_id

    @storage_operation("password reset")
    def reset_password_and_sign_in(
        self,
        selector: str,
        token: str,
        new_password: str,
        remember_duration: Optional[int] = None,
    ) -> SessionAssertion:
        user_id = self.reset_password(selector, token, new_password)
        return self._admit(self._store.require(user_id), remember_duration)

    @storage_operation("password reset check")
    def can_reset_password_or_raise(self, selector: str, token: str) -> None:
        """
        Check a reset pair without consuming it.

        Raises:
            TokenNotFoundError, InvalidTokenError, TokenExpiredError
            ResetDisabledError
            TooManyRequestsError
        """
        self._throttle.consume(self._throttle_keys("reset_password", selector))
        record = self._tokens.peek(selector, token, TokenPurpose.RESET)
        user = self._store.require(record.user_id)
        if not user.resettable:
            raise ResetDisabledError()

    def can_reset_password(self, selector: str, token: str) -> bool:
        try:
            self.can_reset_password_or_raise(selector, token)
        except (TokenNotFoundError, InvalidTokenError, TokenExpiredError, ResetDisabledError):
            return False
        return True

    @storage_operation("password reset setting")
    def set_password_reset_enabled(self, enabled: bool) -> None:
        """
        Raises:
            NotLoggedInError
        """
        session = self._require_session()
        self._store.set_resettable(session.user_id, enabled)

    @storage_operation("password reset setting")
    def is_password_reset_enabled(self) -> bool:
        session = self._require_session()
        return self._store.require(session.user_id).resettable

    # Credential changes

    @storage_operation("password confirmation")
    def reconfirm_password(self, password: str) -> bool:
        """
        Re-authenticate the current user, e.g. before a sensitive change.

        Raises:
            NotLoggedInError
            TooManyRequestsError
        """
        session = self._require_session()
        try:
            password = validate_login_password(password)
        except InvalidPasswordError:
            return False

        account_key = ThrottleKey("reconfirm_password", str(session.user_id))
        keys = [account_key, self._client_key("reconfirm_password")]
        self._throttle.require(keys)

        user = self._store.find_by_id(session.user_id)
        if user is None:
            self._end_session()
            raise NotLoggedInError()

        if not self._hasher.verify(password, user.password_hash):
            self._throttle.attempt_all(keys)
            return False

        self._throttle.reset_quietly([account_key])
        return True

    @storage_operation("password change")
    def change_password(self, old_password: str, new_password: str) -> None:
        """
        Change the current user's password after checking the old one.

        Raises:
            NotLoggedInError
            InvalidPasswordError: Old password wrong or new one invalid
            TooManyRequestsError
        """
        new_password = validate_password(new_password, self._config.passwords)
        if not self.reconfirm_password(old_password):
            raise InvalidPasswordError()
        self.change_password_without_old_password(new_password)

    @storage_operation("password change")
    def change_password_without_old_password(self, new_password: str) -> None:
        """
        Change the current user's password and log out everywhere, atomically.

        Raises:
            NotLoggedInError
            InvalidPasswordError
        """
        session = self._require_session()
        new_password = validate_password(new_password, self._config.passwords)
        self._change_password_and_force_logout(session.user_id, new_password)
        self._end_session(forget_cookie=True)

    @storage_operation("email change")
    def change_email(self, new_email: str) -> TokenPair:
        """
        Request a change of the current user's email address.

        The change only happens once the pair is redeemed through
        ``confirm_email``; deliver it to the new address.

        Raises:
            NotLoggedInError
            InvalidEmailError
            UserAlreadyExistsError: The new address is taken
            EmailNotVerifiedError: The current address is not confirmed
            TooManyRequestsError
        """
        session = self._require_session()
        new_email = validate_email(new_email)
        self._throttle.consume(self._throttle_keys("request_email_change", session.user_id))

        if self._store.find_by_email(new_email) is not None:
            raise UserAlreadyExistsError()

        user = self._store.require(session.user_id)
        if not user.verified:
            raise EmailNotVerifiedError()

        return self._tokens.issue(user.id, TokenPurpose.CONFIRMATION, email=new_email)
