"""
Administration
==============

Operations for trusted callers (admin panels, maintenance scripts). None of
them is throttled and none checks who is logged in: access control is the
application's job.
"""

from __future__ import annotations

from typing import Callable, Optional

from authkeeper.core.auth.credential_store import User
from authkeeper.core.auth.roles import Role, Status
from authkeeper.core.auth.session_control import SessionAssertion
from authkeeper.core.auth.user_manager import UserManager, storage_operation
from authkeeper.core.errors import EmailNotVerifiedError, InvalidEmailError, UnknownIdError
from authkeeper.utils.validators import validate_email, validate_password


class Administration(UserManager):
    """
    Administrative user management.

    Usage:
        admin = auth.admin()

        user_id = admin.create_user("b@x.com", "Passw0rd!")
        admin.add_role_for_user_by_id(user_id, Role.EDITOR)
        admin.does_user_have_role(user_id, Role.EDITOR)  # True
    """

    # Accounts

    @storage_operation("user creation")
    def create_user(self, email: str, password: str, username: Optional[str] = None) -> int:
        """
        Create a verified account; no confirmation is issued.

        Raises:
            InvalidEmailError, InvalidPasswordError
            UserAlreadyExistsError
        """
        return self._create_user_internal(False, email, password, username, verified=True).user_id

    @storage_operation("user creation")
    def create_user_with_unique_username(
        self,
        email: str,
        password: str,
        username: Optional[str] = None,
    ) -> int:
        """
        Raises:
            DuplicateUsernameError
            (plus everything ``create_user`` raises)
        """
        return self._create_user_internal(True, email, password, username, verified=True).user_id

    @storage_operation("user deletion")
    def delete_user_by_id(self, user_id: int) -> None:
        """
        Permanently delete a user with its remembered devices and pending requests.

        Raises:
            UnknownIdError
        """
        if not self._store.delete(user_id):
            raise UnknownIdError()
        self._refresh_session_for(user_id)

    @storage_operation("user deletion")
    def delete_user_by_email(self, email: str) -> None:
        """
        Raises:
            InvalidEmailError: Malformed or unknown address
        """
        user = self._store.find_by_email(validate_email(email))
        if user is None:
            raise InvalidEmailError()
        self.delete_user_by_id(user.id)

    @storage_operation("user deletion")
    def delete_user_by_username(self, username: str) -> None:
        """
        Raises:
            UnknownUsernameError, AmbiguousUsernameError
        """
        self.delete_user_by_id(self._get_user_data_by_username(username).id)

    # Roles

    def _modify_roles(self, user_id: int, modification: Callable[[Role], Role]) -> Role:
        roles = self._store.modify_roles("id", int(user_id), modification)
        if roles is None:
            raise UnknownIdError()
        self._refresh_session_for(user_id)
        return roles

    def _user_by_email(self, email: str) -> User:
        user = self._store.find_by_email(validate_email(email))
        if user is None:
            raise InvalidEmailError()
        return user

    @storage_operation("role change")
    def add_role_for_user_by_id(self, user_id: int, role: Role) -> Role:
        """
        Grant a role.

        Returns:
            The user's roles afterwards

        Raises:
            UnknownIdError
        """
        return self._modify_roles(user_id, lambda roles: roles | role)

    @storage_operation("role change")
    def add_role_for_user_by_email(self, email: str, role: Role) -> Role:
        return self.add_role_for_user_by_id(self._user_by_email(email).id, role)

    @storage_operation("role change")
    def add_role_for_user_by_username(self, username: str, role: Role) -> Role:
        return self.add_role_for_user_by_id(self._get_user_data_by_username(username).id, role)

    @storage_operation("role change")
    def remove_role_for_user_by_id(self, user_id: int, role: Role) -> Role:
        """
        Revoke a role.

        Returns:
            The user's roles afterwards

        Raises:
            UnknownIdError
        """
        return self._modify_roles(user_id, lambda roles: Role.from_mask(roles & ~role))

    @storage_operation("role change")
    def remove_role_for_user_by_email(self, email: str, role: Role) -> Role:
        return self.remove_role_for_user_by_id(self._user_by_email(email).id, role)

    @storage_operation("role change")
    def remove_role_for_user_by_username(self, username: str, role: Role) -> Role:
        return self.remove_role_for_user_by_id(self._get_user_data_by_username(username).id, role)

    @storage_operation("role lookup")
    def does_user_have_role(self, user_id: int, role: Role) -> bool:
        """
        Raises:
            UnknownIdError
        """
        if not role:
            return False
        return (self._store.get_roles(user_id) & role) == role

    @storage_operation("role lookup")
    def get_roles_for_user_by_id(self, user_id: int) -> Role:
        """
        Raises:
            UnknownIdError
        """
        return self._store.get_roles(user_id)

    # Status

    @storage_operation("status change")
    def set_status_for_user_by_id(self, user_id: int, status: Status) -> None:
        """
        Blocking statuses take effect at the user's next login; combine with
        a forced logout to end existing sessions as well.

        Raises:
            UnknownIdError
        """
        self._store.set_status(user_id, Status(status))
        self._refresh_session_for(user_id)

    # Impersonation

    def _log_in_as(self, user: User) -> SessionAssertion:
        if not user.verified:
            raise EmailNotVerifiedError()
        self._log.warning("Administrative login as user %d", user.id)
        return self._on_login_successful(user)

    @storage_operation("administrative login")
    def log_in_as_user_by_id(self, user_id: int) -> SessionAssertion:
        """
        Log in as another user without their password.

        Raises:
            UnknownIdError
            EmailNotVerifiedError
        """
        return self._log_in_as(self._store.require(user_id))

    @storage_operation("administrative login")
    def log_in_as_user_by_email(self, email: str) -> SessionAssertion:
        return self._log_in_as(self._user_by_email(email))

    @storage_operation("administrative login")
    def log_in_as_user_by_username(self, username: str) -> SessionAssertion:
        return self._log_in_as(self._get_user_data_by_username(username))

    # Passwords

    @storage_operation("password change")
    def change_password_for_user_by_id(self, user_id: int, new_password: str) -> None:
        """
        Set a user's password and log them out everywhere.

        Raises:
            InvalidPasswordError
            UnknownIdError
        """
        new_password = validate_password(new_password, self._config.passwords)
        self._change_password_and_force_logout(user_id, new_password)
        self._refresh_session_for(user_id)

    @storage_operation("password change")
    def change_password_for_user_by_username(self, username: str, new_password: str) -> None:
        """
        Raises:
            UnknownUsernameError, AmbiguousUsernameError
            (plus everything ``change_password_for_user_by_id`` raises)
        """
        user = self._get_user_data_by_username(username)
        self.change_password_for_user_by_id(user.id, new_password)
