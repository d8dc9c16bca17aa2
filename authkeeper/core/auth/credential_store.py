"""
Credential Store
================

CRUD and uniqueness rules for the ``users`` table.

Security Features:
- Email uniqueness enforced by the database and re-checked in the same
  transaction as the insert
- Optional username uniqueness, checked under a table lock
- Role bitmask changes re-read the latest value under a row lock
- Deleting a user cascades to remembered logins, confirmations and resets
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Final, Iterator, Optional

from authkeeper.core.auth.roles import NO_ROLES, Role, Status
from authkeeper.core.config import AuthConfig
from authkeeper.core.errors import (
    AmbiguousUsernameError,
    AuthFailure,
    DatabaseError,
    DuplicateUsernameError,
    UnknownIdError,
    UnknownUsernameError,
    UserAlreadyExistsError,
)
from authkeeper.db.database import Database, Row
from authkeeper.db.errors import DbError, IntegrityConstraintViolation
from authkeeper.utils.clock import Clock, unix_time


# Columns administrative lookups may filter by
_LOOKUP_COLUMNS: Final[frozenset[str]] = frozenset({"id", "email", "username"})


@dataclass
class User:
    """
    Account record.

    Note: password_hash is never exposed in repr or str.
    """
    id: int
    email: str
    username: Optional[str]
    password_hash: str
    status: Status
    verified: bool
    resettable: bool
    roles: Role
    registered: int
    last_login: Optional[int] = None
    force_logout: int = 0

    def __repr__(self) -> str:
        """Safe representation without password hash."""
        return (
            f"User(id={self.id!r}, email={self.email!r}, "
            f"status={self.status.name}, verified={self.verified})"
        )

    @property
    def is_blocked(self) -> bool:
        return self.status.is_blocked

    @classmethod
    def from_row(cls, row: Row) -> User:
        return cls(
            id=int(row["id"]),
            email=row["email"],
            username=row["username"],
            password_hash=row["password"],
            status=Status(int(row["status"])),
            verified=bool(row["verified"]),
            resettable=bool(row["resettable"]),
            roles=Role.from_mask(row["roles_mask"]),
            registered=int(row["registered"]),
            last_login=row["last_login"],
            force_logout=int(row["force_logout"]),
        )


class CredentialStore:
    """
    Data access for user accounts.

    Every method either succeeds, raises a typed ``AuthFailure`` (conflicts,
    unknown ids) or raises ``DatabaseError`` for unexpected storage failures.
    """

    __slots__ = ("_db", "_config", "_users", "_clock", "_log")

    _COLUMNS: Final[str] = (
        "id, email, username, password, status, verified, resettable, "
        "roles_mask, registered, last_login, force_logout"
    )

    def __init__(self, db: Database, config: AuthConfig, clock: Clock = unix_time) -> None:
        self._db = db
        self._config = config
        self._users = config.table("users")
        self._clock = clock
        self._log = logging.getLogger("authkeeper.store")

    @contextmanager
    def _storage(
        self,
        operation: str,
        conflict: Optional[type[AuthFailure]] = None,
    ) -> Iterator[None]:
        """Translate driver errors into the library's error taxonomy."""
        try:
            yield
        except IntegrityConstraintViolation as e:
            if conflict is None:
                self._log.error("Constraint violation during %s", operation)
                raise DatabaseError(operation) from e
            raise conflict() from e
        except DbError as e:
            self._log.error("Storage failure during %s: %s", operation, type(e).__name__)
            raise DatabaseError(operation) from e

    def create(
        self,
        email: str,
        password_hash: str,
        username: Optional[str] = None,
        *,
        unique_username: bool = False,
        verified: bool = False,
        status: Status = Status.NORMAL,
        roles: Role = NO_ROLES,
    ) -> int:
        """
        Insert a new account.

        Args:
            email: Normalized email address
            password_hash: Encoded password hash
            username: Optional display name
            unique_username: Refuse the username if another account uses it

        Returns:
            The new user id

        Raises:
            UserAlreadyExistsError: If the email is taken
            DuplicateUsernameError: If unique_username and the username is taken
        """
        with self._storage("create user", conflict=UserAlreadyExistsError):
            with self._db.transaction():
                if unique_username and username is not None:
                    # Serializes concurrent registrations with the same username
                    self._db.lock_table(self._users)
                    taken = self._db.select_value(
                        f"SELECT COUNT(*) AS n FROM {self._users} WHERE username = ?",
                        (username,),
                    )
                    if taken:
                        raise DuplicateUsernameError()

                existing = self._db.select_value(
                    f"SELECT id FROM {self._users} WHERE email = ?", (email,)
                )
                if existing is not None:
                    raise UserAlreadyExistsError()

                user_id = self._db.insert(self._users, {
                    "email": email,
                    "password": password_hash,
                    "username": username,
                    "status": int(status),
                    "verified": int(verified),
                    "resettable": 1,
                    "roles_mask": int(roles),
                    "registered": self._clock(),
                    "force_logout": 0,
                })

        self._log.info("Created user %d", user_id)
        return user_id

    def find_by_id(self, user_id: int) -> Optional[User]:
        with self._storage("find user"):
            row = self._db.select_row(
                f"SELECT {self._COLUMNS} FROM {self._users} WHERE id = ?", (int(user_id),)
            )
        return User.from_row(row) if row else None

    def find_by_email(self, email: str) -> Optional[User]:
        with self._storage("find user"):
            row = self._db.select_row(
                f"SELECT {self._COLUMNS} FROM {self._users} WHERE email = ?", (email,)
            )
        return User.from_row(row) if row else None

    def find_all_by_username(self, username: str, limit: int = 2) -> list[User]:
        with self._storage("find user"):
            rows = self._db.select(
                f"SELECT {self._COLUMNS} FROM {self._users} WHERE username = ? "
                f"ORDER BY id LIMIT {int(limit)}",
                (username,),
            )
        return [User.from_row(row) for row in rows]

    def find_by_username(self, username: str) -> User:
        """
        Find the single account using ``username``.

        Raises:
            UnknownUsernameError: If nobody uses the username
            AmbiguousUsernameError: If several accounts use it
        """
        users = self.find_all_by_username(username, limit=2)
        if not users:
            raise UnknownUsernameError()
        if len(users) > 1:
            raise AmbiguousUsernameError()
        return users[0]

    def require(self, user_id: int) -> User:
        """Like find_by_id, raising UnknownIdError when missing."""
        user = self.find_by_id(user_id)
        if user is None:
            raise UnknownIdError()
        return user

    def _update_by_id(self, operation: str, user_id: int, values: dict) -> None:
        with self._storage(operation):
            updated = self._db.update(self._users, values, {"id": int(user_id)})
        if updated == 0:
            raise UnknownIdError()

    def update_password_hash(self, user_id: int, password_hash: str) -> None:
        self._update_by_id("update password", user_id, {"password": password_hash})

    def update_email(self, user_id: int, email: str) -> None:
        """
        Raises:
            UserAlreadyExistsError: If another account uses the address
        """
        with self._storage("update email", conflict=UserAlreadyExistsError):
            with self._db.transaction():
                owner = self._db.select_value(
                    f"SELECT id FROM {self._users} WHERE email = ?", (email,)
                )
                if owner is not None and int(owner) != int(user_id):
                    raise UserAlreadyExistsError()
                updated = self._db.update(self._users, {"email": email}, {"id": int(user_id)})
        if updated == 0:
            raise UnknownIdError()

    def set_status(self, user_id: int, status: Status) -> None:
        self._update_by_id("set status", user_id, {"status": int(status)})

    def set_verified(self, user_id: int, verified: bool = True) -> None:
        self._update_by_id("set verified", user_id, {"verified": int(verified)})

    def set_resettable(self, user_id: int, resettable: bool) -> None:
        self._update_by_id("set resettable", user_id, {"resettable": int(resettable)})

    def touch_last_login(self, user_id: int) -> None:
        self._update_by_id("record login", user_id, {"last_login": self._clock()})

    def bump_force_logout(self, user_id: int) -> int:
        """
        Increment the force-logout counter.

        Sessions carrying an older value are logged out at their next resync.

        Returns:
            The new counter value
        """
        with self._storage("force logout"):
            with self._db.transaction():
                updated = self._db.execute(
                    f"UPDATE {self._users} SET force_logout = force_logout + 1 WHERE id = ?",
                    (int(user_id),),
                )
                value = self._db.select_value(
                    f"SELECT force_logout FROM {self._users} WHERE id = ?", (int(user_id),)
                )
        if updated == 0:
            raise UnknownIdError()
        return int(value)

    def get_roles(self, user_id: int) -> Role:
        with self._storage("read roles"):
            mask = self._db.select_value(
                f"SELECT roles_mask FROM {self._users} WHERE id = ?", (int(user_id),)
            )
        if mask is None:
            raise UnknownIdError()
        return Role.from_mask(mask)

    def update_roles(self, user_id: int, roles: Role) -> None:
        """Overwrite the whole role set."""
        self._update_by_id("update roles", user_id, {"roles_mask": int(roles)})

    def modify_roles(
        self,
        column: str,
        value: object,
        modification: Callable[[Role], Role],
    ) -> Optional[Role]:
        """
        Read-modify-write the role set of the user where ``column = value``.

        The latest bitmask is read under a row lock immediately before the
        write, so concurrent grant and revoke calls never silently drop each
        other's change.

        Returns:
            The new role set, or None if no user matched
        """
        if column not in _LOOKUP_COLUMNS:
            raise ValueError(f"Unsupported lookup column: {column!r}")

        with self._storage("update roles"):
            with self._db.transaction():
                row = self._db.select_row(
                    f"SELECT id, roles_mask FROM {self._users} WHERE {column} = ?"
                    f"{self._db.for_update}",
                    (value,),
                )
                if row is None:
                    return None

                roles = modification(Role.from_mask(row["roles_mask"]))
                self._db.update(self._users, {"roles_mask": int(roles)}, {"id": int(row["id"])})
        return roles

    def delete(self, user_id: int) -> bool:
        """
        Permanently delete a user and everything it owns.

        WARNING: This is irreversible.

        Returns:
            Whether a user was deleted
        """
        with self._storage("delete user"):
            with self._db.transaction():
                for table in ("remembered", "confirmations", "resets"):
                    self._db.delete(self._config.table(table), {"user_id": int(user_id)})
                deleted = self._db.delete(self._users, {"id": int(user_id)})

        if deleted:
            self._log.info("Deleted user %d", user_id)
        return deleted > 0

    def delete_where(self, column: str, value: object) -> int:
        """
        Delete every user where ``column = value``.

        Returns:
            Number of deleted users
        """
        if column not in _LOOKUP_COLUMNS:
            raise ValueError(f"Unsupported lookup column: {column!r}")

        with self._storage("delete users"):
            with self._db.transaction():
                rows = self._db.select(
                    f"SELECT id FROM {self._users} WHERE {column} = ?", (value,)
                )
                deleted = sum(1 for row in rows if self.delete(int(row["id"])))
        return deleted
