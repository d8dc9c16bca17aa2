"""
Driver Error Classification
===========================

Turns driver-specific exceptions into a small, driver-independent hierarchy
so that callers can react to e.g. a uniqueness violation without knowing
which database is in use.

PostgreSQL errors are classified by SQLSTATE: the two-character class has
the highest priority, the three-character subclass a medium priority, and
the full code the lowest.

References:
- https://www.postgresql.org/docs/current/errcodes-appendix.html
- https://en.wikibooks.org/wiki/Structured_Query_Language/SQLSTATE
"""

from __future__ import annotations

import sqlite3
from typing import Optional


class DbError(Exception):
    """Base class for classified driver errors."""

    def __init__(self, message: str = "", sqlstate: Optional[str] = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class IntegrityConstraintViolation(DbError):
    """A unique, foreign-key, not-null or check constraint rejected a write."""

    def __init__(
        self,
        message: str = "",
        sqlstate: Optional[str] = None,
        constraint: Optional[str] = None,
    ) -> None:
        super().__init__(message, sqlstate)
        self.constraint = constraint


class NoDatabaseSelectedError(DbError):
    pass


class DatabaseNotFoundError(DbError):
    pass


class WrongCredentialsError(DbError):
    pass


class SqlSyntaxError(DbError):
    pass


class TableNotFoundError(SqlSyntaxError):
    pass


class UnknownColumnError(SqlSyntaxError):
    pass


class BeginTransactionFailure(DbError):
    pass


class CommitTransactionFailure(DbError):
    pass


class RollBackTransactionFailure(DbError):
    pass


def classify_sqlstate(
    sqlstate: Optional[str],
    message: str = "",
    constraint: Optional[str] = None,
) -> DbError:
    """
    Map a SQLSTATE code to the most specific DbError.

    Args:
        sqlstate: Five-character SQLSTATE code (may be None)
        message: Driver message, kept for logging only
        constraint: Name of the violated constraint, if the driver reports it

    Returns:
        An (unraised) DbError instance
    """
    error_class = None
    error_subclass = None
    if sqlstate and len(sqlstate) == 5:
        error_class = sqlstate[:2]
        error_subclass = sqlstate[2:]

    if sqlstate == "3D000":
        return DatabaseNotFoundError(message, sqlstate)
    if error_class == "3D":
        return NoDatabaseSelectedError(message, sqlstate)
    if error_class == "23":
        return IntegrityConstraintViolation(message, sqlstate, constraint)
    if error_class == "28":
        return WrongCredentialsError(message, sqlstate)
    if error_class == "42":
        if error_subclass in ("S02", "P01"):
            return TableNotFoundError(message, sqlstate)
        if error_subclass in ("S22", "703"):
            return UnknownColumnError(message, sqlstate)
        return SqlSyntaxError(message, sqlstate)
    return DbError(message, sqlstate)


def classify_sqlite_error(error: sqlite3.Error) -> DbError:
    """Map a sqlite3 exception to the most specific DbError."""
    message = str(error)
    lowered = message.lower()

    if isinstance(error, sqlite3.IntegrityError):
        constraint = None
        # "UNIQUE constraint failed: users.email"
        if "constraint failed:" in lowered:
            constraint = message.split(":", 1)[1].strip()
        return IntegrityConstraintViolation(message, "23000", constraint)

    if isinstance(error, sqlite3.OperationalError):
        if "no such table" in lowered:
            return TableNotFoundError(message, "42S02")
        if "no such column" in lowered or "has no column named" in lowered:
            return UnknownColumnError(message, "42S22")
        if "syntax error" in lowered:
            return SqlSyntaxError(message, "42000")
        if "unknown database" in lowered:
            return DatabaseNotFoundError(message, "3D000")

    return DbError(message)
