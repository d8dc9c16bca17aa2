"""
SQL Abstraction
===============

A deliberately small database interface: parameterized queries returning
plain dicts, row-count returning writes, and a nestable transaction scope.

Security Notes:
    - Every value travels as a bound parameter, never through string formatting
    - Column names passed to insert/update/delete must be plain identifiers
    - Table names come from AuthConfig, which validates them
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Final, Iterator, Mapping, Optional, Pattern, Sequence

from authkeeper.db.errors import (
    BeginTransactionFailure,
    CommitTransactionFailure,
    DbError,
    RollBackTransactionFailure,
)


Row = dict[str, Any]

_IDENTIFIER: Final[Pattern[str]] = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid column name: {name!r}")
    return name


class Database(ABC):
    """
    Base class for database handles.

    Subclasses provide the connection, the driver error classification and a
    handful of dialect hooks. Statements always use ``?`` placeholders;
    subclasses translate them when their driver expects another style.

    Usage:
        with db.transaction():
            user_id = db.insert("users", {"email": "a@x.com"})
            db.update("users", {"verified": 1}, {"id": user_id})

        row = db.select_row("SELECT * FROM users WHERE id = ?", (user_id,))
    """

    #: Dialect name used where DDL differs between backends
    dialect: str = "generic"
    #: Appended to SELECTs that must lock the returned rows
    for_update: str = ""
    #: DDL for an autoincrementing integer primary key that never reuses ids
    autoincrement_primary_key: str = "INTEGER PRIMARY KEY"

    def __init__(self) -> None:
        self._connection: Any = None
        self._depth = 0
        self._log = logging.getLogger("authkeeper.db")

    @abstractmethod
    def _connect(self) -> Any:
        """Open a connection in autocommit mode."""

    @abstractmethod
    def _classify(self, error: Exception) -> Optional[DbError]:
        """Return a DbError for driver exceptions, None for anything else."""

    @abstractmethod
    def _insert_returning_id(self, sql: str, params: Sequence[Any]) -> int:
        """Run an INSERT statement and return the generated id."""

    def _begin_statement(self) -> str:
        return "BEGIN"

    def _translate(self, sql: str) -> str:
        return sql

    @property
    def connection(self) -> Any:
        """Lazily opened driver connection."""
        if self._connection is None:
            self._connection = self._connect()
        return self._connection

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _cursor(self, sql: str, params: Sequence[Any] = ()) -> Any:
        try:
            cursor = self.connection.cursor()
            cursor.execute(self._translate(sql), tuple(params))
            return cursor
        except Exception as e:
            classified = self._classify(e)
            if classified is None:
                raise
            raise classified from e

    @staticmethod
    def _as_dict(row: Any) -> Row:
        return dict(row)

    def select(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Run a query and return every row."""
        cursor = self._cursor(sql, params)
        try:
            return [self._as_dict(row) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def select_row(self, sql: str, params: Sequence[Any] = ()) -> Optional[Row]:
        """Run a query and return its first row, or None."""
        cursor = self._cursor(sql, params)
        try:
            row = cursor.fetchone()
            return self._as_dict(row) if row is not None else None
        finally:
            cursor.close()

    def select_value(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Run a query and return the first column of its first row, or None."""
        row = self.select_row(sql, params)
        if row is None:
            return None
        return next(iter(row.values()))

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the number of affected rows."""
        cursor = self._cursor(sql, params)
        try:
            return cursor.rowcount
        finally:
            cursor.close()

    def insert(self, table: str, values: Mapping[str, Any]) -> int:
        """Insert one row and return its generated id."""
        columns = ", ".join(_check_identifier(column) for column in values)
        placeholders = ", ".join("?" for _ in values)
        sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        return self._insert_returning_id(sql, list(values.values()))

    def update(self, table: str, values: Mapping[str, Any], where: Mapping[str, Any]) -> int:
        """Update matching rows and return how many were changed."""
        assignments = ", ".join(f"{_check_identifier(column)} = ?" for column in values)
        conditions = " AND ".join(f"{_check_identifier(column)} = ?" for column in where)
        sql = f"UPDATE {table} SET {assignments} WHERE {conditions}"
        return self.execute(sql, [*values.values(), *where.values()])

    def delete(self, table: str, where: Mapping[str, Any]) -> int:
        """Delete matching rows and return how many were removed."""
        conditions = " AND ".join(f"{_check_identifier(column)} = ?" for column in where)
        return self.execute(f"DELETE FROM {table} WHERE {conditions}", list(where.values()))

    def lock_table(self, table: str) -> None:
        """Block concurrent writers to ``table`` until the transaction ends."""

    def _raw(self, sql: str, failure: type[DbError]) -> None:
        try:
            self.connection.cursor().execute(sql)
        except Exception as e:
            if self._classify(e) is None:
                raise
            raise failure(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """
        Transactional scope: commit on success, roll back on any exception.

        Nested scopes become savepoints, so an inner failure that the caller
        handles only undoes the inner work.
        """
        savepoint = f"sp_{self._depth}"
        if self._depth == 0:
            self._raw(self._begin_statement(), BeginTransactionFailure)
        else:
            self._raw(f"SAVEPOINT {savepoint}", BeginTransactionFailure)
        self._depth += 1

        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._raw("ROLLBACK", RollBackTransactionFailure)
            else:
                self._raw(f"ROLLBACK TO SAVEPOINT {savepoint}", RollBackTransactionFailure)
                self._raw(f"RELEASE SAVEPOINT {savepoint}", RollBackTransactionFailure)
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._raw("COMMIT", CommitTransactionFailure)
            else:
                self._raw(f"RELEASE SAVEPOINT {savepoint}", CommitTransactionFailure)
