"""
SQLite Backend
==============

``Database`` implementation on the standard library ``sqlite3`` module.

Transactions start with ``BEGIN IMMEDIATE`` so that the write lock is taken
up front: two concurrent read-modify-write sequences (e.g. throttle
increments) serialize instead of both reading the same counter.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional, Sequence

from authkeeper.db.database import Database
from authkeeper.db.errors import DbError, classify_sqlite_error


class SqliteDatabase(Database):
    """
    SQLite database handle.

    Usage:
        db = SqliteDatabase(":memory:")
        db = SqliteDatabase(Path("/var/lib/app/auth.db"))
    """

    dialect = "sqlite"
    autoincrement_primary_key = "INTEGER PRIMARY KEY AUTOINCREMENT"

    def __init__(self, path: Path | str = ":memory:", timeout: float = 5.0) -> None:
        """
        Args:
            path: Database file path, or ":memory:"
            timeout: Seconds to wait for a competing writer's lock
        """
        super().__init__()
        self._path = str(path)
        self._timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        if self._path != ":memory:":
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)

        # isolation_level=None: autocommit; transactions are explicit
        conn = sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        # Enable foreign keys
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _classify(self, error: Exception) -> Optional[DbError]:
        if isinstance(error, sqlite3.Error):
            return classify_sqlite_error(error)
        return None

    def _begin_statement(self) -> str:
        return "BEGIN IMMEDIATE"

    def _insert_returning_id(self, sql: str, params: Sequence[Any]) -> int:
        cursor = self._cursor(sql, params)
        try:
            return int(cursor.lastrowid)
        finally:
            cursor.close()

    def __repr__(self) -> str:
        return f"SqliteDatabase(path={self._path!r})"
