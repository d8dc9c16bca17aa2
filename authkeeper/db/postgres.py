"""
PostgreSQL Backend
==================

``Database`` implementation on ``psycopg2``.

Rows come back through ``RealDictCursor``. The connection runs in
autocommit mode; ``Database.transaction`` issues BEGIN/COMMIT itself so that
SQLite and PostgreSQL behave the same way.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence

import psycopg2
import psycopg2.extras

from authkeeper.db.database import Database
from authkeeper.db.errors import DbError, classify_sqlstate


class PostgresDatabase(Database):
    """
    PostgreSQL database handle.

    Usage:
        db = PostgresDatabase(os.environ["DATABASE_URL"], sslmode="require")
    """

    dialect = "postgresql"
    for_update = " FOR UPDATE"
    autoincrement_primary_key = "BIGSERIAL PRIMARY KEY"

    def __init__(self, dsn: str, **connect_kwargs: Any) -> None:
        """
        Args:
            dsn: libpq connection string or URL
            connect_kwargs: Extra keyword arguments for psycopg2.connect
        """
        super().__init__()
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs

    def _connect(self) -> Any:
        conn = psycopg2.connect(
            self._dsn,
            cursor_factory=psycopg2.extras.RealDictCursor,
            **self._connect_kwargs,
        )
        conn.autocommit = True
        return conn

    def _classify(self, error: Exception) -> Optional[DbError]:
        if not isinstance(error, psycopg2.Error):
            return None
        constraint = None
        diag = getattr(error, "diag", None)
        if diag is not None:
            constraint = diag.constraint_name
        return classify_sqlstate(error.pgcode, str(error), constraint)

    def _translate(self, sql: str) -> str:
        # Statements never contain literal question marks or percent signs
        return sql.replace("?", "%s")

    def _insert_returning_id(self, sql: str, params: Sequence[Any]) -> int:
        cursor = self._cursor(f"{sql} RETURNING id", params)
        try:
            return int(cursor.fetchone()["id"])
        finally:
            cursor.close()

    def lock_table(self, table: str) -> None:
        self.execute(f"LOCK TABLE {table} IN SHARE ROW EXCLUSIVE MODE")

    def __repr__(self) -> str:
        return "PostgresDatabase(dsn=[REDACTED])"
