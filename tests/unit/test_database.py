"""
Tests for the storage boundary.

These tests cover:
- SQLSTATE classification
- SQLite error classification
- Transactions and savepoints
- Schema creation
"""

import pytest

from authkeeper.db import SqliteDatabase, create_schema
from authkeeper.db.errors import (
    DatabaseNotFoundError,
    DbError,
    IntegrityConstraintViolation,
    NoDatabaseSelectedError,
    SqlSyntaxError,
    TableNotFoundError,
    UnknownColumnError,
    WrongCredentialsError,
    classify_sqlstate,
)


# =============================================================================
# Classification
# =============================================================================

class TestClassifySqlstate:
    """Tests for SQLSTATE mapping."""

    @pytest.mark.parametrize("sqlstate,expected", [
        ("23505", IntegrityConstraintViolation),
        ("23503", IntegrityConstraintViolation),
        ("3D000", DatabaseNotFoundError),
        ("3D001", NoDatabaseSelectedError),
        ("28P01", WrongCredentialsError),
        ("42P01", TableNotFoundError),
        ("42S02", TableNotFoundError),
        ("42703", UnknownColumnError),
        ("42S22", UnknownColumnError),
        ("42601", SqlSyntaxError),
        ("08006", DbError),
        (None, DbError),
    ])
    def test_mapping(self, sqlstate, expected):
        assert type(classify_sqlstate(sqlstate)) is expected

    def test_constraint_name_is_kept(self):
        error = classify_sqlstate("23505", "duplicate key", "users_email_key")
        assert error.constraint == "users_email_key"
        assert error.sqlstate == "23505"


class TestSqliteErrors:
    """Tests for errors raised through SqliteDatabase."""

    def test_unique_violation(self, db):
        values = {"email": "a@x.com", "password": "h", "registered": 0}
        db.insert("users", values)

        with pytest.raises(IntegrityConstraintViolation) as excinfo:
            db.insert("users", values)

        assert "users.email" in excinfo.value.constraint

    def test_missing_table(self, db):
        with pytest.raises(TableNotFoundError):
            db.select("SELECT * FROM nope")

    def test_missing_column(self, db):
        with pytest.raises(UnknownColumnError):
            db.select("SELECT nope FROM users")

    def test_syntax_error(self, db):
        with pytest.raises(SqlSyntaxError):
            db.execute("SELEKT 1")


# =============================================================================
# Transactions
# =============================================================================

class TestTransactions:
    """Tests for Database.transaction."""

    def _count(self, db) -> int:
        return db.select_value("SELECT COUNT(*) AS n FROM users")

    def _insert(self, db, email: str) -> int:
        return db.insert("users", {"email": email, "password": "h", "registered": 0})

    def test_commit_on_success(self, db):
        with db.transaction():
            self._insert(db, "a@x.com")

        assert self._count(db) == 1
        assert not db.in_transaction

    def test_rollback_on_exception(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction():
                self._insert(db, "a@x.com")
                raise RuntimeError("boom")

        assert self._count(db) == 0
        assert not db.in_transaction

    def test_nested_failure_only_undoes_inner_work(self, db):
        """A handled failure in a nested scope should roll back to its savepoint."""
        with db.transaction():
            self._insert(db, "a@x.com")
            try:
                with db.transaction():
                    self._insert(db, "b@x.com")
                    raise RuntimeError("inner")
            except RuntimeError:
                pass
            self._insert(db, "c@x.com")

        emails = [row["email"] for row in db.select("SELECT email FROM users ORDER BY id")]
        assert emails == ["a@x.com", "c@x.com"]

    def test_ids_are_never_reused(self, db):
        first = self._insert(db, "a@x.com")
        db.delete("users", {"id": first})

        assert self._insert(db, "b@x.com") > first

    def test_update_and_delete_report_rowcount(self, db):
        user_id = self._insert(db, "a@x.com")

        assert db.update("users", {"verified": 1}, {"id": user_id}) == 1
        assert db.update("users", {"verified": 1}, {"id": user_id + 1}) == 0
        assert db.delete("users", {"id": user_id}) == 1

    def test_column_names_are_checked(self, db):
        with pytest.raises(ValueError):
            db.update("users", {"verified = 1; --": 1}, {"id": 1})


# =============================================================================
# Schema
# =============================================================================

class TestSchema:
    """Tests for create_schema."""

    def test_idempotent(self, db, config):
        """Running create_schema twice should not fail."""
        create_schema(db, config)

    def test_cascade_on_user_delete(self, db):
        """Deleting a user row should remove its dependent rows."""
        user_id = db.insert("users", {"email": "a@x.com", "password": "h", "registered": 0})
        db.insert("users_remembered", {
            "user_id": user_id, "selector": "s", "token": "t", "expires": 0,
        })

        db.delete("users", {"id": user_id})

        assert db.select_value("SELECT COUNT(*) AS n FROM users_remembered") == 0

    def test_prefixed_tables(self):
        from authkeeper.core.config import AuthConfig, DatabaseConfig

        config = AuthConfig(database=DatabaseConfig(table_prefix="app_"))
        db = SqliteDatabase(":memory:")
        create_schema(db, config)

        assert db.select("SELECT * FROM app_users_throttling") == []
        db.close()
