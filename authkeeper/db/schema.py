"""
Schema
======

DDL for the five tables the library uses. ``create_schema`` is idempotent
and can run at every application start.
"""

from __future__ import annotations

from authkeeper.core.config import AuthConfig
from authkeeper.db.database import Database


def _index(db: Database, config: AuthConfig, name: str, table: str, columns: str) -> str:
    prefix = config.database.table_prefix
    schema = config.database.schema

    if db.dialect == "sqlite" and schema:
        # SQLite qualifies the index name, not the table
        return (
            f"CREATE INDEX IF NOT EXISTS {schema}.{prefix}{name} "
            f"ON {config.table(table, qualified=False)} ({columns})"
        )
    return f"CREATE INDEX IF NOT EXISTS {prefix}{name} ON {config.table(table)} ({columns})"


def _references(db: Database, config: AuthConfig) -> str:
    if db.dialect == "sqlite":
        # Foreign keys in SQLite cannot name a schema
        return config.table("users", qualified=False)
    return config.table("users")


def schema_statements(db: Database, config: AuthConfig) -> list[str]:
    """Return the CREATE statements for every table and index."""
    pk = db.autoincrement_primary_key
    users = config.table("users")
    references = _references(db, config)

    return [
        f"""
        CREATE TABLE IF NOT EXISTS {users} (
            id {pk},
            email VARCHAR(249) NOT NULL UNIQUE,
            password VARCHAR(255) NOT NULL,
            username VARCHAR(100) DEFAULT NULL,
            status SMALLINT NOT NULL DEFAULT 0,
            verified SMALLINT NOT NULL DEFAULT 0,
            resettable SMALLINT NOT NULL DEFAULT 1,
            roles_mask BIGINT NOT NULL DEFAULT 0,
            registered BIGINT NOT NULL,
            last_login BIGINT DEFAULT NULL,
            force_logout INTEGER NOT NULL DEFAULT 0
        )
        """,
        _index(db, config, "users_username", "users", "username"),
        f"""
        CREATE TABLE IF NOT EXISTS {config.table("confirmations")} (
            id {pk},
            user_id BIGINT NOT NULL REFERENCES {references} (id) ON DELETE CASCADE,
            email VARCHAR(249) NOT NULL,
            selector VARCHAR(16) NOT NULL UNIQUE,
            token VARCHAR(255) NOT NULL,
            expires BIGINT NOT NULL
        )
        """,
        _index(db, config, "confirmations_email_expires", "confirmations", "email, expires"),
        _index(db, config, "confirmations_user_id", "confirmations", "user_id"),
        f"""
        CREATE TABLE IF NOT EXISTS {config.table("remembered")} (
            id {pk},
            user_id BIGINT NOT NULL REFERENCES {references} (id) ON DELETE CASCADE,
            selector VARCHAR(24) NOT NULL UNIQUE,
            token VARCHAR(255) NOT NULL,
            expires BIGINT NOT NULL
        )
        """,
        _index(db, config, "remembered_user_id", "remembered", "user_id"),
        f"""
        CREATE TABLE IF NOT EXISTS {config.table("resets")} (
            id {pk},
            user_id BIGINT NOT NULL REFERENCES {references} (id) ON DELETE CASCADE,
            selector VARCHAR(20) NOT NULL UNIQUE,
            token VARCHAR(255) NOT NULL,
            expires BIGINT NOT NULL
        )
        """,
        _index(db, config, "resets_user_expires", "resets", "user_id, expires"),
        f"""
        CREATE TABLE IF NOT EXISTS {config.table("throttling")} (
            bucket VARCHAR(44) PRIMARY KEY,
            attempts INTEGER NOT NULL,
            first_attempt_at BIGINT NOT NULL,
            cooldown_until BIGINT NOT NULL DEFAULT 0
        )
        """,
        _index(db, config, "throttling_cooldown", "throttling", "cooldown_until"),
    ]


def create_schema(db: Database, config: AuthConfig) -> None:
    """Create all tables and indexes if they don't exist."""
    with db.transaction():
        for statement in schema_statements(db, config):
            db.execute(statement)
