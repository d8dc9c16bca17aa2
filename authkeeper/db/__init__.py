"""
Database module - Storage boundary for authkeeper.

Security Considerations:
- All statements are parameterized
- Driver error text never reaches library callers
- Multi-statement changes run inside one transaction
"""

from authkeeper.db.database import Database, Row
from authkeeper.db.errors import (
    DbError,
    IntegrityConstraintViolation,
    classify_sqlstate,
)
from authkeeper.db.schema import create_schema
from authkeeper.db.sqlite import SqliteDatabase

__all__ = [
    "Database",
    "Row",
    "DbError",
    "IntegrityConstraintViolation",
    "classify_sqlstate",
    "create_schema",
    "SqliteDatabase",
]
