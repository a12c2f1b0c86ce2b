"""Database layer for conti."""

from conti.database.base import Database, StoreTransaction
from conti.database.changes import LiveQuery
from conti.database.factories import create_sqlite_database

__all__ = ["Database", "StoreTransaction", "LiveQuery", "create_sqlite_database"]
