"""Database factory functions for creating database instances."""

import os
from pathlib import Path
from typing import Optional

from conti.database.sqlalchemy_db import SQLAlchemyDatabase


def default_database_path() -> str:
    """Return CONTI_DB_PATH, or ~/.conti/conti.db when unset."""
    database_path = os.environ.get("CONTI_DB_PATH")
    if database_path:
        return database_path
    db_dir = Path.home() / ".conti"
    db_dir.mkdir(exist_ok=True)
    return str(db_dir / "conti.db")


def create_sqlite_database(
    database_path: Optional[str] = None, max_attempts: Optional[int] = None
) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. If None, checks CONTI_DB_PATH
            environment variable, then defaults to ~/.conti/conti.db
        max_attempts: Retry bound for atomic units (CONTI_TX_MAX_ATTEMPTS when None)

    Returns:
        SQLAlchemyDatabase instance configured for SQLite through aiosqlite
    """
    if database_path is None:
        database_path = default_database_path()

    database_url = f"sqlite+aiosqlite:///{database_path}"
    return SQLAlchemyDatabase(database_url, max_attempts=max_attempts)
