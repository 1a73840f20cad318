"""Database factory functions for creating database instances."""

from typing import Optional

from finboard.config import default_database_path, get_settings
from finboard.database.sqlalchemy_db import SQLAlchemyDatabase


def create_sqlite_database(database_path: Optional[str] = None) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to the SQLite file. Falls back to the configured
            ``FINBOARD_DB_PATH``, then to ~/.finboard/finboard.db

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    database_path = database_path or get_settings().database_path or default_database_path()
    return SQLAlchemyDatabase(f"sqlite:///{database_path}")
