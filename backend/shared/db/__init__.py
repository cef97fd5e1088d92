"""SQLite database layer: connection management and repository implementations."""

from shared.db.connection import Database, namespaced_path
from shared.db.match_repository import SqliteMatchRepository

__all__ = [
    "Database",
    "SqliteMatchRepository",
    "namespaced_path",
]
