"""Database package for algolia_indexlog."""

from __future__ import annotations

__all__ = [
    "Database",
    "DuckDBDatabase",
    "MySQLDatabase",
    "PostgreSQLDatabase",
    "SQLiteDatabase",
    "create_database",
    # Repositories
    "AccessRepository",
    "BaseRepository",
    "EventRepository",
    "RaceRepository",
    "SessionEndRepository",
]

from .database import (
    Database,
    DuckDBDatabase,
    MySQLDatabase,
    PostgreSQLDatabase,
    SQLiteDatabase,
    create_database,
)
from .repository import (
    AccessRepository,
    BaseRepository,
    EventRepository,
    RaceRepository,
    SessionEndRepository,
)
