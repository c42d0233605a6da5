"""
Backing persistent media.

Provides the StorageMedium interface and implementations:
- InMemoryMedium: dict-backed, for tests and ephemeral stores
- JsonFileMedium: one atomically rewritten JSON document
- SQLiteMedium: key-value table via aiosqlite

Example:
    >>> from offline_storage.backends import SQLiteMedium, SQLiteConfig
    >>> medium = await SQLiteMedium.create(SQLiteConfig(db_path="store.db"))
"""

from .base import StorageMedium
from .json_file import JsonFileMedium
from .memory import InMemoryMedium
from .sqlite import SQLiteConfig, SQLiteMedium

__all__ = [
    "StorageMedium",
    "InMemoryMedium",
    "JsonFileMedium",
    "SQLiteMedium",
    "SQLiteConfig",
]
