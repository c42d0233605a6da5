"""
SQLite backing medium.

Stores serialized records in a single key-value table via aiosqlite.
Suited to larger stores and to sharing one database file with other
application tables.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path

import aiosqlite

from ..exceptions import StorageConnectionError, StorageIOError
from .base import StorageMedium

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "offline_kv"


@dataclass
class SQLiteConfig:
    """Configuration for the SQLite medium."""

    db_path: str | Path = ":memory:"
    table_name: str = DEFAULT_TABLE

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        return cls(
            db_path=os.environ.get("OFFLINE_STORAGE_SQLITE_PATH", ":memory:"),
            table_name=os.environ.get("OFFLINE_STORAGE_SQLITE_TABLE", DEFAULT_TABLE),
        )


class SQLiteMedium(StorageMedium):
    """
    Key-value medium on top of SQLite.

    Features:
    - Single file database (or in-memory for tests)
    - Insertion-ordered key enumeration (by rowid)
    - Upsert semantics for set
    """

    def __init__(self, config: SQLiteConfig | None = None):
        self.config = config or SQLiteConfig()
        if not self.config.table_name.isidentifier():
            raise ValueError(f"Invalid table name: {self.config.table_name!r}")
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteMedium:
        """Create and initialize a SQLite medium."""
        medium = cls(config)
        await medium.initialize()
        return medium

    async def initialize(self) -> None:
        """Open the connection and ensure the table exists."""
        if self._initialized:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            await self.conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.config.table_name} (
                    key TEXT NOT NULL PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            await self.conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StorageConnectionError(str(self.config.db_path), e) from e

        self._initialized = True
        logger.info("SQLite medium ready at %s", self.config.db_path)

    async def close(self) -> None:
        if self.conn is not None:
            await self.conn.close()
            self.conn = None
            self._initialized = False

    def _connection(self, operation: str) -> aiosqlite.Connection:
        if self.conn is None:
            raise StorageIOError(operation, cause=RuntimeError("SQLite medium not initialized"))
        return self.conn

    async def get(self, key: str) -> str | None:
        conn = self._connection("get")
        try:
            async with conn.execute(
                f"SELECT value FROM {self.config.table_name} WHERE key = ?", (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageIOError("get", key, e) from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = self._connection("set")
        try:
            await conn.execute(
                f"""
                INSERT INTO {self.config.table_name} (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError("set", key, e) from e

    async def remove(self, key: str) -> None:
        conn = self._connection("remove")
        try:
            await conn.execute(f"DELETE FROM {self.config.table_name} WHERE key = ?", (key,))
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError("remove", key, e) from e

    async def clear(self) -> None:
        conn = self._connection("clear")
        try:
            await conn.execute(f"DELETE FROM {self.config.table_name}")
            await conn.commit()
        except sqlite3.Error as e:
            raise StorageIOError("clear", cause=e) from e

    async def get_all_keys(self) -> list[str]:
        conn = self._connection("get_all_keys")
        try:
            async with conn.execute(
                f"SELECT key FROM {self.config.table_name} ORDER BY rowid"
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageIOError("get_all_keys", cause=e) from e
        return [row[0] for row in rows]
