"""
File-backed medium storing every key in one JSON document.

Layout of the document:

    {
      "version": 1,
      "entries": {"<key>": "<serialized text>", ...}
    }

Each mutation rewrites the whole document atomically, which suits the small
data sets a local cache and replay queue hold.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from ..exceptions import StorageIOError
from .base import StorageMedium
from .file_ops import read_json, remove_file, write_json_atomic

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class JsonFileMedium(StorageMedium):
    """Durable medium persisted as a single JSON file."""

    def __init__(self, path: str | Path):
        """Initialize the file medium.

        Args:
            path: Location of the JSON document (created on first write)
        """
        self.path = Path(path)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> str | None:
        entries = await self._load()
        return entries.get(key)

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            entries = await self._load()
            entries[key] = value
            await self._save(entries)

    async def remove(self, key: str) -> None:
        async with self._lock:
            entries = await self._load()
            if entries.pop(key, None) is not None:
                await self._save(entries)

    async def clear(self) -> None:
        async with self._lock:
            await remove_file(self.path)

    async def get_all_keys(self) -> list[str]:
        entries = await self._load()
        return list(entries)

    async def _load(self) -> dict[str, str]:
        document = await read_json(self.path)
        if document is None:
            return {}

        entries = document.get("entries")
        if not isinstance(entries, dict):
            raise StorageIOError(
                "parse_json",
                str(self.path),
                ValueError("document has no 'entries' object"),
            )
        if document.get("version", FORMAT_VERSION) != FORMAT_VERSION:
            logger.warning(
                "Unexpected storage format version %s in %s",
                document.get("version"),
                self.path,
            )
        return entries

    async def _save(self, entries: dict[str, str]) -> None:
        document: dict[str, Any] = {"version": FORMAT_VERSION, "entries": entries}
        await write_json_atomic(self.path, document)
