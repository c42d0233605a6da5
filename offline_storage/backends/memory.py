"""In-memory backing medium for tests and ephemeral stores."""

from __future__ import annotations

from .base import StorageMedium


class InMemoryMedium(StorageMedium):
    """Dict-backed medium. Contents are lost when the process exits.

    Insertion order is preserved, so key enumeration follows first-write order.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def clear(self) -> None:
        self._data.clear()

    async def get_all_keys(self) -> list[str]:
        return list(self._data)

    def snapshot(self) -> dict[str, str]:
        """Copy of the raw stored text, keyed by storage key."""
        return dict(self._data)
