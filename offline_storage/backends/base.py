"""
Abstract backing medium interface.

Defines the contract every persistent key-value substrate must implement.
The durable store is the only component that talks to a medium.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class StorageMedium(ABC):
    """Asynchronous text key-value medium.

    Values are opaque UTF-8 text; serialization is the caller's concern.
    Implementations raise StorageIOError when an operation fails.
    """

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Read the text stored under a key.

        Args:
            key: Storage key

        Returns:
            Stored text, or None if the key is absent
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store text under a key, replacing any previous value."""
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove a key. Removing an absent key is not an error."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""
        ...

    @abstractmethod
    async def get_all_keys(self) -> list[str]:
        """Enumerate stored keys."""
        ...

    async def close(self) -> None:
        """Release resources held by the medium."""
        return None

    async def __aenter__(self) -> StorageMedium:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
