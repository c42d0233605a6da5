"""
Sync-aware storage facade.

Combines the durable store, the bounded cache and the replay queue for
offline-first operation:
- Writes go to local storage first (through the cache when requested)
- Mutations made with sync=True are queued for replay to the remote sink
- Reads prefer the cache when requested, falling back to the store
"""

from __future__ import annotations

from typing import Any

from .cache import BoundedCache
from .store import DurableStore
from .sync.queue import OperationKind, ReplayQueue


class SyncedStorage:
    """Local-first storage that records mutations for remote replay."""

    def __init__(self, store: DurableStore, cache: BoundedCache, queue: ReplayQueue):
        self.store = store
        self.cache = cache
        self.queue = queue

    async def get(self, key: str, obfuscate: bool = False, cache: bool = False) -> Any | None:
        """Read a value, checking the bounded cache first when requested.

        Args:
            key: Storage key
            obfuscate: Decode a value written with obfuscation (store reads only;
                cache reads follow the cache configuration)
            cache: Look the key up through the bounded cache first
        """
        if cache:
            value = await self.cache.get(key)
            if value is not None:
                return value
        return await self.store.get(key, obfuscate=obfuscate)

    async def set(
        self,
        key: str,
        value: Any,
        obfuscate: bool = False,
        expiry_ms: int | None = None,
        cache: bool = False,
        sync: bool = False,
    ) -> None:
        """Write a value locally and optionally queue it for replay.

        Args:
            key: Storage key
            value: JSON-serializable value
            obfuscate: Obfuscate the stored value (ignored for cached writes,
                which follow the cache configuration)
            expiry_ms: Lifetime in milliseconds (cached writes fall back to
                the cache default)
            cache: Write through the bounded cache, applying its size policy
            sync: Queue the mutation for the remote sink
        """
        if cache:
            await self.cache.set(key, value, custom_expiry_ms=expiry_ms)
        else:
            await self.store.set(key, value, obfuscate=obfuscate, expiry_ms=expiry_ms)

        if sync:
            await self.queue.enqueue_operation(key, value, OperationKind.SET)

    async def remove(self, key: str, sync: bool = False) -> None:
        """Remove a value locally and optionally queue the removal for replay."""
        await self.store.remove(key)

        if sync:
            await self.queue.enqueue_operation(key, None, OperationKind.REMOVE)
