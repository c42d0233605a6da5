"""
Durable key-value store.

The single source of truth for persisted records. Every record is written
through an in-process read-through cache to a backing medium, stamped with
its write time and an optional expiry, and optionally obfuscated.

The in-process cache is best-effort acceleration: when a medium write fails
the cached record is kept, so reads may briefly disagree with the medium
until the key is invalidated or reloaded.
"""

from __future__ import annotations

import asyncio
import copy
import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from .backends.base import StorageMedium
from .codec import ObfuscationCodec
from .exceptions import (
    ClearError,
    PersistError,
    RemoveError,
    StorageIOError,
)
from .logging_utils import get_storage_logger
from .utils import Clock, is_expired, now_ms

logger = get_storage_logger("store")

# Store key holding the persisted replay queue snapshot
QUEUE_STORAGE_KEY = "__sync_queue"

# Keys owned by internal components rather than callers
RESERVED_KEYS = frozenset({QUEUE_STORAGE_KEY})


@dataclass
class StoredRecord:
    """One durable entry.

    Attributes:
        value: Payload, or its obfuscated text when stored obfuscated
        written_at: Write time in epoch milliseconds
        expiry_ms: Optional lifetime in milliseconds, measured from written_at
    """

    value: Any
    written_at: int
    expiry_ms: int | None = None

    def is_expired(self, now: int) -> bool:
        return is_expired(self.written_at, self.expiry_ms, now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted wire form."""
        return {
            "value": self.value,
            "writtenAt": self.written_at,
            "expiryMs": self.expiry_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredRecord:
        """Create from the persisted wire form."""
        return cls(
            value=data.get("value"),
            written_at=int(data["writtenAt"]),
            expiry_ms=data.get("expiryMs"),
        )

    def serialize(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def deserialize(cls, text: str) -> StoredRecord:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("stored record is not a JSON object")
        return cls.from_dict(data)


class DurableStore:
    """Key-value persistence with read-through caching and lazy expiry.

    Writes always go to both the in-process cache and the medium, and medium
    failures are raised to the caller. Reads prefer the in-process cache and
    return None for absent, expired or unreadable records.
    """

    def __init__(
        self,
        medium: StorageMedium,
        codec: ObfuscationCodec | None = None,
        clock: Clock | None = None,
        serialize_writes: bool = False,
    ):
        """Initialize the store.

        Args:
            medium: Backing persistent medium
            codec: Codec used for obfuscated reads and writes
            clock: Millisecond clock (defaults to wall-clock time)
            serialize_writes: Serialize set/remove calls per key. When off,
                concurrent writers to one key race and the last to resume wins.
        """
        self.medium = medium
        self.codec = codec or ObfuscationCodec()
        self._clock = clock or now_ms
        self._memory: dict[str, StoredRecord] = {}
        self._serialize_writes = serialize_writes
        # key -> (lock, number of tasks holding or waiting on it)
        self._key_locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def now(self) -> int:
        """Current time according to the store clock."""
        return self._clock()

    async def set(
        self,
        key: str,
        value: Any,
        obfuscate: bool = False,
        expiry_ms: int | None = None,
    ) -> None:
        """Write a value.

        Args:
            key: Storage key
            value: JSON-serializable value
            obfuscate: Obfuscate the value through the codec before storing
            expiry_ms: Lifetime in milliseconds, or None to never expire

        Raises:
            NotInitializedError: If obfuscate is requested on an uninitialized codec
            TypeError: If the value is not JSON-serializable
            PersistError: If the medium write fails (the in-process cache
                still holds the new record)
        """
        async with self._write_guard(key):
            written_at = self.now()
            previous = self._memory.get(key)
            if previous is not None and previous.written_at > written_at:
                written_at = previous.written_at

            record = StoredRecord(
                value=self.codec.encode(value) if obfuscate else value,
                written_at=written_at,
                expiry_ms=expiry_ms,
            )
            text = record.serialize()
            # Cache the parsed text so callers never share objects with the cache
            self._memory[key] = StoredRecord.deserialize(text)

            try:
                await self.medium.set(key, text)
            except (StorageIOError, OSError) as e:
                logger.error("Error storing data for key %s: %s", key, e)
                raise PersistError(key, e) from e

    async def get(self, key: str, obfuscate: bool = False) -> Any | None:
        """Read a value, evicting it if it has expired.

        Args:
            key: Storage key
            obfuscate: Decode the stored value through the codec

        Returns:
            The value, or None when absent, expired or unreadable

        Raises:
            DecodeError: If an obfuscated value cannot be decoded
            NotInitializedError: If decoding is requested on an uninitialized codec
        """
        record = await self.get_record(key)
        if record is None:
            return None

        if record.is_expired(self.now()):
            await self._expire(key, record)
            return None

        if not obfuscate:
            return copy.deepcopy(record.value)
        return self.codec.decode(record.value)

    async def get_record(self, key: str) -> StoredRecord | None:
        """Load the raw record for a key without evaluating expiry.

        The returned record is the in-process cached instance; treat it as read-only.
        """
        record = self._memory.get(key)
        if record is not None:
            return record

        try:
            text = await self.medium.get(key)
        except (StorageIOError, OSError) as e:
            logger.error("Error retrieving data for key %s: %s", key, e)
            return None

        if text is None:
            return None

        try:
            record = StoredRecord.deserialize(text)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Ignoring unreadable record for key %s: %s", key, e)
            return None

        self._memory[key] = record
        return record

    async def remove(self, key: str) -> None:
        """Delete a key from the in-process cache and the medium.

        Raises:
            RemoveError: If the medium delete fails
        """
        async with self._write_guard(key):
            self._memory.pop(key, None)
            try:
                await self.medium.remove(key)
            except (StorageIOError, OSError) as e:
                logger.error("Error removing data for key %s: %s", key, e)
                raise RemoveError(key, e) from e

    async def clear(self, keep: frozenset[str] | set[str] = frozenset()) -> None:
        """Remove every record.

        Args:
            keep: Keys to leave in place; when given, the other keys are
                removed one by one instead of wiping the medium

        Raises:
            ClearError: If the medium cannot be cleared or enumerated
        """
        try:
            if not keep:
                self._memory.clear()
                await self.medium.clear()
                return

            for key in await self.medium.get_all_keys():
                if key not in keep:
                    self._memory.pop(key, None)
                    await self.medium.remove(key)
            for key in list(self._memory):
                if key not in keep:
                    del self._memory[key]
        except (StorageIOError, OSError) as e:
            logger.error("Error clearing storage: %s", e)
            raise ClearError(e) from e

    async def get_all_keys(self) -> list[str]:
        """Enumerate keys known to the medium.

        Returns:
            Keys in medium enumeration order, or an empty list if the
            medium cannot be enumerated
        """
        try:
            return list(await self.medium.get_all_keys())
        except (StorageIOError, OSError) as e:
            logger.error("Error getting keys: %s", e)
            return []

    async def has_key(self, key: str) -> bool:
        """Check whether the medium holds a key, ignoring expiry."""
        try:
            return await self.medium.get(key) is not None
        except (StorageIOError, OSError) as e:
            logger.error("Error checking key %s: %s", key, e)
            return False

    def invalidate(self, key: str | None = None) -> None:
        """Drop in-process cache entries so the next read reloads from the medium.

        Args:
            key: Key to drop, or None to drop every cached record
        """
        if key is None:
            self._memory.clear()
        else:
            self._memory.pop(key, None)

    async def _expire(self, key: str, record: StoredRecord) -> None:
        logger.debug("Record for key %s expired (written_at=%d)", key, record.written_at)
        try:
            await self.remove(key)
        except RemoveError:
            # Already logged by remove; the record stays hidden from this read
            pass

    @asynccontextmanager
    async def _write_guard(self, key: str) -> AsyncIterator[None]:
        if not self._serialize_writes:
            yield
            return

        lock, users = self._key_locks.get(key, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._key_locks[key] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            lock, users = self._key_locks[key]
            if users == 1:
                del self._key_locks[key]
            else:
                self._key_locks[key] = (lock, users - 1)

