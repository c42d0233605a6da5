"""
Size-bounded cache over the durable store.

Enforces a maximum entry count with an evict-one-on-overflow policy: each
insert of a new key into a full cache removes the single record with the
oldest write time. Under bursty inserts the cache can stay above the bound;
the policy trades a strict bound for one scan per overflowing insert.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any

from .exceptions import ValidationError
from .logging_utils import get_storage_logger
from .store import RESERVED_KEYS, DurableStore

logger = get_storage_logger("cache")

DEFAULT_EXPIRY_MS = 60 * 60 * 1000  # 1 hour
DEFAULT_MAX_ENTRIES = 100


@dataclass(frozen=True)
class CacheConfig:
    """Live configuration of a bounded cache."""

    expiry_ms: int = DEFAULT_EXPIRY_MS
    max_entries: int = DEFAULT_MAX_ENTRIES
    obfuscate: bool = False

    @classmethod
    def from_env(cls) -> CacheConfig:
        """Create config from environment variables.

        Environment Variables:
            OFFLINE_STORAGE_CACHE_EXPIRY_MS: Default record lifetime
            OFFLINE_STORAGE_CACHE_MAX_ENTRIES: Maximum entry count
            OFFLINE_STORAGE_CACHE_OBFUSCATE: "true" to obfuscate cached values
        """
        return cls(
            expiry_ms=int(os.environ.get("OFFLINE_STORAGE_CACHE_EXPIRY_MS", DEFAULT_EXPIRY_MS)),
            max_entries=int(
                os.environ.get("OFFLINE_STORAGE_CACHE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES)
            ),
            obfuscate=os.environ.get("OFFLINE_STORAGE_CACHE_OBFUSCATE", "").lower() == "true",
        )


@dataclass(frozen=True)
class CacheConfigUpdate:
    """Partial configuration change. Fields left as None are kept."""

    expiry_ms: int | None = None
    max_entries: int | None = None
    obfuscate: bool | None = None


_FIELD_TYPES: dict[str, type] = {"expiry_ms": int, "max_entries": int, "obfuscate": bool}


def merge_cache_config(base: CacheConfig, update: CacheConfigUpdate) -> CacheConfig:
    """Merge a partial update into a configuration.

    Args:
        base: Current configuration
        update: Fields to change

    Returns:
        A new configuration; base is left untouched

    Raises:
        ValidationError: If a provided field has the wrong type
    """
    changes: dict[str, Any] = {}
    for f in fields(update):
        value = getattr(update, f.name)
        if value is None:
            continue
        expected = _FIELD_TYPES[f.name]
        # bool is an int subclass; keep the two apart
        if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
            raise ValidationError(f.name, f"expected {expected.__name__}", value)
        changes[f.name] = value
    return replace(base, **changes)


class BoundedCache:
    """Policy layer over a DurableStore enforcing a maximum entry count.

    Features:
    - Oldest-written eviction, one record per overflowing insert
    - Default expiry applied to every write
    - Optional obfuscation of cached values
    """

    def __init__(self, store: DurableStore, config: CacheConfig | None = None):
        """
        Initialize the cache.

        Args:
            store: Store holding the cached records
            config: Initial configuration (defaults: 1 hour, 100 entries, no obfuscation)
        """
        self.store = store
        self._config = config or CacheConfig()

    @property
    def config(self) -> CacheConfig:
        return self._config

    def update_configuration(
        self, update: CacheConfigUpdate | None = None, **changes: Any
    ) -> CacheConfig:
        """Merge new options into the live configuration.

        Takes effect on the next operation; existing records keep the expiry
        they were written with.

        Args:
            update: Partial configuration
            **changes: Alternatively, expiry_ms / max_entries / obfuscate as keywords

        Returns:
            The resulting configuration
        """
        if update is None:
            unknown = set(changes) - set(_FIELD_TYPES)
            if unknown:
                raise ValidationError(
                    ", ".join(sorted(unknown)), "unknown cache configuration option"
                )
            update = CacheConfigUpdate(**changes)
        self._config = merge_cache_config(self._config, update)
        return self._config

    async def set(self, key: str, value: Any, custom_expiry_ms: int | None = None) -> None:
        """
        Store a value in the cache.

        If the cache is full and the key is new, evicts the oldest entry first.

        Args:
            key: Cache key
            value: Value to cache
            custom_expiry_ms: Lifetime overriding the configured default
        """
        keys = await self._cache_keys()
        if len(keys) >= self._config.max_entries and not await self.store.has_key(key):
            oldest = await self._find_oldest_key(keys)
            if oldest is not None:
                logger.debug("Cache full (%d entries), evicting %s", len(keys), oldest)
                await self.store.remove(oldest)

        expiry_ms = custom_expiry_ms if custom_expiry_ms is not None else self._config.expiry_ms
        await self.store.set(key, value, obfuscate=self._config.obfuscate, expiry_ms=expiry_ms)

    async def get(self, key: str) -> Any | None:
        """Get a cached value, or None if absent or expired."""
        return await self.store.get(key, obfuscate=self._config.obfuscate)

    async def remove(self, key: str) -> None:
        await self.store.remove(key)

    async def clear(self) -> None:
        """Remove every cached record, keeping reserved keys such as the replay queue."""
        await self.store.clear(keep=RESERVED_KEYS)

    async def size(self) -> int:
        """Number of cached keys, including stale ones not yet read."""
        return len(await self._cache_keys())

    async def has(self, key: str) -> bool:
        """Check for a key, ignoring expiry."""
        return await self.store.has_key(key)

    async def stats(self) -> dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dict with cache metrics
        """
        size = await self.size()
        max_entries = self._config.max_entries
        return {
            "size": size,
            "max_entries": max_entries,
            "utilization": size / max_entries if max_entries > 0 else 0.0,
        }

    async def _cache_keys(self) -> list[str]:
        return [k for k in await self.store.get_all_keys() if k not in RESERVED_KEYS]

    async def _find_oldest_key(self, keys: list[str]) -> str | None:
        """Find the key with the smallest write time; first seen wins ties."""
        oldest_key: str | None = None
        oldest_time: int | None = None

        for key in keys:
            record = await self.store.get_record(key)
            if record is None:
                continue
            if oldest_time is None or record.written_at < oldest_time:
                oldest_key = key
                oldest_time = record.written_at

        return oldest_key
