"""
Service construction and lifecycle.

Every component is an explicitly constructed object. StorageServices wires
one medium, codec, store, cache and replay queue together so an application
owns a single set of instances and tests can build isolated ones.

Configuration can be provided directly, via environment variables, or from
a YAML settings file:

```yaml
offline_storage:
  backend: sqlite          # memory | file | sqlite
  path: ~/.offline_storage/store.db
  secret: "at-least-16-characters"
  cache:
    expiry_ms: 3600000
    max_entries: 100
    obfuscate: false
  sync:
    interval_ms: 5000
    max_retries: 3
    retry_delay_ms: 0
```
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .backends import InMemoryMedium, JsonFileMedium, SQLiteConfig, SQLiteMedium, StorageMedium
from .cache import BoundedCache, CacheConfig, CacheConfigUpdate, merge_cache_config
from .codec import ObfuscationCodec
from .exceptions import StorageIOError, ValidationError
from .logging_utils import get_storage_logger
from .store import DurableStore
from .sync.connectivity import ConnectivityObserver
from .sync.queue import ReplayConfig, ReplayQueue
from .sync.sink import Sink
from .synced import SyncedStorage
from .utils import Clock

logger = get_storage_logger("services")

DEFAULT_BASE_PATH = Path.home() / ".offline_storage"


class BackendKind(Enum):
    """Backing medium selection."""

    MEMORY = "memory"
    FILE = "file"
    SQLITE = "sqlite"


@dataclass
class StorageSettings:
    """Settings for building a StorageServices instance.

    Attributes:
        backend: Backing medium kind
        path: File or database path (file and sqlite backends)
        secret: Obfuscation secret; obfuscated reads and writes fail without one
        serialize_writes: Serialize same-key writes in the store
        cache: Bounded cache configuration
        replay: Replay queue configuration
    """

    backend: BackendKind = BackendKind.MEMORY
    path: str | None = None
    secret: str | None = None
    serialize_writes: bool = False
    cache: CacheConfig = field(default_factory=CacheConfig)
    replay: ReplayConfig = field(default_factory=ReplayConfig)

    @classmethod
    def from_env(cls) -> StorageSettings:
        """Create settings from environment variables.

        Environment Variables:
            OFFLINE_STORAGE_BACKEND: memory | file | sqlite (default: memory)
            OFFLINE_STORAGE_PATH: Storage file path
            OFFLINE_STORAGE_SECRET: Obfuscation secret
            OFFLINE_STORAGE_SERIALIZE_WRITES: "true" to serialize same-key writes
            plus the OFFLINE_STORAGE_CACHE_* and OFFLINE_STORAGE_SYNC_* variables
        """
        backend_str = os.environ.get("OFFLINE_STORAGE_BACKEND", BackendKind.MEMORY.value)
        try:
            backend = BackendKind(backend_str.lower())
        except ValueError:
            logger.warning("Unknown backend %r, falling back to memory", backend_str)
            backend = BackendKind.MEMORY

        return cls(
            backend=backend,
            path=os.environ.get("OFFLINE_STORAGE_PATH"),
            secret=os.environ.get("OFFLINE_STORAGE_SECRET"),
            serialize_writes=os.environ.get("OFFLINE_STORAGE_SERIALIZE_WRITES", "").lower()
            == "true",
            cache=CacheConfig.from_env(),
            replay=ReplayConfig.from_env(),
        )

    @classmethod
    def from_file(cls, config_path: str | Path) -> StorageSettings:
        """Load settings from the ``offline_storage`` section of a YAML file.

        Raises:
            StorageIOError: If the file cannot be read or parsed
            ValidationError: If a setting is invalid
        """
        path = Path(config_path).expanduser()
        try:
            with open(path, encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StorageIOError("read_settings", str(path), e) from e

        if not isinstance(document, dict):
            raise ValidationError("offline_storage", "settings file must contain a mapping")
        return cls.from_dict(document.get("offline_storage") or {})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StorageSettings:
        """Create settings from a plain mapping (e.g. a parsed settings file)."""
        try:
            backend = BackendKind(str(data.get("backend", BackendKind.MEMORY.value)).lower())
        except ValueError as e:
            raise ValidationError("backend", "unknown backend", data.get("backend")) from e

        cache_section = _section(data, "cache", {f.name for f in fields(CacheConfigUpdate)})
        sync_section = _section(data, "sync", {"interval_ms", "max_retries", "retry_delay_ms"})

        path = data.get("path")
        return cls(
            backend=backend,
            path=str(Path(path).expanduser()) if path else None,
            secret=data.get("secret"),
            serialize_writes=_typed("serialize_writes", data.get("serialize_writes", False), bool),
            cache=merge_cache_config(CacheConfig(), CacheConfigUpdate(**cache_section)),
            replay=ReplayConfig(
                **{name: _typed(f"sync.{name}", value, int) for name, value in sync_section.items()}
            ),
        )


def _typed(name: str, value: Any, expected: type) -> Any:
    # bool is an int subclass; keep the two apart
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise ValidationError(name, f"expected {expected.__name__}", value)
    return value


def _section(data: dict[str, Any], name: str, allowed: set[str]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValidationError(name, "expected a mapping", section)
    unknown = set(section) - allowed
    if unknown:
        raise ValidationError(name, f"unknown options: {', '.join(sorted(unknown))}")
    return section


async def create_medium(settings: StorageSettings) -> StorageMedium:
    """Create and initialize the backing medium selected by the settings."""
    if settings.backend is BackendKind.FILE:
        return JsonFileMedium(settings.path or DEFAULT_BASE_PATH / "store.json")
    if settings.backend is BackendKind.SQLITE:
        db_path = settings.path or DEFAULT_BASE_PATH / "store.db"
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return await SQLiteMedium.create(SQLiteConfig(db_path=db_path))
    return InMemoryMedium()


class StorageServices:
    """Owns one medium, codec, store, cache and replay queue.

    Example:
        >>> async with await StorageServices.create(sink, StorageSettings.from_env()) as services:
        ...     await services.synced.set("profile", {"name": "Ada"}, sync=True)
    """

    def __init__(
        self,
        medium: StorageMedium,
        codec: ObfuscationCodec,
        store: DurableStore,
        cache: BoundedCache,
        queue: ReplayQueue,
    ):
        self.medium = medium
        self.codec = codec
        self.store = store
        self.cache = cache
        self.queue = queue
        self.synced = SyncedStorage(store, cache, queue)

    @classmethod
    async def create(
        cls,
        sink: Sink,
        settings: StorageSettings | None = None,
        observer: ConnectivityObserver | None = None,
        clock: Clock | None = None,
    ) -> StorageServices:
        """Build and start every service.

        Restores the persisted replay queue and arms its periodic trigger.
        Must be called from a running event loop.

        Args:
            sink: External sink for the replay queue
            settings: Settings (defaults to StorageSettings.from_env())
            observer: Connectivity observer feeding the replay queue
            clock: Millisecond clock shared by store and queue
        """
        if settings is None:
            settings = StorageSettings.from_env()

        codec = ObfuscationCodec(settings.secret) if settings.secret else ObfuscationCodec()
        medium = await create_medium(settings)
        store = DurableStore(
            medium, codec=codec, clock=clock, serialize_writes=settings.serialize_writes
        )
        cache = BoundedCache(store, settings.cache)
        queue = ReplayQueue(store, sink, observer=observer, config=settings.replay, clock=clock)

        services = cls(medium, codec, store, cache, queue)
        pending = await queue.load()
        queue.configure()
        logger.info(
            "Offline storage ready (backend=%s, %d pending operations)",
            settings.backend.value,
            len(pending),
        )
        return services

    async def close(self) -> None:
        """Stop the replay queue and close the medium."""
        await self.queue.close()
        await self.medium.close()

    async def __aenter__(self) -> StorageServices:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
