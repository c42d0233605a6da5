"""
Offline Storage

Local persistence layer for offline-first applications.

Provides:
- Durable key-value store with per-entry expiry and optional obfuscation
- Bounded cache with oldest-first eviction
- Replay queue that buffers mutations offline and replays them to a remote sink
- Pluggable backing media (in-memory, JSON file, SQLite)

Usage:

    >>> from offline_storage import StorageServices, StorageSettings, CallbackSink
    >>> async def push(entry):
    ...     await api.apply(entry.key, entry.value, entry.operation.value)
    >>> services = await StorageServices.create(CallbackSink(push), StorageSettings.from_env())
    >>> await services.synced.set("profile", {"name": "Ada"}, sync=True)
    >>> await services.cache.get("profile")

Backends:

    from offline_storage.backends import InMemoryMedium, JsonFileMedium, SQLiteMedium

Remote sinks:

    # Azure Cosmos DB (requires the "cosmos" extra)
    from offline_storage.sinks import CosmosSink, CosmosSinkConfig
"""

from .backends import InMemoryMedium, JsonFileMedium, SQLiteConfig, SQLiteMedium, StorageMedium
from .cache import BoundedCache, CacheConfig, CacheConfigUpdate, merge_cache_config
from .codec import ObfuscationCodec
from .exceptions import (
    ClearError,
    CodecError,
    DecodeError,
    InvalidKeyError,
    NotInitializedError,
    OfflineStorageError,
    PersistError,
    RemoveError,
    SinkError,
    StorageConnectionError,
    StorageIOError,
    ValidationError,
)
from .logging_utils import configure_structured_logging, get_storage_logger
from .services import BackendKind, StorageServices, StorageSettings
from .store import DurableStore, StoredRecord
from .sync import (
    CallbackSink,
    ConnectivityObserver,
    ConnectivityState,
    DnsConnectivityProbe,
    ManualConnectivity,
    OperationKind,
    QueueEntry,
    QueueState,
    ReplayConfig,
    ReplayQueue,
    Sink,
)
from .synced import SyncedStorage

__all__ = [
    # Core services
    "DurableStore",
    "StoredRecord",
    "BoundedCache",
    "CacheConfig",
    "CacheConfigUpdate",
    "merge_cache_config",
    "ObfuscationCodec",
    "SyncedStorage",
    # Replay
    "ReplayQueue",
    "ReplayConfig",
    "QueueEntry",
    "QueueState",
    "OperationKind",
    "Sink",
    "CallbackSink",
    "ConnectivityObserver",
    "ConnectivityState",
    "ManualConnectivity",
    "DnsConnectivityProbe",
    # Media
    "StorageMedium",
    "InMemoryMedium",
    "JsonFileMedium",
    "SQLiteMedium",
    "SQLiteConfig",
    # Services
    "StorageServices",
    "StorageSettings",
    "BackendKind",
    # Logging
    "configure_structured_logging",
    "get_storage_logger",
    # Exceptions
    "OfflineStorageError",
    "CodecError",
    "InvalidKeyError",
    "NotInitializedError",
    "DecodeError",
    "StorageIOError",
    "PersistError",
    "RemoveError",
    "ClearError",
    "SinkError",
    "StorageConnectionError",
    "ValidationError",
]

__version__ = "0.1.0"
