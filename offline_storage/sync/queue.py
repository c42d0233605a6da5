"""
Offline replay queue.

Buffers mutations while offline and replays them against an external sink
when connectivity is available:

- Entries are kept in FIFO order and persisted through the durable store
  so they survive restarts
- A drain applies every queued entry to the sink, one call per entry
- A failed entry fails the whole pass; the pass is retried from the top
  up to max_retries times, then left pending for the next trigger
- Drains are triggered on enqueue while online, on a periodic timer,
  and on each offline -> online transition

Delivery is at-least-once: entries applied during a failed pass are
applied again by the next pass.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import os
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from ..exceptions import OfflineStorageError, SinkError, ValidationError
from ..logging_utils import StorageLoggerAdapter, get_storage_logger
from ..store import QUEUE_STORAGE_KEY, DurableStore
from ..utils import Clock, now_ms
from .connectivity import ConnectivityObserver, ConnectivityState
from .sink import Sink

logger = get_storage_logger("queue")

DEFAULT_INTERVAL_MS = 5000
DEFAULT_MAX_RETRIES = 3


class OperationKind(Enum):
    """Kind of mutation recorded in the queue."""

    SET = "set"
    REMOVE = "remove"


class QueueState(Enum):
    """Current state of the replay queue."""

    IDLE = "idle"
    DRAINING = "draining"


@dataclass(frozen=True)
class QueueEntry:
    """One pending mutation.

    Attributes:
        key: Key the mutation applies to
        value: New value (None for removals)
        operation: Kind of mutation
        enqueued_at: Enqueue time in epoch milliseconds
    """

    key: str
    value: Any
    operation: OperationKind
    enqueued_at: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted wire form."""
        return {
            "key": self.key,
            "value": self.value,
            "operationKind": self.operation.value,
            "enqueuedAt": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueEntry:
        """Create from the persisted wire form."""
        return cls(
            key=data["key"],
            value=data.get("value"),
            operation=OperationKind(data["operationKind"]),
            enqueued_at=int(data["enqueuedAt"]),
        )


CompleteCallback = Callable[[bool], Any]
ErrorCallback = Callable[[Exception], Any]


@dataclass(frozen=True)
class ReplayConfig:
    """Configuration for the replay queue."""

    interval_ms: int = DEFAULT_INTERVAL_MS
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay_ms: int = 0
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None

    def __post_init__(self) -> None:
        if self.interval_ms <= 0:
            raise ValidationError("interval_ms", "must be > 0", self.interval_ms)
        if self.max_retries < 1:
            raise ValidationError("max_retries", "must be >= 1", self.max_retries)
        if self.retry_delay_ms < 0:
            raise ValidationError("retry_delay_ms", "must be >= 0", self.retry_delay_ms)

    @classmethod
    def from_env(cls) -> ReplayConfig:
        """Create config from environment variables.

        Environment Variables:
            OFFLINE_STORAGE_SYNC_INTERVAL_MS: Periodic drain interval
            OFFLINE_STORAGE_SYNC_MAX_RETRIES: Passes per drain
            OFFLINE_STORAGE_SYNC_RETRY_DELAY_MS: Pause between failed passes
        """
        return cls(
            interval_ms=int(os.environ.get("OFFLINE_STORAGE_SYNC_INTERVAL_MS", DEFAULT_INTERVAL_MS)),
            max_retries=int(os.environ.get("OFFLINE_STORAGE_SYNC_MAX_RETRIES", DEFAULT_MAX_RETRIES)),
            retry_delay_ms=int(os.environ.get("OFFLINE_STORAGE_SYNC_RETRY_DELAY_MS", "0")),
        )


class ReplayQueue:
    """Persisted FIFO of pending mutations drained against an external sink.

    Handles:
    - Recording SET/REMOVE intents and persisting the queue snapshot
    - Pass-level retry of the whole queue against the sink
    - Periodic and connectivity-triggered drains
    """

    def __init__(
        self,
        store: DurableStore,
        sink: Sink,
        observer: ConnectivityObserver | None = None,
        config: ReplayConfig | None = None,
        clock: Clock | None = None,
        name: str = "default",
    ):
        """Initialize the replay queue.

        Args:
            store: Store holding the persisted queue snapshot
            sink: External sink receiving each queued entry
            observer: Connectivity source; without one, report changes
                through handle_connectivity_change
            config: Queue configuration
            clock: Millisecond clock (defaults to wall-clock time)
            name: Queue name used in log records
        """
        self.store = store
        self.sink = sink
        self.config = config or ReplayConfig()
        self._clock = clock or now_ms
        self._log = StorageLoggerAdapter(logger, {"queue": name})

        self._entries: list[QueueEntry] = []
        self._loaded = False
        self._load_lock = asyncio.Lock()
        self._state = QueueState.IDLE
        self._connectivity = ConnectivityState(
            is_connected=observer.is_connected if observer else False
        )
        self._timer_task: asyncio.Task[None] | None = None
        self._drain_tasks: set[asyncio.Task[bool]] = set()

        self._observer = observer
        self._unsubscribe = (
            observer.subscribe(self.handle_connectivity_change) if observer else None
        )

    @property
    def state(self) -> QueueState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._connectivity.is_connected

    @property
    def connectivity(self) -> ConnectivityState:
        """Copy of the current connectivity state."""
        return replace(self._connectivity)

    def configure(
        self,
        interval_ms: int | None = None,
        max_retries: int | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
        retry_delay_ms: int | None = None,
    ) -> ReplayConfig:
        """Merge options into the configuration and (re)arm the periodic trigger.

        Must be called from a running event loop.

        Returns:
            The resulting configuration
        """
        changes = {
            name: value
            for name, value in (
                ("interval_ms", interval_ms),
                ("max_retries", max_retries),
                ("on_complete", on_complete),
                ("on_error", on_error),
                ("retry_delay_ms", retry_delay_ms),
            )
            if value is not None
        }
        self.config = replace(self.config, **changes)
        self._arm_timer()
        return self.config

    async def load(self) -> list[QueueEntry]:
        """Restore the persisted queue snapshot.

        Returns:
            Entries pending after the restore
        """
        await self._ensure_loaded()
        return self.get_pending_operations()

    async def enqueue(self, entry: QueueEntry) -> None:
        """Append an entry, persist the queue, and drain if online.

        Raises:
            PersistError: If the queue snapshot cannot be written
        """
        await self._ensure_loaded()
        self._entries.append(entry)
        await self._persist()
        self._log.debug(
            "Queued %s for key %s (%d pending)",
            entry.operation.value,
            entry.key,
            len(self._entries),
        )

        if self._connectivity.is_connected:
            await self.drain()

    async def enqueue_operation(
        self, key: str, value: Any, operation: OperationKind
    ) -> QueueEntry:
        """Build an entry stamped with the current time and enqueue it."""
        entry = QueueEntry(
            key=key,
            value=None if operation is OperationKind.REMOVE else copy.deepcopy(value),
            operation=operation,
            enqueued_at=self._clock(),
        )
        await self.enqueue(entry)
        return entry

    async def drain(self) -> bool:
        """Apply every queued entry to the sink.

        Runs up to max_retries full passes. Sink failures are reported
        through on_error after the last pass, never raised.

        Returns:
            True if the queue was empty or fully applied, False if a drain
            was already running or every pass failed
        """
        await self._ensure_loaded()
        if not self._entries:
            return True
        if self._state is QueueState.DRAINING:
            self._log.debug("Drain already in progress")
            return False

        self._state = QueueState.DRAINING
        batch = list(self._entries)
        max_retries = self.config.max_retries
        last_error: SinkError | None = None

        try:
            for attempt in range(1, max_retries + 1):
                try:
                    await self._apply_pass(batch)
                except SinkError as e:
                    last_error = e
                    self._log.warning(
                        "Drain pass %d/%d failed: %s", attempt, max_retries, e.message
                    )
                    if attempt < max_retries and self.config.retry_delay_ms > 0:
                        await asyncio.sleep(self.config.retry_delay_ms / 1000)
                    continue

                await self._complete(batch)
                return True

            self._log.error(
                "Drain failed after %d passes, %d entries left pending",
                max_retries,
                len(self._entries),
            )
            await self._notify(self.config.on_error, last_error)
            return False
        finally:
            self._state = QueueState.IDLE

    async def sync_queued_items(self) -> bool:
        """Alias of drain."""
        return await self.drain()

    def handle_connectivity_change(self, is_connected: bool) -> None:
        """Record a connectivity report; drain right away when coming online."""
        was_offline = not self._connectivity.is_connected
        self._connectivity.is_connected = is_connected

        if was_offline and is_connected:
            self._log.info("Connectivity restored, scheduling drain")
            self._schedule_drain()

    def get_pending_operations(self) -> list[QueueEntry]:
        """Snapshot of the pending entries in FIFO order."""
        return list(self._entries)

    def get_last_sync_at(self) -> int | None:
        """Time of the last fully successful drain, in epoch milliseconds."""
        return self._connectivity.last_sync_at

    def stop(self) -> None:
        """Cancel the periodic trigger. A drain already running is not interrupted."""
        if self._timer_task is not None:
            self._timer_task.cancel()
            self._timer_task = None

    async def close(self) -> None:
        """Stop triggers, unsubscribe from connectivity and wait for running drains."""
        self.stop()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self.wait_for_drains()

    async def wait_for_drains(self) -> None:
        """Wait until every background drain started so far has finished."""
        while self._drain_tasks:
            await asyncio.gather(*list(self._drain_tasks), return_exceptions=True)

    async def _apply_pass(self, batch: list[QueueEntry]) -> None:
        for entry in batch:
            try:
                await self.sink.apply(entry)
            except Exception as e:
                raise SinkError(entry.key, entry.operation.value, e) from e

    async def _complete(self, batch: list[QueueEntry]) -> None:
        # Entries enqueued while the pass ran stay pending
        del self._entries[: len(batch)]
        await self._persist()
        self._connectivity.last_sync_at = self._clock()
        self._log.info("Drained %d entries", len(batch))
        await self._notify(self.config.on_complete, True)

    async def _ensure_loaded(self) -> None:
        """Load the persisted snapshot if not already loaded."""
        if self._loaded:
            return

        async with self._load_lock:
            if self._loaded:
                return

            stored = await self.store.get(QUEUE_STORAGE_KEY)
            restored: list[QueueEntry] = []
            if stored:
                try:
                    restored = [QueueEntry.from_dict(item) for item in stored]
                except (KeyError, TypeError, ValueError) as e:
                    # If the snapshot is corrupted, start fresh
                    self._log.warning("Discarding unreadable queue snapshot: %s", e)
                    restored = []

            self._entries = restored + self._entries
            self._loaded = True
            if restored:
                self._log.info("Restored %d pending entries", len(restored))

    async def _persist(self) -> None:
        await self.store.set(QUEUE_STORAGE_KEY, [e.to_dict() for e in self._entries])

    async def _notify(self, callback: Callable[[Any], Any] | None, arg: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._log.exception("Replay queue callback failed")

    def _arm_timer(self) -> None:
        self.stop()
        self._timer_task = asyncio.create_task(self._periodic_drain())

    async def _periodic_drain(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval_ms / 1000)
            if self._connectivity.is_connected:
                self._schedule_drain()

    def _schedule_drain(self) -> None:
        """Start a drain in its own task so cancelling a trigger never interrupts it."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._log.warning("No running event loop; drain deferred to the next trigger")
            return

        task = loop.create_task(self._run_drain())
        self._drain_tasks.add(task)
        task.add_done_callback(self._drain_tasks.discard)

    async def _run_drain(self) -> bool:
        try:
            return await self.drain()
        except OfflineStorageError as e:
            self._log.error("Background drain failed: %s", e.message)
            return False
