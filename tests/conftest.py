"""
Shared test configuration and fixtures.

Provides a controllable clock, an in-memory medium that can be told to fail,
and a recording sink, so store, cache and queue behavior can be tested
without real time passing or a real remote backend.
"""

import pytest

from offline_storage.backends import InMemoryMedium
from offline_storage.cache import BoundedCache, CacheConfig
from offline_storage.codec import ObfuscationCodec
from offline_storage.exceptions import StorageIOError
from offline_storage.store import DurableStore
from offline_storage.sync.queue import QueueEntry

TEST_SECRET = "0123456789abcdef-test-secret"


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailingMedium(InMemoryMedium):
    """
    In-memory medium with switchable failures.

    Set any of the fail_* attributes to True to make the matching
    operation raise StorageIOError.
    """

    def __init__(self):
        super().__init__()
        self.fail_get = False
        self.fail_set = False
        self.fail_remove = False
        self.fail_clear = False
        self.fail_keys = False

    async def get(self, key: str) -> str | None:
        if self.fail_get:
            raise StorageIOError("get", key, OSError("disk unavailable"))
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_set:
            raise StorageIOError("set", key, OSError("disk full"))
        await super().set(key, value)

    async def remove(self, key: str) -> None:
        if self.fail_remove:
            raise StorageIOError("remove", key, OSError("read-only"))
        await super().remove(key)

    async def clear(self) -> None:
        if self.fail_clear:
            raise StorageIOError("clear", cause=OSError("read-only"))
        await super().clear()

    async def get_all_keys(self) -> list[str]:
        if self.fail_keys:
            raise StorageIOError("get_all_keys", cause=OSError("disk unavailable"))
        return await super().get_all_keys()


class RecordingSink:
    """
    Sink recording every applied entry.

    fail_times makes the first N apply calls raise; fail_always makes
    every call raise; fail_keys fails entries for specific keys.
    """

    def __init__(self, fail_times: int = 0, fail_always: bool = False, fail_keys=()):
        self.applied: list[QueueEntry] = []
        self.calls = 0
        self.fail_times = fail_times
        self.fail_always = fail_always
        self.fail_keys = set(fail_keys)

    async def apply(self, entry: QueueEntry) -> None:
        self.calls += 1
        if self.fail_always or self.calls <= self.fail_times or entry.key in self.fail_keys:
            raise RuntimeError(f"remote rejected {entry.key}")
        self.applied.append(entry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def medium() -> FailingMedium:
    return FailingMedium()


@pytest.fixture
def codec() -> ObfuscationCodec:
    return ObfuscationCodec(TEST_SECRET)


@pytest.fixture
def store(medium, codec, clock) -> DurableStore:
    return DurableStore(medium, codec=codec, clock=clock)


@pytest.fixture
def cache(store) -> BoundedCache:
    return BoundedCache(store, CacheConfig(max_entries=3))


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def make_sink():
    """Factory for sinks with custom failure behavior."""
    return RecordingSink
