"""Tests for the durable store."""

import asyncio
import json

import pytest

from offline_storage.backends import InMemoryMedium
from offline_storage.codec import ObfuscationCodec
from offline_storage.exceptions import (
    ClearError,
    DecodeError,
    NotInitializedError,
    PersistError,
    RemoveError,
)
from offline_storage.store import DurableStore, StoredRecord


class TestStoredRecord:
    """Tests for the persisted record form."""

    def test_wire_format(self):
        record = StoredRecord(value={"a": 1}, written_at=1000, expiry_ms=50)
        assert json.loads(record.serialize()) == {
            "value": {"a": 1},
            "writtenAt": 1000,
            "expiryMs": 50,
        }

    def test_deserialize_without_expiry(self):
        record = StoredRecord.deserialize('{"value": "x", "writtenAt": 5}')
        assert record == StoredRecord(value="x", written_at=5, expiry_ms=None)

    def test_deserialize_rejects_non_object(self):
        with pytest.raises(ValueError):
            StoredRecord.deserialize("[1, 2]")

    def test_expiry_boundary(self):
        record = StoredRecord(value=1, written_at=1000, expiry_ms=100)
        assert not record.is_expired(1100)
        assert record.is_expired(1101)


class TestSetAndGet:
    """Tests for basic reads and writes."""

    @pytest.mark.asyncio
    async def test_round_trip(self, store):
        await store.set("user", {"name": "Ada", "langs": ["en", "fr"]})
        assert await store.get("user") == {"name": "Ada", "langs": ["en", "fr"]}

    @pytest.mark.asyncio
    async def test_missing_key_returns_none(self, store):
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, store):
        await store.set("k", "v1")
        await store.set("k", "v2")
        assert await store.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_write_reaches_medium(self, store, medium, clock):
        await store.set("k", [1, 2, 3], expiry_ms=500)

        persisted = json.loads(medium.snapshot()["k"])
        assert persisted == {"value": [1, 2, 3], "writtenAt": clock.now, "expiryMs": 500}

    @pytest.mark.asyncio
    async def test_read_through_from_medium(self, medium, codec, clock):
        """A fresh store loads records written by an earlier instance."""
        first = DurableStore(medium, codec=codec, clock=clock)
        await first.set("k", "persisted")

        second = DurableStore(medium, codec=codec, clock=clock)
        assert await second.get("k") == "persisted"

    @pytest.mark.asyncio
    async def test_written_at_never_goes_backwards(self, store, clock):
        await store.set("k", "v1")
        first = (await store.get_record("k")).written_at

        clock.advance(-5000)
        await store.set("k", "v2")

        record = await store.get_record("k")
        assert record.value == "v2"
        assert record.written_at >= first

    @pytest.mark.asyncio
    async def test_unserializable_value_leaves_store_untouched(self, store, medium):
        with pytest.raises(TypeError):
            await store.set("k", object())

        assert await store.get("k") is None
        assert medium.snapshot() == {}

    @pytest.mark.asyncio
    async def test_unreadable_record_treated_as_absent(self, medium, codec, clock):
        await medium.set("broken", "{not json")
        store = DurableStore(medium, codec=codec, clock=clock)
        assert await store.get("broken") is None


class TestExpiry:
    """Tests for lazy expiry."""

    @pytest.mark.asyncio
    async def test_expired_record_returns_none_and_is_removed(self, store, clock):
        await store.set("session", "token", expiry_ms=100)

        clock.advance(150)

        assert await store.get("session") is None
        assert await store.has_key("session") is False

    @pytest.mark.asyncio
    async def test_not_yet_expired(self, store, clock):
        await store.set("session", "token", expiry_ms=100)
        clock.advance(100)
        assert await store.get("session") == "token"

    @pytest.mark.asyncio
    async def test_zero_expiry_is_immediately_stale(self, store):
        await store.set("k", "v", expiry_ms=0)
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_no_expiry_never_expires(self, store, clock):
        await store.set("k", "v")
        clock.advance(10 * 365 * 24 * 3600 * 1000)
        assert await store.get("k") == "v"

    @pytest.mark.asyncio
    async def test_has_key_ignores_expiry(self, store, clock):
        """Existence is not validity."""
        await store.set("k", "v", expiry_ms=10)
        clock.advance(50)
        assert await store.has_key("k") is True

    @pytest.mark.asyncio
    async def test_failed_expiry_removal_still_hides_value(self, store, medium, clock):
        await store.set("k", "v", expiry_ms=10)
        clock.advance(50)
        medium.fail_remove = True

        assert await store.get("k") is None


class TestObfuscation:
    """Tests for obfuscated records."""

    @pytest.mark.asyncio
    async def test_obfuscated_round_trip(self, store, medium):
        await store.set("secret", {"pin": "1234"}, obfuscate=True)

        assert "1234" not in medium.snapshot()["secret"]
        assert await store.get("secret", obfuscate=True) == {"pin": "1234"}

    @pytest.mark.asyncio
    async def test_raw_read_returns_opaque_text(self, store):
        await store.set("secret", {"pin": "1234"}, obfuscate=True)
        raw = await store.get("secret")
        assert isinstance(raw, str)
        assert raw != {"pin": "1234"}

    @pytest.mark.asyncio
    async def test_decode_failure_propagates(self, store):
        await store.set("plain", "not-obfuscated-text!!")
        with pytest.raises(DecodeError):
            await store.get("plain", obfuscate=True)

    @pytest.mark.asyncio
    async def test_obfuscate_without_secret_fails(self, clock):
        store = DurableStore(InMemoryMedium(), codec=ObfuscationCodec(), clock=clock)
        with pytest.raises(NotInitializedError):
            await store.set("k", "v", obfuscate=True)


class TestRemoveAndClear:
    """Tests for deletion."""

    @pytest.mark.asyncio
    async def test_remove(self, store):
        await store.set("k", "v")
        await store.remove("k")

        assert await store.get("k") is None
        assert await store.has_key("k") is False

    @pytest.mark.asyncio
    async def test_remove_is_idempotent(self, store):
        await store.remove("never-set")
        await store.remove("never-set")

    @pytest.mark.asyncio
    async def test_clear(self, store):
        await store.set("a", 1)
        await store.set("b", 2)

        await store.clear()

        assert await store.get_all_keys() == []
        assert await store.get("a") is None


class TestMediumFailures:
    """Tests for backing medium failure handling."""

    @pytest.mark.asyncio
    async def test_persist_failure_raises_but_keeps_memory_copy(self, store, medium):
        medium.fail_set = True

        with pytest.raises(PersistError) as exc_info:
            await store.set("k", "v")

        assert exc_info.value.key == "k"
        # The in-process cache still serves the value until invalidated
        assert await store.get("k") == "v"
        assert await store.has_key("k") is False

        store.invalidate("k")
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_remove_failure_raises(self, store, medium):
        await store.set("k", "v")
        medium.fail_remove = True

        with pytest.raises(RemoveError):
            await store.remove("k")

    @pytest.mark.asyncio
    async def test_clear_failure_raises(self, store, medium):
        medium.fail_clear = True
        with pytest.raises(ClearError):
            await store.clear()

    @pytest.mark.asyncio
    async def test_enumeration_failure_returns_empty(self, store, medium):
        await store.set("k", "v")
        medium.fail_keys = True
        assert await store.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_read_failure_returns_none(self, medium, codec, clock):
        await medium.set("k", StoredRecord("v", clock.now).serialize())
        store = DurableStore(medium, codec=codec, clock=clock)
        medium.fail_get = True

        assert await store.get("k") is None
        assert await store.has_key("k") is False


class TestInvalidate:
    """Tests for in-process cache invalidation."""

    @pytest.mark.asyncio
    async def test_invalidate_all_reloads_from_medium(self, store, medium, clock):
        await store.set("k", "old")
        await medium.set("k", StoredRecord("new", clock.now).serialize())

        assert await store.get("k") == "old"
        store.invalidate()
        assert await store.get("k") == "new"


class TestSerializedWrites:
    """Tests for opt-in per-key write serialization."""

    @pytest.mark.asyncio
    async def test_concurrent_writes_apply_in_call_order(self, codec, clock):
        class SlowFirstWrite(InMemoryMedium):
            def __init__(self):
                super().__init__()
                self.writes = 0

            async def set(self, key, value):
                self.writes += 1
                if self.writes == 1:
                    await asyncio.sleep(0.01)
                await super().set(key, value)

        slow = SlowFirstWrite()
        store = DurableStore(slow, codec=codec, clock=clock, serialize_writes=True)

        await asyncio.gather(store.set("k", "first"), store.set("k", "second"))

        store.invalidate()
        assert await store.get("k") == "second"

    @pytest.mark.asyncio
    async def test_lock_table_shrinks_after_writes(self, codec, clock):
        store = DurableStore(InMemoryMedium(), codec=codec, clock=clock, serialize_writes=True)

        await asyncio.gather(*(store.set(f"k{i}", i) for i in range(5)))
        await asyncio.gather(store.set("k0", "again"), store.remove("k0"))

        assert store._key_locks == {}


class TestValueIsolation:
    """Callers never share mutable objects with the in-process cache."""

    @pytest.mark.asyncio
    async def test_mutating_written_value(self, store):
        value = [1]
        await store.set("k", value)

        value.append(2)

        assert await store.get("k") == [1]

    @pytest.mark.asyncio
    async def test_mutating_read_value(self, store):
        await store.set("k", {"tags": ["a"]})

        first = await store.get("k")
        first["tags"].append("b")

        assert await store.get("k") == {"tags": ["a"]}

    @pytest.mark.asyncio
    async def test_cached_value_matches_medium(self, store):
        """Values are cached in their persisted form."""
        await store.set("k", {"point": (1, 2)})

        cached = await store.get("k")
        store.invalidate("k")

        assert cached == await store.get("k") == {"point": [1, 2]}


class TestSelectiveClear:
    """Tests for clearing while keeping some keys."""

    @pytest.mark.asyncio
    async def test_keep_leaves_listed_keys(self, store):
        await store.set("a", 1)
        await store.set("b", 2)
        await store.set("keep-me", 3)

        await store.clear(keep={"keep-me"})

        assert await store.get_all_keys() == ["keep-me"]
        assert await store.get("a") is None
        assert await store.get("keep-me") == 3

    @pytest.mark.asyncio
    async def test_keep_with_enumeration_failure_raises(self, store, medium):
        await store.set("a", 1)
        medium.fail_keys = True

        with pytest.raises(ClearError):
            await store.clear(keep={"b"})
