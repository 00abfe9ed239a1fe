"""
Tests for the client-local store and the guest throttle.
"""
import unittest

import pytest

from app.errors import QuotaExceeded
from app.usage.guest import GuestThrottle
from app.usage.local_store import (
    GUEST_QUERY_COUNT_KEY,
    InMemoryLocalStore,
    NamespacedStore,
    chat_history_key,
)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestInMemoryLocalStore(unittest.TestCase):
    """Test suite for InMemoryLocalStore."""

    def test_get_default_for_missing_key(self):
        store = InMemoryLocalStore()
        assert store.get("missing") is None
        assert store.get("missing", 0) == 0

    def test_set_get_delete(self):
        store = InMemoryLocalStore()
        store.set("k", [1, 2])
        assert store.get("k") == [1, 2]

        store.delete("k")
        assert store.get("k") is None

    def test_ttl_expiry(self):
        """Expired keys read as missing."""
        clock = FakeClock()
        store = InMemoryLocalStore(clock=clock)
        store.set("k", "v", ttl_seconds=60)

        clock.now += 59
        assert store.get("k") == "v"

        clock.now += 1
        assert store.get("k") is None

    def test_clear(self):
        store = InMemoryLocalStore()
        store.set("a", 1)
        store.set("b", 2)
        store.clear()
        assert store.get("a") is None
        assert store.get("b") is None

    def test_abandoned_keys_are_swept_on_write(self):
        """Expired keys nobody reads again do not pile up."""
        clock = FakeClock()
        store = InMemoryLocalStore(clock=clock, purge_every=3)
        store.set("guest:a:count", 1, ttl_seconds=10)
        store.set("guest:b:count", 1, ttl_seconds=10)
        store.set("keep", 1)

        clock.now += 10
        store.set("guest:c:count", 1, ttl_seconds=10)
        store.set("guest:d:count", 1, ttl_seconds=10)
        store.set("guest:e:count", 1, ttl_seconds=10)

        assert set(store._data) == {"keep", "guest:c:count", "guest:d:count", "guest:e:count"}

    def test_purge_expired(self):
        clock = FakeClock()
        store = InMemoryLocalStore(clock=clock)
        store.set("old", 1, ttl_seconds=5)
        store.set("keep", 2)

        clock.now += 5

        assert store.purge_expired() == 1


class TestNamespacedStore(unittest.TestCase):
    """Namespaces keep clients apart on one backing store."""

    def test_isolation(self):
        backing = InMemoryLocalStore()
        alice = NamespacedStore(backing, "guest:alice")
        bob = NamespacedStore(backing, "guest:bob")

        alice.set(GUEST_QUERY_COUNT_KEY, 2)

        assert alice.get(GUEST_QUERY_COUNT_KEY) == 2
        assert bob.get(GUEST_QUERY_COUNT_KEY) is None
        assert backing.get(f"guest:alice:{GUEST_QUERY_COUNT_KEY}") == 2

    def test_clear_only_touches_own_namespace(self):
        backing = InMemoryLocalStore()
        alice = NamespacedStore(backing, "guest:alice")
        bob = NamespacedStore(backing, "guest:bob")
        alice.set(GUEST_QUERY_COUNT_KEY, 3)
        alice.set(chat_history_key(None), [{"role": "user", "content": "hola"}])
        bob.set(GUEST_QUERY_COUNT_KEY, 1)

        alice.clear()

        assert alice.get(GUEST_QUERY_COUNT_KEY) is None
        assert alice.get(chat_history_key(None)) is None
        assert bob.get(GUEST_QUERY_COUNT_KEY) == 1

    def test_clear_removes_user_transcript(self):
        backing = InMemoryLocalStore()
        store = NamespacedStore(backing, "user:u1", owner="u1")
        store.set(chat_history_key("u1"), [{"role": "user", "content": "hola"}])

        store.clear()

        assert store.get(chat_history_key("u1")) is None
        assert backing.purge_expired() == 0

    def test_default_ttl_applies_to_writes(self):
        clock = FakeClock()
        backing = InMemoryLocalStore(clock=clock)
        guest = NamespacedStore(backing, "guest:g1", default_ttl=60)
        GuestThrottle(guest).record()
        guest.set("pinned", 1, ttl_seconds=600)

        clock.now += 60

        assert GuestThrottle(guest).used() == 0
        assert guest.get("pinned") == 1


def test_chat_history_key():
    assert chat_history_key("user-1") == "chat_history_user-1"
    assert chat_history_key(None) == "chat_history_guest"


def test_guest_allowed_three_then_blocked():
    throttle = GuestThrottle(InMemoryLocalStore(), limit=3)

    for expected in (1, 2, 3):
        throttle.check()
        assert throttle.record() == expected

    assert throttle.remaining() == 0
    with pytest.raises(QuotaExceeded) as exc_info:
        throttle.check()
    assert exc_info.value.window == "lifetime"
    assert exc_info.value.ceiling == 3


def test_clearing_store_resets_guest_count():
    """The counter is advisory: wiping client state resets it."""
    store = InMemoryLocalStore()
    throttle = GuestThrottle(store, limit=3)
    for _ in range(3):
        throttle.record()

    store.clear()

    assert throttle.used() == 0
    throttle.check()


def test_corrupt_counter_reads_as_zero():
    store = InMemoryLocalStore()
    store.set(GUEST_QUERY_COUNT_KEY, "not-a-number")

    assert GuestThrottle(store).used() == 0
