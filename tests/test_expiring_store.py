"""Tests for the expiring key/value store."""

import pytest

from cache.expiring_store import ExpiringStore


class TestExpiry:
    """Tests for TTL behaviour."""

    def test_value_available_before_ttl(self, clock):
        store = ExpiringStore(clock=clock)
        store.put("a", 1, ttl=10)
        clock.advance(9.9)
        assert store.get("a") == 1

    def test_value_gone_at_ttl(self, clock):
        store = ExpiringStore(clock=clock)
        store.put("a", 1, ttl=10)
        clock.advance(10)
        assert store.get("a") is None
        assert "a" not in store

    def test_default_ttl_applies(self, clock):
        store = ExpiringStore(default_ttl=5, clock=clock)
        store.put("a", 1)
        clock.advance(5)
        assert store.get("a", "missing") == "missing"

    def test_no_ttl_never_expires(self, clock):
        store = ExpiringStore(clock=clock)
        store.put("a", 1)
        clock.advance(10 ** 9)
        assert store.get("a") == 1

    def test_zero_ttl_stores_nothing(self, clock):
        store = ExpiringStore(clock=clock)
        store.put("a", 1, ttl=60)
        store.put("a", 2, ttl=0)
        assert store.get("a") is None
        assert len(store) == 0

    def test_sweep_removes_only_expired(self, clock):
        store = ExpiringStore(clock=clock)
        store.put("short", 1, ttl=1)
        store.put("long", 2, ttl=100)
        clock.advance(2)
        assert store.sweep() == 1
        assert list(store) == ["long"]


class TestEviction:
    """Tests for LRU bounds."""

    def test_oldest_evicted_over_maxsize(self):
        store = ExpiringStore(maxsize=2)
        store.put("a", 1)
        store.put("b", 2)
        store.put("c", 3)
        assert "a" not in store
        assert store.get("b") == 2

    def test_get_refreshes_recency(self):
        store = ExpiringStore(maxsize=2)
        store.put("a", 1)
        store.put("b", 2)
        store.get("a")
        store.put("c", 3)
        assert "a" in store
        assert "b" not in store

    def test_invalid_maxsize(self):
        with pytest.raises(ValueError):
            ExpiringStore(maxsize=0)


class TestDeletion:
    """Tests for explicit removal."""

    def test_pop_returns_value_once(self):
        """Pending secrets are consumed exactly once."""
        store = ExpiringStore()
        store.put("pending:42", "secret", ttl=600)
        assert store.pop("pending:42") == "secret"
        assert store.pop("pending:42") is None

    def test_delete_where(self):
        store = ExpiringStore()
        store.put("u1", {"role": 1})
        store.put("u2", {"role": 2})
        store.put("u3", {"role": 1})
        removed = store.delete_where(lambda _key, value: value["role"] == 1)
        assert removed == 2
        assert list(store) == ["u2"]

    def test_clear(self):
        store = ExpiringStore()
        store.put("a", 1)
        store.clear()
        assert len(store) == 0
