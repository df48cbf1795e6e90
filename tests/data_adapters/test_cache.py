"""
Tests for the in-memory TTL cache.
"""

import pytest

from data_adapters.cache import MemoryCache


@pytest.fixture
def cache(mock_clock):
    return MemoryCache(default_ttl=300.0, clock=mock_clock)


class TestMemoryCache:
    """Tests for expiry and bookkeeping."""

    def test_get_returns_stored_value(self, cache):
        cache.set("quote:AAPL", {"price": 1})

        assert cache.get("quote:AAPL") == {"price": 1}
        assert cache.has("quote:AAPL")
        assert "quote:AAPL" in cache

    def test_missing_key_returns_default(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", "fallback") == "fallback"
        assert not cache.has("missing")

    def test_entry_valid_until_expiry_instant(self, cache, mock_clock):
        cache.set("k", "v", ttl=10)

        mock_clock.advance(10)
        assert cache.get("k") == "v"

        mock_clock.advance(0.001)
        assert cache.get("k") is None

    def test_default_ttl_applies(self, cache, mock_clock):
        cache.set("k", "v")

        mock_clock.advance(299)
        assert cache.has("k")

        mock_clock.advance(2)
        assert not cache.has("k")

    def test_set_overwrites_and_resets_ttl(self, cache, mock_clock):
        cache.set("k", "old", ttl=5)
        mock_clock.advance(4)
        cache.set("k", "new", ttl=5)
        mock_clock.advance(4)

        assert cache.get("k") == "new"

    def test_size_counts_stale_until_touched(self, cache, mock_clock):
        cache.set("a", 1, ttl=1)
        cache.set("b", 2, ttl=100)
        mock_clock.advance(5)

        assert cache.size() == 2
        assert cache.get("a") is None
        assert cache.size() == 1
        assert len(cache) == 1

    def test_cleanup_removes_expired(self, cache, mock_clock):
        cache.set("a", 1, ttl=1)
        cache.set("b", 2, ttl=1)
        cache.set("c", 3, ttl=100)
        mock_clock.advance(5)

        assert cache.cleanup() == 2
        assert cache.size() == 1
        assert cache.get("c") == 3

    def test_delete(self, cache):
        cache.set("k", "v")

        assert cache.delete("k") is True
        assert cache.delete("k") is False
        assert cache.get("k") is None

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)

        cache.clear()

        assert cache.size() == 0

    def test_falsy_values_are_cached(self, cache):
        cache.set("empty", [])

        assert cache.get("empty", "default") == []

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(ValueError):
            MemoryCache(default_ttl=0)
