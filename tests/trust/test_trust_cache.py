"""Tests for the trust cache implementations."""

from __future__ import annotations

import pytest

from feedtrust.trust.cache import InMemoryTrustCache, TrustCache, TTLTrustCache
from feedtrust.trust.models import UNREACHABLE, TrustData


TRUSTED = TrustData(score=0.9, distance=1, trusted=True, paths=4)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ttl_cache(clock):
    return TTLTrustCache(ttl=60, clock=clock)


class TestInMemoryTrustCache:
    """Tests for the unbounded cache."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryTrustCache(), TrustCache)

    def test_set_and_get(self):
        cache = InMemoryTrustCache()
        cache.set("pk1", TRUSTED)

        assert cache.get("pk1") == TRUSTED
        assert "pk1" in cache
        assert len(cache) == 1

    def test_missing(self):
        cache = InMemoryTrustCache()

        assert cache.get("nope") is None
        assert "nope" not in cache

    def test_unreachable_entry_counts_as_present(self):
        """A failed lookup is still a cache entry."""
        cache = InMemoryTrustCache()
        cache.set("pk1", UNREACHABLE)

        assert "pk1" in cache

    def test_clear(self):
        cache = InMemoryTrustCache()
        cache.set("pk1", TRUSTED)
        cache.clear()

        assert len(cache) == 0


class TestTTLTrustCache:
    """Tests for the expiring cache."""

    def test_satisfies_protocol(self, ttl_cache):
        assert isinstance(ttl_cache, TrustCache)

    def test_fresh_entry(self, ttl_cache, clock):
        ttl_cache.set("pk1", TRUSTED)
        clock.now += 59

        assert ttl_cache.get("pk1") == TRUSTED
        assert "pk1" in ttl_cache

    def test_entry_expires(self, ttl_cache, clock):
        ttl_cache.set("pk1", TRUSTED)
        clock.now += 60

        assert "pk1" not in ttl_cache
        assert ttl_cache.get("pk1") is None
        assert len(ttl_cache) == 0

    def test_set_refreshes_age(self, ttl_cache, clock):
        ttl_cache.set("pk1", UNREACHABLE)
        clock.now += 50
        ttl_cache.set("pk1", TRUSTED)
        clock.now += 50

        assert ttl_cache.get("pk1") == TRUSTED

    def test_purge_expired(self, ttl_cache, clock):
        ttl_cache.set("old", TRUSTED)
        clock.now += 30
        ttl_cache.set("new", TRUSTED)
        clock.now += 40

        assert ttl_cache.purge_expired() == 1
        assert len(ttl_cache) == 1
        assert "new" in ttl_cache

    def test_invalid_ttl(self):
        with pytest.raises(ValueError):
            TTLTrustCache(ttl=0)

    def test_len_counts_only_fresh_entries(self, ttl_cache, clock):
        ttl_cache.set("old", TRUSTED)
        clock.now += 30
        ttl_cache.set("new", UNREACHABLE)
        clock.now += 40

        assert len(ttl_cache) == 1
