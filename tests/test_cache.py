"""Tests for the decision cache."""

import pytest

from packages.authz import cache as cache_module
from packages.authz.cache import DecisionCache
from packages.authz.models import Decision, DecisionReason
from tests.authz_helpers import F1, O1, P1, P2

ALLOW = Decision.allow(DecisionReason.DIRECT_ROLE, permission="read")
DENY = Decision.deny(DecisionReason.NO_MATCHING_ROLE, permission="read")


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(cache_module.time, "time", clock)
    return clock


class TestDecisionCache:
    """Test lookups, expiry and dependency-based invalidation."""

    def test_get_and_set(self):
        """Stored decisions come back for the same key only."""
        cache = DecisionCache()

        assert cache.get("alice", P1, "read") is None
        cache.set("alice", P1, "read", ALLOW, depends_on=set())

        assert cache.get("alice", P1, "read") == ALLOW
        assert cache.get("bob", P1, "read") is None
        assert cache.get("alice", P1, "modify") is None
        assert cache.get("alice", P2, "read") is None

    def test_ancestor_change_evicts_descendant(self):
        """A decision derived through an ancestor is evicted when that ancestor changes."""
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on={P1, O1, F1})
        cache.set("alice", P2, "read", DENY, depends_on={P2})

        assert cache.invalidate(F1) == 1

        assert cache.get("alice", P1, "read") is None
        assert cache.get("alice", P2, "read") == DENY

    def test_own_instance_is_a_dependency(self):
        """Every entry depends on the instance it was asked about."""
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on=set())

        assert cache.invalidate(P1) == 1
        assert len(cache) == 0

    def test_invalidate_unrelated_is_noop(self):
        """Invalidating an instance nothing consulted removes nothing."""
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on={O1})

        assert cache.invalidate(P2) == 0
        assert len(cache) == 1

    def test_overwrite_drops_old_dependencies(self):
        """Re-setting a key replaces its dependency set."""
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on={O1, F1})
        cache.set("alice", P1, "read", DENY, depends_on={O1})

        assert cache.invalidate(F1) == 0
        assert cache.get("alice", P1, "read") == DENY

    def test_ttl_expiry(self, clock):
        """Entries expire after their TTL."""
        cache = DecisionCache(default_ttl_seconds=10)
        cache.set("alice", P1, "read", ALLOW, depends_on=set())
        cache.set("alice", P2, "read", ALLOW, depends_on=set(), ttl_seconds=60)

        clock.now += 11

        assert cache.get("alice", P1, "read") is None
        assert cache.get("alice", P2, "read") == ALLOW

    def test_evicts_least_recently_used(self, clock):
        """A full cache drops the entry accessed longest ago."""
        cache = DecisionCache(max_entries=2)
        cache.set("alice", P1, "read", ALLOW, depends_on=set())
        clock.now += 1
        cache.set("alice", P2, "read", ALLOW, depends_on=set())
        clock.now += 1
        cache.get("alice", P1, "read")
        clock.now += 1

        cache.set("alice", O1, "read", ALLOW, depends_on=set())

        assert len(cache) == 2
        assert cache.get("alice", P2, "read") is None
        assert cache.get("alice", P1, "read") == ALLOW

    def test_stats(self):
        """Hits, misses and invalidations are counted."""
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on={O1})
        cache.get("alice", P1, "read")
        cache.get("alice", P2, "read")
        cache.invalidate(O1)

        stats = cache.get_stats()

        assert stats.total_entries == 0
        assert stats.total_hits == 1
        assert stats.total_misses == 1
        assert stats.total_invalidations == 1
        assert stats.hit_rate == 0.5

    def test_clear(self):
        cache = DecisionCache()
        cache.set("alice", P1, "read", ALLOW, depends_on={O1})
        cache.clear()

        assert len(cache) == 0
        assert cache.invalidate(O1) == 0

    def test_write_after_invalidation_dropped(self):
        """A decision resolved before its dependency changed is not stored."""
        cache = DecisionCache()
        generation = cache.generation()

        cache.invalidate(F1)

        assert not cache.set("alice", P1, "read", ALLOW, depends_on={O1, F1}, generation=generation)
        assert cache.get("alice", P1, "read") is None

    def test_unrelated_invalidation_keeps_write(self):
        """Changes to instances the decision never consulted do not drop it."""
        cache = DecisionCache()
        generation = cache.generation()

        cache.invalidate(P2)

        assert cache.set("alice", P1, "read", ALLOW, depends_on={O1, F1}, generation=generation)
        assert cache.get("alice", P1, "read") == ALLOW

    def test_write_after_clear_dropped(self):
        """Clearing the cache also rejects writes resolved before it."""
        cache = DecisionCache()
        generation = cache.generation()

        cache.clear()

        assert not cache.set("alice", P1, "read", ALLOW, depends_on=set(), generation=generation)
        assert cache.set("alice", P1, "read", ALLOW, depends_on=set(), generation=cache.generation())
