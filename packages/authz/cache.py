"""Optional decision cache.

Purely a latency optimization: the resolver is correct without it. Every
entry remembers the resource instances consulted while it was resolved, so a
role change on an instance evicts decisions for that instance and for every
descendant whose resolution ascended through it.
"""

from __future__ import annotations

import logging
import threading
import time

from pydantic import BaseModel, Field

from packages.authz.models import Decision, ResourceInstance

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str, str, str]


class CacheEntry(BaseModel):
    """A cached decision."""

    key: CacheKey
    decision: Decision
    depends_on: frozenset[ResourceInstance] = Field(default_factory=frozenset)
    created_at: float = Field(default_factory=time.time)
    expires_at: float | None = None
    hit_count: int = 0
    last_accessed: float = Field(default_factory=time.time)


class CacheStats(BaseModel):
    """Cache statistics."""

    total_entries: int = 0
    total_hits: int = 0
    total_misses: int = 0
    total_invalidations: int = 0
    hit_rate: float = 0.0


class DecisionCache:
    """Thread-safe cache keyed by (actor, resource type, resource id, permission)."""

    def __init__(
        self,
        default_ttl_seconds: float = 60,
        max_entries: int = 10000,
    ):
        self.default_ttl = default_ttl_seconds
        self.max_entries = max_entries

        self._lock = threading.Lock()
        self._entries: dict[CacheKey, CacheEntry] = {}
        # instance -> keys of entries that consulted it
        self._dependents: dict[ResourceInstance, set[CacheKey]] = {}
        # Invalidation generations: a write resolved before the latest
        # invalidation of any instance it depends on is dropped
        self._generation = 0
        self._invalidated_at: dict[ResourceInstance, int] = {}
        self._cleared_at = 0

        self._hits = 0
        self._misses = 0
        self._invalidations = 0

    @staticmethod
    def make_key(
        actor_id: str, instance: ResourceInstance, permission: str
    ) -> CacheKey:
        return (actor_id, instance.resource_type, instance.resource_id, permission)

    def generation(self) -> int:
        """Current invalidation generation; capture it before resolving."""
        with self._lock:
            return self._generation

    def get(
        self, actor_id: str, instance: ResourceInstance, permission: str
    ) -> Decision | None:
        """Get a cached decision, or None if absent or expired."""
        key = self.make_key(actor_id, instance, permission)
        with self._lock:
            entry = self._entries.get(key)
            if entry:
                now = time.time()
                if entry.expires_at is None or entry.expires_at > now:
                    entry.hit_count += 1
                    entry.last_accessed = now
                    self._hits += 1
                    return entry.decision
                # Expired
                self._remove(key)

            self._misses += 1
            return None

    def set(
        self,
        actor_id: str,
        instance: ResourceInstance,
        permission: str,
        decision: Decision,
        depends_on: set[ResourceInstance],
        ttl_seconds: float | None = None,
        generation: int | None = None,
    ) -> bool:
        """Cache a decision along with the instances it was derived from.

        Pass the ``generation()`` taken before resolution started. If any
        dependency was invalidated since then the decision may be stale and
        is not stored.

        Returns:
            True if the decision was stored
        """
        key = self.make_key(actor_id, instance, permission)
        ttl = ttl_seconds or self.default_ttl
        dependencies = frozenset(depends_on) | {instance}

        with self._lock:
            if generation is not None and self._is_stale(dependencies, generation):
                logger.debug("Dropping stale decision for %s on %s", actor_id, instance)
                return False

            now = time.time()
            self._remove(key)
            self._evict_if_needed()
            self._entries[key] = CacheEntry(
                key=key,
                decision=decision,
                depends_on=dependencies,
                created_at=now,
                expires_at=now + ttl if ttl else None,
                last_accessed=now,
            )
            for dependency in dependencies:
                self._dependents.setdefault(dependency, set()).add(key)
        return True

    def invalidate(self, instance: ResourceInstance) -> int:
        """Evict every decision that consulted ``instance``.

        Returns:
            Number of entries removed
        """
        with self._lock:
            self._generation += 1
            self._invalidated_at[instance] = self._generation
            keys = self._dependents.pop(instance, set())
            for key in keys:
                self._remove(key)
            self._invalidations += len(keys)

        if keys:
            logger.debug("Invalidated %d cached decisions for %s", len(keys), instance)
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._cleared_at = self._generation
            self._entries.clear()
            self._dependents.clear()

    def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            return CacheStats(
                total_entries=len(self._entries),
                total_hits=self._hits,
                total_misses=self._misses,
                total_invalidations=self._invalidations,
                hit_rate=self._hits / total_requests if total_requests else 0.0,
            )

    def __len__(self) -> int:
        return len(self._entries)

    # Callers must hold self._lock

    def _is_stale(self, dependencies: frozenset[ResourceInstance], generation: int) -> bool:
        if self._cleared_at > generation:
            return True
        return any(
            self._invalidated_at.get(dependency, 0) > generation
            for dependency in dependencies
        )

    def _remove(self, key: CacheKey) -> None:
        entry = self._entries.pop(key, None)
        if entry is None:
            return
        for dependency in entry.depends_on:
            keys = self._dependents.get(dependency)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._dependents[dependency]

    def _evict_if_needed(self) -> None:
        if len(self._entries) < self.max_entries:
            return

        # Remove expired entries first
        now = time.time()
        expired = [k for k, v in self._entries.items() if v.expires_at and v.expires_at < now]
        for key in expired:
            self._remove(key)

        # If still full, remove least recently used
        if len(self._entries) >= self.max_entries:
            by_access = sorted(self._entries.items(), key=lambda x: x[1].last_accessed)
            to_remove = len(self._entries) - self.max_entries + 1
            for key, _ in by_access[:to_remove]:
                self._remove(key)
