from abc import abstractmethod
from collections import OrderedDict
from typing import Any

from arbiter.cache.base import CacheBackend, CacheEntry, Clock


class _OrderedMemoryCache(CacheBackend):
    """Shared storage for the in-memory policies; subclasses pick the victim"""

    policy = "memory"

    def __init__(self, ttl_seconds: float = 3600, max_size: int = 1000, clock: Clock | None = None):
        super().__init__(ttl_seconds=ttl_seconds, max_size=max_size, clock=clock)
        self._cache: OrderedDict[str, CacheEntry[Any]] = OrderedDict()

    @abstractmethod
    def _choose_victim(self, protect: str) -> str:
        """Key to evict when the cache is over capacity, never ``protect``"""

    def _on_access(self, key: str) -> None:
        pass

    def _peek(self, key: str) -> CacheEntry[Any] | None:
        return self._cache.get(key)

    def get_entry(self, key: str) -> CacheEntry[Any] | None:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._record_miss()
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._cache[key]
                self._record_expiration()
                self._record_miss()
                return None

            entry.access(now)
            self._on_access(key)
            self._record_hit()
            return entry

    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        with self._lock:
            now = self._clock()
            if key in self._cache:
                del self._cache[key]

            self._cache[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=self._expiry_for(ttl_seconds, now),
                last_accessed=now,
                metadata=metadata or {},
            )
            self._record_set()

            if len(self._cache) > self.max_size:
                self._evict_one(now, protect=key)

    def _evict_one(self, now: float, protect: str) -> None:
        expired = next(
            (k for k, e in self._cache.items() if k != protect and e.is_expired(now)), None
        )
        if expired is not None:
            del self._cache[expired]
            self._record_expiration()
            return

        victim = self._choose_victim(protect)
        del self._cache[victim]
        self._record_eviction()

    def delete(self, key: str) -> bool:
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def cleanup_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired_keys = [k for k, e in self._cache.items() if e.is_expired(now)]
            for key in expired_keys:
                del self._cache[key]
                self._record_expiration()
            return len(expired_keys)

    def invalidate_pattern(self, pattern: str) -> int:
        """Delete every key containing ``pattern``"""
        with self._lock:
            keys_to_delete = [k for k in self._cache if pattern in k]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    def invalidate_where(self, predicate: Any) -> int:
        """Delete every entry for which ``predicate(entry)`` is true"""
        with self._lock:
            keys_to_delete = [k for k, e in self._cache.items() if predicate(e)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._cache)

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> dict[str, Any]:
        stats = super().get_stats()
        stats["policy"] = self.policy
        return stats


class LRUCache(_OrderedMemoryCache):
    """Evicts the least recently accessed entry"""

    policy = "lru"

    def _on_access(self, key: str) -> None:
        self._cache.move_to_end(key)

    def _choose_victim(self, protect: str) -> str:
        return next(k for k in self._cache if k != protect)


class LFUCache(_OrderedMemoryCache):
    """Evicts the entry with the fewest hits; ties go to the least recently used"""

    policy = "lfu"

    def _choose_victim(self, protect: str) -> str:
        candidates = (e for e in self._cache.values() if e.key != protect)
        return min(candidates, key=lambda e: (e.hits, e.last_accessed)).key


class TTLCache(_OrderedMemoryCache):
    """
    Every entry expires; over capacity the entry closest to expiry goes first.

    Expired entries are dropped lazily on access and by ``cleanup_expired``,
    which the engine's background sweep calls periodically.
    """

    policy = "ttl"

    def __init__(self, ttl_seconds: float = 3600, max_size: int = 1000, clock: Clock | None = None):
        if ttl_seconds <= 0:
            raise ValueError("TTLCache requires a positive ttl_seconds")
        super().__init__(ttl_seconds=ttl_seconds, max_size=max_size, clock=clock)

    def _choose_victim(self, protect: str) -> str:
        return min(
            (e for e in self._cache.values() if e.key != protect),
            key=lambda e: e.expires_at if e.expires_at is not None else float("inf"),
        ).key


CACHE_POLICIES: dict[str, type[_OrderedMemoryCache]] = {
    "lru": LRUCache,
    "lfu": LFUCache,
    "ttl": TTLCache,
}


def create_cache(
    policy: str = "lru",
    max_size: int = 1000,
    ttl_seconds: float = 3600,
    clock: Clock | None = None,
) -> _OrderedMemoryCache:
    cache_class = CACHE_POLICIES.get(policy.lower())
    if cache_class is None:
        raise ValueError(f"Unknown cache policy: {policy}. Use one of {sorted(CACHE_POLICIES)}")
    return cache_class(ttl_seconds=ttl_seconds, max_size=max_size, clock=clock)
