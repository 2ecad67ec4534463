import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with optional expiry (clock seconds)"""

    key: str
    value: T
    created_at: float = field(default_factory=time.time)
    expires_at: float | None = None
    hits: int = 0
    last_accessed: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)

    def is_expired(self, now: float) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at

    def access(self, now: float) -> None:
        self.hits += 1
        self.last_accessed = now


class CacheBackend(ABC):
    """
    Base interface for in-memory caches.

    Implementations never return an expired entry and evict exactly one entry
    when an insert pushes them over ``max_size``. All public methods are
    guarded by a re-entrant lock.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_size: int = 1000,
        clock: Clock | None = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock or time.time
        self._lock = threading.RLock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "evictions": 0, "expirations": 0}

    @abstractmethod
    def get_entry(self, key: str) -> CacheEntry[Any] | None:
        """Live entry for key, recording a hit or miss"""

    @abstractmethod
    def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: float | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def cleanup_expired(self) -> int:
        """Drop every expired entry; returns how many were removed"""

    @abstractmethod
    def __len__(self) -> int:
        pass

    def get(self, key: str) -> Any | None:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def exists(self, key: str) -> bool:
        with self._lock:
            entry = self._peek(key)
            return entry is not None and not entry.is_expired(self._clock())

    def _peek(self, key: str) -> CacheEntry[Any] | None:
        """Entry without touching statistics or order"""
        return None

    def _expiry_for(self, ttl_seconds: float | None, now: float) -> float | None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        return now + ttl if ttl and ttl > 0 else None

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._stats["hits"] + self._stats["misses"]
            hit_rate = self._stats["hits"] / total if total > 0 else 0.0
            return {
                **self._stats,
                "hit_rate": hit_rate,
                "total_requests": total,
                "size": len(self),
                "max_size": self.max_size,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._stats = {key: 0 for key in self._stats}

    def _record_hit(self) -> None:
        self._stats["hits"] += 1

    def _record_miss(self) -> None:
        self._stats["misses"] += 1

    def _record_set(self) -> None:
        self._stats["sets"] += 1

    def _record_eviction(self) -> None:
        self._stats["evictions"] += 1

    def _record_expiration(self) -> None:
        self._stats["expirations"] += 1
