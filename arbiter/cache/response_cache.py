import copy
import hashlib
import threading
from typing import Any

import orjson

from arbiter.cache.base import Clock
from arbiter.cache.memory_cache import create_cache
from arbiter.core.logging import get_standard_logger as get_logger
from arbiter.core.types import Message, ProviderResponse, RoutingRequest


class ResponseCache:
    """
    Cache of provider responses keyed by a content hash of the request.

    A hit returns a copy of the stored response and only touches cache
    statistics; the cost the hit avoided is added to ``savings``.
    """

    def __init__(
        self,
        policy: str = "lru",
        max_size: int = 100,
        ttl_seconds: float = 3600,
        clock: Clock | None = None,
    ):
        self.policy = policy
        self._cache = create_cache(policy, max_size=max_size, ttl_seconds=ttl_seconds, clock=clock)
        self._savings = 0.0
        self._lock = threading.RLock()
        self._logger = get_logger("arbiter.cache.response")

    @staticmethod
    def get_cache_key(
        messages: list[Message],
        model: str | None = None,
        temperature: float = 0.7,
        system_prompt: str | None = None,
    ) -> str:
        """sha256 over the normalized message sequence and decision parameters"""
        normalized: list[list[str]] = []
        if system_prompt:
            normalized.append(["system", system_prompt.strip()])
        normalized.extend([m.role.value, m.content.strip()] for m in messages)

        payload = {
            "messages": normalized,
            "model": model or "",
            "temperature": round(float(temperature), 4),
        }
        return hashlib.sha256(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)).hexdigest()

    def key_for_request(self, request: RoutingRequest) -> str:
        return self.get_cache_key(
            request.messages,
            model=request.model,
            temperature=request.temperature,
            system_prompt=request.system_prompt,
        )

    def get(self, key: str) -> ProviderResponse | None:
        with self._lock:
            entry = self._cache.get_entry(key)
            if entry is None:
                self._logger.debug(f"Cache miss for key: {key[:16]}...")
                return None

            self._savings += entry.metadata.get("cost", 0.0)
            self._logger.debug(f"Cache hit for key: {key[:16]}...")
            return copy.deepcopy(entry.value)  # type: ignore[no-any-return]

    def put(
        self,
        key: str,
        response: ProviderResponse,
        cost: float = 0.0,
        provider: str = "",
        ttl_seconds: float | None = None,
    ) -> None:
        with self._lock:
            self._cache.set(
                key,
                copy.deepcopy(response),
                ttl_seconds=ttl_seconds,
                metadata={"cost": cost, "provider": provider or response.provider},
            )
        self._logger.debug(f"Cached response for key: {key[:16]}...")

    def invalidate(self, key: str | None = None, provider: str | None = None) -> int:
        """Drop one key, every entry of a provider, or everything"""
        with self._lock:
            if key is not None:
                return 1 if self._cache.delete(key) else 0
            if provider is not None:
                count = self._cache.invalidate_where(
                    lambda entry: entry.metadata.get("provider") == provider
                )
                self._logger.info(f"Invalidated {count} cache entries for {provider}")
                return count
            count = len(self._cache)
            self._cache.clear()
            return count

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
            self._cache.reset_stats()
            self._savings = 0.0
        self._logger.info("Cache cleared")

    def cleanup_expired(self) -> int:
        return self._cache.cleanup_expired()

    @property
    def savings(self) -> float:
        return self._savings

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            stats = self._cache.get_stats()
            return {
                "policy": self.policy,
                "hits": stats["hits"],
                "misses": stats["misses"],
                "hit_rate": stats["hit_rate"],
                "evictions": stats["evictions"],
                "expirations": stats["expirations"],
                "size": stats["size"],
                "max_size": stats["max_size"],
                "savings": self._savings,
            }


def create_response_cache(
    policy: str = "lru",
    max_size: int = 100,
    ttl_seconds: float = 3600,
    clock: Clock | None = None,
) -> ResponseCache:
    return ResponseCache(policy=policy, max_size=max_size, ttl_seconds=ttl_seconds, clock=clock)
