from arbiter.cache.base import CacheBackend, CacheEntry
from arbiter.cache.memory_cache import LFUCache, LRUCache, TTLCache, create_cache
from arbiter.cache.response_cache import ResponseCache, create_response_cache

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "LRUCache",
    "LFUCache",
    "TTLCache",
    "create_cache",
    "ResponseCache",
    "create_response_cache",
]
