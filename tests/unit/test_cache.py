"""
Tests for the in-memory caches and the response cache
"""

import pytest

from arbiter.cache import (
    CacheEntry,
    LFUCache,
    LRUCache,
    ResponseCache,
    TTLCache,
    create_cache,
    create_response_cache,
)
from arbiter.core.types import Message, MessageRole, ProviderResponse, Usage


class TestCacheEntry:
    def test_expiry(self):
        entry = CacheEntry(key="k", value=1, created_at=0.0, expires_at=10.0)
        assert not entry.is_expired(9.9)
        assert entry.is_expired(10.0)

    def test_no_expiry(self):
        entry = CacheEntry(key="k", value=1)
        assert not entry.is_expired(1e12)

    def test_access(self):
        entry = CacheEntry(key="k", value=1)
        entry.access(5.0)
        assert entry.hits == 1
        assert entry.last_accessed == 5.0


class TestLRUCache:
    def test_set_get(self, clock):
        cache = LRUCache(clock=clock)
        cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["policy"] == "lru"

    def test_evicts_least_recently_used(self, clock):
        cache = LRUCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.keys() == ["a", "c"]
        assert cache.get_stats()["evictions"] == 1

    def test_ttl_expiry(self, clock):
        cache = LRUCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.advance(10)
        assert cache.get("a") is None
        assert len(cache) == 0
        assert cache.get_stats()["expirations"] == 1

    def test_per_entry_ttl(self, clock):
        cache = LRUCache(ttl_seconds=10, clock=clock)
        cache.set("short", 1, ttl_seconds=1)
        cache.set("long", 2)
        clock.advance(5)
        assert not cache.exists("short")
        assert cache.exists("long")

    def test_expired_entry_evicted_first(self, clock):
        cache = LRUCache(max_size=2, ttl_seconds=100, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2, ttl_seconds=1)
        clock.advance(2)
        cache.set("c", 3)
        assert sorted(cache.keys()) == ["a", "c"]

    def test_cleanup_expired(self, clock):
        cache = LRUCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.advance(11)
        assert cache.cleanup_expired() == 2
        assert len(cache) == 0

    def test_delete_and_invalidate(self, clock):
        cache = LRUCache(clock=clock)
        cache.set("user:1", 1)
        cache.set("user:2", 2)
        cache.set("item:1", 3)

        assert cache.delete("item:1")
        assert not cache.delete("item:1")
        assert cache.invalidate_pattern("user:") == 2
        assert len(cache) == 0


class TestOtherPolicies:
    def test_lfu_evicts_least_hit(self, clock):
        cache = LFUCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.get("a")
        cache.get("b")
        cache.set("c", 3)
        assert sorted(cache.keys()) == ["a", "c"]

    def test_ttl_evicts_soonest_expiry(self, clock):
        cache = TTLCache(max_size=2, ttl_seconds=100, clock=clock)
        cache.set("a", 1, ttl_seconds=50)
        cache.set("b", 2)
        cache.set("c", 3)
        assert sorted(cache.keys()) == ["b", "c"]

    def test_ttl_requires_positive_ttl(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=0)

    @pytest.mark.parametrize("policy,cls", [("lru", LRUCache), ("LFU", LFUCache), ("ttl", TTLCache)])
    def test_factory(self, policy, cls):
        assert isinstance(create_cache(policy), cls)

    def test_factory_rejects_unknown_policy(self):
        with pytest.raises(ValueError):
            create_cache("fifo")


def _messages(text: str = "Hello") -> list[Message]:
    return [Message(role=MessageRole.USER, content=text)]


def _response(content: str = "Hi!") -> ProviderResponse:
    return ProviderResponse(
        content=content, provider="alpha", model="alpha-1", usage=Usage(10, 5), cost=0.002
    )


class TestResponseCache:
    def test_key_is_stable_and_normalized(self):
        key = ResponseCache.get_cache_key(_messages("Hello"))
        assert key == ResponseCache.get_cache_key(_messages("  Hello  "))
        assert len(key) == 64

    def test_key_depends_on_parameters(self):
        base = ResponseCache.get_cache_key(_messages())
        assert base != ResponseCache.get_cache_key(_messages(), temperature=0.2)
        assert base != ResponseCache.get_cache_key(_messages(), model="beta-1")
        assert base != ResponseCache.get_cache_key(_messages(), system_prompt="Be terse")
        assert base != ResponseCache.get_cache_key(_messages("Goodbye"))

    def test_put_get_returns_copy(self, clock):
        cache = create_response_cache(clock=clock)
        key = cache.get_cache_key(_messages())
        cache.put(key, _response(), cost=0.002)

        first = cache.get(key)
        first.content = "mutated"
        assert cache.get(key).content == "Hi!"

    def test_savings_accumulate_on_hits(self, clock):
        cache = ResponseCache(clock=clock)
        key = cache.get_cache_key(_messages())
        cache.put(key, _response(), cost=0.002)
        cache.get(key)
        cache.get(key)
        cache.get("nope")

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["savings"] == pytest.approx(0.004)

    def test_expires(self, clock):
        cache = ResponseCache(ttl_seconds=60, clock=clock)
        key = cache.get_cache_key(_messages())
        cache.put(key, _response())
        clock.advance(61)
        assert cache.get(key) is None

    def test_invalidate_by_provider(self, clock):
        cache = ResponseCache(clock=clock)
        cache.put("k1", _response(), provider="alpha")
        cache.put("k2", _response(), provider="beta")
        assert cache.invalidate(provider="alpha") == 1
        assert cache.get("k1") is None
        assert cache.get("k2") is not None

    def test_clear_resets_stats(self, clock):
        cache = ResponseCache(clock=clock)
        cache.put("k1", _response(), cost=1.0)
        cache.get("k1")
        cache.clear()
        stats = cache.get_stats()
        assert stats["size"] == 0
        assert stats["hits"] == 0
        assert stats["savings"] == 0.0
