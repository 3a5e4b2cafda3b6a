"""
Unit tests for the cache service
"""
from studylab.services.cache import CacheService


class TestCacheService:
    def test_memory_backend_without_url(self):
        cache = CacheService(None)
        assert cache.backend == "memory"
        assert cache.set("k", {"a": 1})
        assert cache.get("k") == {"a": 1}
        assert cache.delete("k")
        assert cache.get("k") is None

    def test_unreachable_redis_falls_back_to_memory(self):
        cache = CacheService("redis://127.0.0.1:1/0")
        assert cache.backend == "memory"

    def test_remember_computes_once(self):
        cache = CacheService(None)
        calls = []

        def compute():
            calls.append(1)
            return "transcript"

        assert cache.remember("audio", compute) == "transcript"
        assert cache.remember("audio", compute) == "transcript"
        assert len(calls) == 1

    def test_keys_are_namespaced(self):
        first = CacheService(None, prefix="a:")
        first.set("k", 1)
        assert first._memory_cache == {"a:k": 1}
