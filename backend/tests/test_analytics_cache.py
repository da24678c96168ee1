"""Tests for the analytics cache and its keys."""

import pytest

from services.analytics_cache import MemoryAnalyticsCache, build_cache_key, create_analytics_cache, RedisAnalyticsCache


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCacheKey:
    def test_list_order_does_not_matter(self):
        first = build_cache_key("aggregated", "u1", "2024-01-01", "2024-01-31", ["youtube", "twitter"], ["likes"])
        second = build_cache_key("aggregated", "u1", "2024-01-01", "2024-01-31", ["twitter", "youtube"], ["likes"])
        assert first == second

    def test_duplicates_collapse(self):
        assert build_cache_key("s", "u1", None, None, ["twitter", "twitter"]) == \
            build_cache_key("s", "u1", None, None, ["twitter"])

    def test_defaults(self):
        assert build_cache_key("overview", "u1", None, None) == "overview:u1:default:default:all:all"

    def test_users_and_ranges_are_distinct(self):
        keys = {
            build_cache_key("aggregated", "u1", "2024-01-01", None),
            build_cache_key("aggregated", "u2", "2024-01-01", None),
            build_cache_key("aggregated", "u1", "2024-02-01", None),
            build_cache_key("overview", "u1", "2024-01-01", None),
        }
        assert len(keys) == 4


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_get_set(self):
        cache = MemoryAnalyticsCache()
        assert await cache.get("k") is None

        await cache.set("k", {"data": [1]})
        assert await cache.get("k") == {"data": [1]}

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self):
        clock = FakeClock()
        cache = MemoryAnalyticsCache(ttl_seconds=3600, clock=clock)
        await cache.set("k", {"v": 1})

        clock.now += 3599
        assert await cache.get("k") == {"v": 1}

        clock.now += 1
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_overwrite_is_last_write_wins(self):
        cache = MemoryAnalyticsCache()
        await cache.set("k", {"v": 1})
        await cache.set("k", {"v": 2})
        assert await cache.get("k") == {"v": 2}

    @pytest.mark.asyncio
    async def test_clear_removes_everything(self):
        cache = MemoryAnalyticsCache()
        await cache.set("a", {})
        await cache.set("b", {})

        assert await cache.clear() == 2
        assert await cache.get("a") is None
        assert len(cache) == 0


class TestFactory:
    def test_memory_backend(self):
        cache = create_analytics_cache("memory", "redis://localhost:6379/0", 60)
        assert isinstance(cache, MemoryAnalyticsCache)
        assert cache.ttl_seconds == 60

    def test_redis_backend_is_lazy(self):
        cache = create_analytics_cache("redis", "redis://localhost:6379/0", 60)
        assert isinstance(cache, RedisAnalyticsCache)
        assert cache.ttl_seconds == 60
