"""Time-bounded cache for computed analytics responses.

One cache instance is built at startup and shared by all requests. Entries
older than the TTL are treated as absent. Concurrent requests for the same
key may both compute and both write; the last write wins.

Two backends:
- MemoryAnalyticsCache: a dict inside this process.
- RedisAnalyticsCache: JSON values under a key prefix, expired by Redis.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60 * 60
REDIS_PREFIX = "postwise:analytics:"


class DateTimeEncoder(json.JSONEncoder):
    """JSON encoder that handles datetime objects."""

    def default(self, obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        return super().default(obj)


def _list_part(values: Optional[Iterable[str]]) -> str:
    if not values:
        return "all"
    return ",".join(sorted(set(values)))


def build_cache_key(
    scope: str,
    user_id: str,
    start: Optional[str],
    end: Optional[str],
    platforms: Optional[Iterable[str]] = None,
    metrics: Optional[Iterable[str]] = None,
) -> str:
    """Cache key for an analytics query.

    List filters are de-duplicated and sorted so "twitter,youtube" and
    "youtube,twitter" share an entry.
    """
    return ":".join([
        scope,
        user_id,
        start or "default",
        end or "default",
        _list_part(platforms),
        _list_part(metrics),
    ])


@dataclass
class CacheEntry:
    value: dict
    created_at: float


class AnalyticsCache(ABC):
    """get/set/clear over JSON-serializable dict values."""

    ttl_seconds: int = DEFAULT_TTL_SECONDS

    @abstractmethod
    async def get(self, key: str) -> Optional[dict]:
        ...

    @abstractmethod
    async def set(self, key: str, value: dict) -> None:
        ...

    @abstractmethod
    async def clear(self) -> int:
        """Drop every entry. Returns how many were removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""

    async def health_check(self) -> bool:
        return True


class MemoryAnalyticsCache(AnalyticsCache):
    """Process-local cache with lazy expiry."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.created_at < self.ttl_seconds

    async def get(self, key: str) -> Optional[dict]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry):
            self._entries.pop(key, None)
            return None
        return entry.value

    async def set(self, key: str, value: dict) -> None:
        self._entries[key] = CacheEntry(value=value, created_at=self._clock())

    async def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def __len__(self) -> int:
        return len(self._entries)


class RedisAnalyticsCache(AnalyticsCache):
    """Redis-backed cache shared by every worker process."""

    def __init__(
        self,
        redis_url: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        prefix: str = REDIS_PREFIX,
    ):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._pool: redis.Redis | None = None

    async def get_client(self) -> redis.Redis:
        """Get or create Redis connection pool."""
        if self._pool is None:
            self._pool = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
        return self._pool

    async def close(self) -> None:
        """Close Redis connection pool."""
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None

    async def get(self, key: str) -> Optional[dict]:
        client = await self.get_client()
        data = await client.get(f"{self.prefix}{key}")
        if data is None:
            return None
        return json.loads(data)

    async def set(self, key: str, value: dict) -> None:
        client = await self.get_client()
        data = json.dumps(value, cls=DateTimeEncoder)
        await client.set(f"{self.prefix}{key}", data, ex=self.ttl_seconds)

    async def clear(self) -> int:
        client = await self.get_client()
        keys = [key async for key in client.scan_iter(match=f"{self.prefix}*")]
        if not keys:
            return 0
        return await client.delete(*keys)

    async def health_check(self) -> bool:
        """Check if Redis is available."""
        try:
            client = await self.get_client()
            await client.ping()
            return True
        except redis.RedisError:
            return False


def create_analytics_cache(backend: str, redis_url: str, ttl_seconds: int) -> AnalyticsCache:
    """Build the configured cache backend."""
    if backend == "redis":
        return RedisAnalyticsCache(redis_url, ttl_seconds=ttl_seconds)
    return MemoryAnalyticsCache(ttl_seconds=ttl_seconds)
