"""
Key-value result cache with per-entry expiry.

- RedisResultCache: shared across workers, used in production
- InMemoryResultCache: LRU + TTL inside the process (single worker / tests)
"""
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from redis.asyncio import Redis

CacheValue = Union[bytes, str]


def _to_bytes(value: CacheValue) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else bytes(value)


class ResultCache(ABC):
    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored value or None when absent/expired."""

    @abstractmethod
    async def set_with_ttl(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a key; deleting a missing key is not an error."""

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the store answers; raise otherwise."""

    async def close(self) -> None:
        return None


class RedisResultCache(ResultCache):
    def __init__(self, client: Redis):
        self.client = client

    @classmethod
    def from_settings(cls, settings) -> "RedisResultCache":
        client = Redis(
            host=settings.redis_host,
            port=int(settings.redis_port),
            password=settings.redis_password or None,
            db=int(settings.redis_db),
        )
        return cls(client)

    async def get(self, key: str) -> Optional[bytes]:
        value = await self.client.get(key)
        if value is None:
            return None
        return _to_bytes(value)

    async def set_with_ttl(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        await self.client.set(key, _to_bytes(value), ex=int(ttl_seconds))

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()


@dataclass
class _Entry:
    value: bytes
    expires_at: float
    created_at: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class InMemoryResultCache(ResultCache):
    """LRU cache with TTL expiry kept in process memory."""

    def __init__(self, max_size: int = 1000):
        """
        Args:
            max_size: maximum number of entries; the least recently used entry
                is evicted first.
        """
        self._cache: "OrderedDict[str, _Entry]" = OrderedDict()
        self._max_size = max(1, int(max_size))
        self._total_hits = 0
        self._total_misses = 0

    async def get(self, key: str) -> Optional[bytes]:
        entry = self._cache.get(key)
        if entry is None:
            self._total_misses += 1
            return None

        if entry.is_expired(time.time()):
            del self._cache[key]
            self._total_misses += 1
            return None

        self._cache.move_to_end(key)
        entry.hit_count += 1
        self._total_hits += 1
        return entry.value

    async def set_with_ttl(self, key: str, value: CacheValue, ttl_seconds: int) -> None:
        if key in self._cache:
            del self._cache[key]
        while len(self._cache) >= self._max_size:
            self._cache.popitem(last=False)
        now = time.time()
        self._cache[key] = _Entry(value=_to_bytes(value), expires_at=now + int(ttl_seconds), created_at=now)

    async def delete(self, key: str) -> None:
        self._cache.pop(key, None)

    async def ping(self) -> bool:
        return True

    def clear(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        return count

    def get_stats(self, top_n: int = 5) -> Dict[str, Any]:
        lookups = self._total_hits + self._total_misses
        now = time.time()
        hottest = sorted(self._cache.items(), key=lambda item: item[1].hit_count, reverse=True)[:top_n]
        oldest = min((entry.created_at for entry in self._cache.values()), default=None)
        return {
            "size": len(self._cache),
            "max_size": self._max_size,
            "total_hits": self._total_hits,
            "total_misses": self._total_misses,
            "hit_rate": round(self._total_hits / lookups, 4) if lookups else 0,
            "oldest_entry_age_seconds": round(now - oldest, 1) if oldest is not None else None,
            "top_keys": [{"key": key, "hits": entry.hit_count} for key, entry in hottest],
        }


def create_result_cache(settings) -> ResultCache:
    backend = (settings.cache_backend or "").strip().lower()
    if backend == "memory":
        return InMemoryResultCache(max_size=settings.memory_cache_max_size)
    if backend == "redis":
        return RedisResultCache.from_settings(settings)
    raise ValueError(f"Unsupported cache_backend={settings.cache_backend!r}. Allowed: 'redis', 'memory'.")
