"""
Cache clients for cart storage

A small async key/value interface with TTL and a conditional write, with an
in-process implementation and a Redis-backed one.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from ..core.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

# Decides whether a conditional write may proceed, given the current raw value
WritePredicate = Callable[[Optional[Any]], bool]


class CacheClient(ABC):
    """Abstract key/value cache with per-entry TTL"""

    name = "cache"

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get the raw value for key, or None when absent or expired"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store value under key, replacing any existing entry"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key; returns False if it was not present"""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key holds a live entry"""

    @abstractmethod
    async def compare_and_set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        expected: WritePredicate,
    ) -> bool:
        """
        Atomically store value if expected(current) holds.

        Returns:
            True if the value was written, False if the predicate rejected
            the current value or the entry changed during the write
        """

    @abstractmethod
    async def compare_and_delete(self, key: str, expected: WritePredicate) -> bool:
        """
        Atomically delete key if expected(current) holds.

        Returns:
            True if the predicate held (an absent key counts as deleted),
            False if it rejected the current value or the entry changed
            during the delete
        """

    async def close(self) -> None:
        """Release connections held by the client"""


class InMemoryCache(CacheClient):
    """Process-local cache with TTL support"""

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._cache: dict[str, dict[str, Any]] = {}
        self._clock = clock
        self._lock = asyncio.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "deletes": 0,
        }

    def _live_entry(self, key: str) -> Optional[dict[str, Any]]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry["expires_at"] <= self._clock():
            # Remove expired entry
            del self._cache[key]
            return None
        return entry

    def _store(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = self._clock()
        self._cache[key] = {
            "value": value,
            "expires_at": now + ttl_seconds,
            "created_at": now,
        }
        self._stats["sets"] += 1

    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        if entry is None:
            self._stats["misses"] += 1
            return None
        self._stats["hits"] += 1
        return entry["value"]

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        async with self._lock:
            self._store(key, value, ttl_seconds)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                self._stats["deletes"] += 1
                return True
            return False

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def compare_and_set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        expected: WritePredicate,
    ) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            current = entry["value"] if entry else None
            if not expected(current):
                return False
            self._store(key, value, ttl_seconds)
            return True

    async def compare_and_delete(self, key: str, expected: WritePredicate) -> bool:
        async with self._lock:
            entry = self._live_entry(key)
            current = entry["value"] if entry else None
            if not expected(current):
                return False
            if entry is not None:
                del self._cache[key]
                self._stats["deletes"] += 1
            return True

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until key expires, or None if absent"""
        entry = self._live_entry(key)
        if entry is None:
            return None
        return entry["expires_at"] - self._clock()

    def clear(self) -> None:
        """Clear all cache entries"""
        self._cache.clear()
        self._stats = {k: 0 for k in self._stats}

    def cleanup_expired(self) -> int:
        """Remove expired entries and return count removed"""
        current_time = self._clock()
        expired_keys = [
            key
            for key, entry in self._cache.items()
            if entry["expires_at"] <= current_time
        ]

        for key in expired_keys:
            del self._cache[key]

        return len(expired_keys)

    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics"""
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (
            (self._stats["hits"] / total_requests * 100) if total_requests > 0 else 0
        )

        return {
            **self._stats,
            "total_requests": total_requests,
            "hit_rate": round(hit_rate, 2),
            "cache_size": len(self._cache),
        }


class RedisCache(CacheClient):
    """Redis-backed cache"""

    name = "redis"

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisCache":
        """Create cache from a redis:// URL"""
        return cls(aioredis.from_url(url))

    async def close(self) -> None:
        await self._redis.aclose()

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await self._redis.get(key)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis GET failed for {key}: {e}")

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as e:
            raise CacheUnavailableError(f"Redis SET failed for {key}: {e}")

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._redis.delete(key))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis DEL failed for {key}: {e}")

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._redis.exists(key))
        except RedisError as e:
            raise CacheUnavailableError(f"Redis EXISTS failed for {key}: {e}")

    async def compare_and_set(
        self,
        key: str,
        value: Any,
        ttl_seconds: int,
        expected: WritePredicate,
    ) -> bool:
        return await self._watched(
            key, expected, lambda pipe: pipe.set(key, value, ex=ttl_seconds)
        )

    async def compare_and_delete(self, key: str, expected: WritePredicate) -> bool:
        return await self._watched(key, expected, lambda pipe: pipe.delete(key))

    async def _watched(
        self,
        key: str,
        expected: WritePredicate,
        command: Callable[[Any], Any],
    ) -> bool:
        """Run command in a MULTI block if expected(current) holds under WATCH"""
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if not expected(current):
                    await pipe.unwatch()
                    return False
                pipe.multi()
                command(pipe)
                await pipe.execute()
                return True
        except WatchError:
            logger.debug(f"Concurrent write on {key} during conditional update")
            return False
        except RedisError as e:
            raise CacheUnavailableError(f"Redis transaction failed for {key}: {e}")
