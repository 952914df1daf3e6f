"""
Cache clients for quiz lookups.

One backend is chosen at startup from ``settings.cache_backend``; call sites
only ever see the ``CacheClient`` interface.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple
import logging
import threading
import time

import redis

logger = logging.getLogger(__name__)


class CacheClient(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    @abstractmethod
    def flush(self) -> None:
        ...

    def close(self) -> None:
        pass


class InMemoryCache(CacheClient):
    """Process-local cache with lazy expiry"""

    def __init__(self, clock=time.monotonic):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at and expires_at < self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds if ttl_seconds else 0
        with self._lock:
            self._entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def flush(self) -> None:
        with self._lock:
            self._entries.clear()

    def close(self) -> None:
        self.flush()


class RedisCache(CacheClient):
    """Redis-backed cache shared between workers"""

    def __init__(self, url: str, prefix: str = "scripturequiz:"):
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            return self._client.get(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis get failed for {key}: {e}")
            return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        try:
            self._client.set(self._key(key), value, ex=ttl_seconds)
        except redis.RedisError as e:
            logger.error(f"Redis set failed for {key}: {e}")

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as e:
            logger.error(f"Redis delete failed for {key}: {e}")

    def flush(self) -> None:
        try:
            for key in self._client.scan_iter(f"{self._prefix}*"):
                self._client.delete(key)
        except redis.RedisError as e:
            logger.error(f"Redis flush failed: {e}")

    def close(self) -> None:
        self._client.close()


def build_cache(settings) -> CacheClient:
    if settings.cache_backend == "redis":
        logger.info("Using Redis cache")
        return RedisCache(settings.redis_url)
    logger.info("Using in-memory cache")
    return InMemoryCache()


_cache_client: Optional[CacheClient] = None


def get_cache() -> CacheClient:
    global _cache_client
    if _cache_client is None:
        from scripturequiz.config import settings
        _cache_client = build_cache(settings)
    return _cache_client


def close_cache() -> None:
    global _cache_client
    if _cache_client is not None:
        _cache_client.close()
        _cache_client = None
