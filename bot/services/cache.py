from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from typing import Any, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from core.config import RedisConfig

LOGGER = logging.getLogger(__name__)

KEY_PREFIX = "ticketbot:"

Document = dict[str, Any]


class CacheBackend(Protocol):
    """Short-lived store for JSON documents such as guild settings.

    The cache is never the source of truth: a miss or an unreachable backend
    means "read the database". ``set`` and ``delete`` report whether the
    backend accepted the write.
    """

    async def get(self, key: str) -> Document | None: ...
    async def set(self, key: str, document: Document, ttl: int | None = None) -> bool: ...
    async def delete(self, key: str) -> bool: ...
    async def ping(self) -> bool: ...
    async def close(self) -> None: ...


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[str, float | None]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Document | None:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, deadline = entry
            if deadline is not None and self._clock() >= deadline:
                del self._entries[key]
                return None
        # Stored serialized so callers never share a mutable document.
        return json.loads(payload)

    async def set(self, key: str, document: Document, ttl: int | None = None) -> bool:
        deadline = self._clock() + ttl if ttl else None
        async with self._lock:
            self._entries[key] = (json.dumps(document, separators=(",", ":")), deadline)
        return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            self._entries.pop(key, None)
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()


class RedisCache:
    def __init__(self, url: str, prefix: str = KEY_PREFIX) -> None:
        self._client = redis.from_url(url, decode_responses=True)
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    async def get(self, key: str) -> Document | None:
        try:
            payload = await self._client.get(self._key(key))
        except RedisError as exc:
            LOGGER.warning("Cache read failed for %s, falling back to database: %s", key, exc)
            return None
        return json.loads(payload) if payload else None

    async def set(self, key: str, document: Document, ttl: int | None = None) -> bool:
        try:
            await self._client.set(self._key(key), json.dumps(document, separators=(",", ":")), ex=ttl or None)
        except RedisError as exc:
            LOGGER.warning("Cache write failed for %s: %s", key, exc)
            return False
        return True

    async def delete(self, key: str) -> bool:
        try:
            await self._client.delete(self._key(key))
        except RedisError as exc:
            LOGGER.error("Cache delete failed for %s, entry may be stale until it expires: %s", key, exc)
            return False
        return True

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()


async def build_cache(config: RedisConfig) -> CacheBackend:
    if not config.enabled:
        LOGGER.info("Redis disabled, caching guild settings in memory")
        return MemoryCache()
    cache = RedisCache(config.url)
    if not await cache.ping():
        LOGGER.warning("Redis at %s is not answering yet; reads will use the database until it does", config.url)
    else:
        LOGGER.info("Using Redis cache at %s", config.url)
    return cache
