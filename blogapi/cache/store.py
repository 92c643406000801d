# blogapi/cache/store.py
"""Look-aside cache with per-key TTL and single-flight recomputation.

Two backends share one interface: Redis for deployments and an in-process
store for development and tests. Both keep values JSON-encoded, and both
keep a longer-lived stale copy that is only ever served to callers that
explicitly ask for stale-on-error.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import OrderedDict
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, Protocol

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from blogapi.core.errors import CacheComputeFailed
from blogapi.core.metrics import cache_backend_failures

logger = logging.getLogger(__name__)

MISSING = object()


def _dumps(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError) as exc:
        raise CacheComputeFailed(f"value is not serialisable: {exc}") from exc


class CacheBackend(Protocol):
    async def get(self, key: str) -> Any: ...

    async def get_stale(self, key: str) -> Any: ...

    async def set(self, key: str, value: Any, ttl: int) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class MemoryBackend:
    """In-process TTL store bounded to ``max_entries``.

    Entries past their stale window are dropped when read; once the store is
    full the oldest insertions are evicted first.
    """

    def __init__(self, stale_ttl: int = 0, clock: Callable[[], float] = time.monotonic, max_entries: int = 10_000):
        self._entries: OrderedDict[str, tuple[str, float, float]] = OrderedDict()
        self._stale_ttl = stale_ttl
        self._clock = clock
        self._max_entries = max_entries

    async def get(self, key: str) -> Any:
        entry = self._live(key)
        if entry is None or self._clock() >= entry[1]:
            return MISSING
        return json.loads(entry[0])

    async def get_stale(self, key: str) -> Any:
        entry = self._live(key)
        return MISSING if entry is None else json.loads(entry[0])

    async def set(self, key: str, value: Any, ttl: int) -> None:
        payload = _dumps(value)
        now = self._clock()
        self._entries.pop(key, None)
        self._entries[key] = (payload, now + ttl, now + max(ttl, self._stale_ttl))
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._entries.pop(key, None) is not None:
                removed += 1
        return removed

    async def clear(self) -> None:
        self._entries.clear()

    async def close(self) -> None:
        self._entries.clear()

    def _live(self, key: str) -> tuple[str, float, float] | None:
        entry = self._entries.get(key)
        if entry is not None and self._clock() >= entry[2]:
            del self._entries[key]
            return None
        return entry


class RedisBackend:
    """Redis-backed store; every Redis failure surfaces as CacheComputeFailed."""

    def __init__(self, client: aioredis.Redis, prefix: str, stale_ttl: int = 0):
        self._redis = client
        self._prefix = prefix
        self._stale_ttl = stale_ttl

    @staticmethod
    def _stale_key(key: str) -> str:
        return f"stale:{key}"

    async def get(self, key: str) -> Any:
        try:
            cached = await self._redis.get(key)
        except RedisError as exc:
            raise CacheComputeFailed(f"redis get failed: {exc}") from exc
        return MISSING if cached is None else json.loads(cached)

    async def get_stale(self, key: str) -> Any:
        try:
            cached = await self._redis.get(self._stale_key(key))
        except RedisError as exc:
            raise CacheComputeFailed(f"redis get failed: {exc}") from exc
        return MISSING if cached is None else json.loads(cached)

    async def set(self, key: str, value: Any, ttl: int) -> None:
        payload = _dumps(value)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.setex(key, ttl, payload)
                if self._stale_ttl > ttl:
                    pipe.setex(self._stale_key(key), self._stale_ttl, payload)
                await pipe.execute()
        except RedisError as exc:
            raise CacheComputeFailed(f"redis set failed: {exc}") from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._redis.delete(*keys, *(self._stale_key(k) for k in keys))
        except RedisError as exc:
            raise CacheComputeFailed(f"redis delete failed: {exc}") from exc

    async def clear(self) -> None:
        try:
            keys = await self._redis.keys(f"{self._prefix}:*")
            keys += await self._redis.keys(f"stale:{self._prefix}:*")
            if keys:
                await self._redis.delete(*keys)
        except RedisError as exc:
            raise CacheComputeFailed(f"redis clear failed: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()


class ReadCache:
    """Look-aside cache in front of expensive reads.

    ``get_or_compute`` guarantees at most one in-flight computation per key
    in this process: concurrent misses wait on the leader's task. A waiter
    with ``wait_timeout`` set gives up waiting and computes directly; the
    leader's computation still completes and fills the cache.
    """

    def __init__(self, backend: CacheBackend, wait_timeout: float | None = None):
        self.backend = backend
        self.wait_timeout = wait_timeout
        self._inflight: dict[str, asyncio.Task] = {}

    async def get_or_compute(
        self,
        key: str,
        ttl: int,
        compute: Callable[[], Awaitable[Any]],
        *,
        stale_on_error: bool = False,
    ) -> Any:
        try:
            cached = await self.backend.get(key)
        except CacheComputeFailed as exc:
            self._bypass("get", key, exc)
            return await compute()
        if cached is not MISSING:
            logger.debug("cache hit %s", key)
            return cached

        logger.debug("cache miss %s", key)
        task = self._inflight.get(key)
        leader = task is None
        if leader:
            task = asyncio.ensure_future(self._fill(key, ttl, compute))
            self._inflight[key] = task
            task.add_done_callback(partial(self._release, key))

        try:
            if leader or self.wait_timeout is None:
                return await asyncio.shield(task)
            try:
                return await asyncio.wait_for(asyncio.shield(task), self.wait_timeout)
            except asyncio.TimeoutError:
                logger.warning("gave up waiting on %s after %.2fs, computing directly", key, self.wait_timeout)
                return await compute()
        except Exception:
            if stale_on_error:
                stale = await self._stale(key)
                if stale is not MISSING:
                    logger.warning("compute for %s failed, serving stale value", key, exc_info=True)
                    return stale
            raise

    async def forget(self, key: str) -> int:
        return await self.forget_many([key])

    async def forget_many(self, keys: Iterable[str]) -> int:
        keys = list(dict.fromkeys(keys))
        for key in keys:
            # an in-flight fill started before the eviction must not store its value
            self._inflight.pop(key, None)
        removed = await self.backend.delete(*keys)
        logger.debug("evicted %s (%d present)", keys, removed)
        return removed

    async def clear(self) -> None:
        self._inflight.clear()
        await self.backend.clear()

    async def close(self) -> None:
        await self.backend.close()

    async def _fill(self, key: str, ttl: int, compute: Callable[[], Awaitable[Any]]) -> Any:
        value = await compute()
        if self._inflight.get(key) is not asyncio.current_task():
            logger.debug("discarding value for %s evicted during computation", key)
            return value
        try:
            await self.backend.set(key, value, ttl)
            # an eviction that landed while the write was in flight wins
            if self._inflight.get(key) is not asyncio.current_task():
                logger.debug("evicted %s during write, removing stored value", key)
                await self.backend.delete(key)
        except CacheComputeFailed as exc:
            self._bypass("set", key, exc)
        return value

    async def _stale(self, key: str) -> Any:
        try:
            return await self.backend.get_stale(key)
        except CacheComputeFailed as exc:
            self._bypass("get_stale", key, exc)
            return MISSING

    def _release(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    @staticmethod
    def _bypass(operation: str, key: str, exc: Exception) -> None:
        cache_backend_failures.labels(operation=operation).inc()
        logger.warning("cache %s failed for %s, bypassing cache: %s", operation, key, exc)


def build_cache(settings) -> ReadCache:
    if settings.CACHE_BACKEND == "redis":
        client = aioredis.from_url(settings.REDIS_URL, encoding="utf-8", decode_responses=True)
        backend = RedisBackend(client, prefix=settings.CACHE_PREFIX, stale_ttl=settings.CACHE_STALE_TTL)
    elif settings.CACHE_BACKEND == "memory":
        backend = MemoryBackend(stale_ttl=settings.CACHE_STALE_TTL)
    else:
        raise ValueError(f"unknown CACHE_BACKEND {settings.CACHE_BACKEND!r}")
    logger.info("read cache using %s backend", settings.CACHE_BACKEND)
    return ReadCache(backend, wait_timeout=settings.CACHE_WAIT_TIMEOUT)
