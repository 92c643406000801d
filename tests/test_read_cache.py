from __future__ import annotations

import asyncio

import pytest
from prometheus_client import REGISTRY

from blogapi.cache.store import MISSING, MemoryBackend, ReadCache
from blogapi.core.errors import CacheComputeFailed

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class BrokenBackend(MemoryBackend):
    async def get(self, key):
        raise CacheComputeFailed("connection refused")

    async def set(self, key, value, ttl):
        raise CacheComputeFailed("connection refused")


def _failures(operation: str) -> float:
    return REGISTRY.get_sample_value("blogapi_cache_backend_failures_total", {"operation": operation}) or 0.0


async def test_concurrent_misses_compute_once() -> None:
    cache = ReadCache(MemoryBackend())
    calls = 0
    release = asyncio.Event()

    async def compute():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"value": 42}

    waiters = [asyncio.create_task(cache.get_or_compute("api:post:1", 60, compute)) for _ in range(5)]
    await asyncio.sleep(0)
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert results == [{"value": 42}] * 5
    assert await cache.get_or_compute("api:post:1", 60, compute) == {"value": 42}
    assert calls == 1


async def test_failed_compute_is_not_cached() -> None:
    cache = ReadCache(MemoryBackend())

    async def boom():
        raise RuntimeError("db down")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("api:post:2", 60, boom)

    async def ok():
        return "fresh"

    assert await cache.get_or_compute("api:post:2", 60, ok) == "fresh"


async def test_stale_value_only_served_when_requested() -> None:
    clock = FakeClock()
    cache = ReadCache(MemoryBackend(stale_ttl=600, clock=clock))

    async def first():
        return "v1"

    async def boom():
        raise RuntimeError("db down")

    await cache.get_or_compute("api:stats:posts", 10, first)
    clock.now += 11

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("api:stats:posts", 10, boom)
    assert await cache.get_or_compute("api:stats:posts", 10, boom, stale_on_error=True) == "v1"


async def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    backend = MemoryBackend(clock=clock)
    await backend.set("k", [1, 2], 30)
    assert await backend.get("k") == [1, 2]
    clock.now += 30
    assert await backend.get("k") is MISSING


async def test_backend_failure_is_bypassed_and_counted() -> None:
    cache = ReadCache(BrokenBackend())
    before = _failures("get")

    async def compute():
        return "direct"

    assert await cache.get_or_compute("api:post:3", 60, compute) == "direct"
    assert _failures("get") == before + 1


async def test_waiter_gives_up_after_wait_timeout() -> None:
    cache = ReadCache(MemoryBackend(), wait_timeout=0.01)
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "leader"

    async def direct():
        return "waiter"

    leader = asyncio.create_task(cache.get_or_compute("api:post:4", 60, slow))
    await asyncio.sleep(0)
    assert await cache.get_or_compute("api:post:4", 60, direct) == "waiter"
    release.set()
    assert await leader == "leader"


async def test_eviction_during_fill_discards_the_value() -> None:
    cache = ReadCache(MemoryBackend())
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "old"

    pending = asyncio.create_task(cache.get_or_compute("api:post:5", 60, slow))
    await asyncio.sleep(0)
    await cache.forget("api:post:5")
    release.set()
    assert await pending == "old"

    async def fresh():
        return "new"

    assert await cache.get_or_compute("api:post:5", 60, fresh) == "new"


async def test_forget_many_reports_removed_keys() -> None:
    cache = ReadCache(MemoryBackend())

    async def value():
        return 1

    await cache.get_or_compute("a", 60, value)
    await cache.get_or_compute("b", 60, value)
    assert await cache.forget_many(["a", "b", "c", "a"]) == 2


class SlowWriteBackend(MemoryBackend):
    """Holds every write until released, like a slow network round trip."""

    def __init__(self) -> None:
        super().__init__()
        self.writing = asyncio.Event()
        self.release = asyncio.Event()

    async def set(self, key, value, ttl):
        self.writing.set()
        await self.release.wait()
        await super().set(key, value, ttl)


async def test_eviction_during_backend_write_wins() -> None:
    backend = SlowWriteBackend()
    cache = ReadCache(backend)

    async def old():
        return "old"

    pending = asyncio.create_task(cache.get_or_compute("api:post:6", 60, old))
    await backend.writing.wait()
    await cache.forget("api:post:6")
    backend.release.set()

    assert await pending == "old"
    assert await backend.get("api:post:6") is MISSING


async def test_memory_backend_stays_within_max_entries() -> None:
    backend = MemoryBackend(stale_ttl=3600, max_entries=100)
    for n in range(1000):
        await backend.set(f"api:posts:search:q=term{n}", n, 300)

    assert len(backend._entries) == 100
    assert await backend.get("api:posts:search:q=term0") is MISSING
    assert await backend.get("api:posts:search:q=term999") == 999


async def test_rewriting_a_key_refreshes_its_position() -> None:
    backend = MemoryBackend(max_entries=2)
    await backend.set("a", 1, 60)
    await backend.set("b", 2, 60)
    await backend.set("a", 3, 60)
    await backend.set("c", 4, 60)

    assert await backend.get("a") == 3
    assert await backend.get("b") is MISSING
