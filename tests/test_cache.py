import asyncio

import pytest

from contentsync.services.cache import ResponseCache

pytestmark = pytest.mark.asyncio


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class Counter:
    def __init__(self, value="value") -> None:
        self.calls = 0
        self.value = value

    async def __call__(self):
        self.calls += 1
        return f"{self.value}-{self.calls}"


async def test_fresh_entry_is_served_from_cache():
    cache = ResponseCache(ttl_sec=60, clock=FakeClock())
    compute = Counter()

    assert await cache.get("screens", compute) == "value-1"
    assert await cache.get("screens", compute) == "value-1"
    assert compute.calls == 1


async def test_expired_entry_is_recomputed():
    clock = FakeClock()
    cache = ResponseCache(ttl_sec=60, clock=clock)
    compute = Counter()

    await cache.get("screens", compute)
    clock.now += 60
    assert await cache.get("screens", compute) == "value-2"
    assert compute.calls == 2


async def test_force_bypasses_fresh_entry():
    cache = ResponseCache(ttl_sec=60, clock=FakeClock())
    compute = Counter()

    await cache.get("screens", compute)
    assert await cache.get("screens", compute, force=True) == "value-2"
    assert await cache.get("screens", compute) == "value-2"


async def test_concurrent_callers_share_one_computation():
    cache = ResponseCache(ttl_sec=60)
    release = asyncio.Event()
    calls = 0

    async def slow():
        nonlocal calls
        calls += 1
        await release.wait()
        return {"id": 1}

    waiters = [asyncio.create_task(cache.get("screen:1", slow)) for _ in range(5)]
    await asyncio.sleep(0)
    assert cache.stats()["inflight"] == 1
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(result == {"id": 1} for result in results)
    assert cache.stats()["inflight"] == 0


async def test_failures_are_not_cached():
    cache = ResponseCache(ttl_sec=60)
    attempts = 0

    async def flaky():
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise RuntimeError("upstream down")
        return "ok"

    with pytest.raises(RuntimeError):
        await cache.get("media:7", flaky)
    assert cache.peek("media:7") is None
    assert await cache.get("media:7", flaky) == "ok"
    assert attempts == 2


async def test_cancelled_waiter_does_not_cancel_shared_computation():
    cache = ResponseCache(ttl_sec=60)
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "done"

    first = asyncio.create_task(cache.get("k", slow))
    second = asyncio.create_task(cache.get("k", slow))
    await asyncio.sleep(0)
    first.cancel()
    release.set()

    assert await second == "done"
    assert cache.peek("k") == "done"


async def test_clear_and_stats():
    clock = FakeClock()
    cache = ResponseCache(ttl_sec=10, clock=clock)
    await cache.get("a", Counter("a"))
    await cache.get("b", Counter("b"))
    clock.now += 20
    await cache.get("c", Counter("c"))

    assert cache.stats() == {"entries": 3, "fresh_entries": 1, "inflight": 0, "ttl_sec": 10}
    cache.clear("c")
    assert cache.peek("c") is None
    cache.clear()
    assert cache.stats()["entries"] == 0


@pytest.mark.parametrize("cleared_key", [None, "screens"])
async def test_clear_discards_computation_already_in_flight(cleared_key):
    cache = ResponseCache(ttl_sec=60)
    release = asyncio.Event()

    async def stale():
        await release.wait()
        return "stale"

    async def fresh():
        return "fresh"

    before = asyncio.create_task(cache.get("screens", stale))
    await asyncio.sleep(0)
    cache.clear(cleared_key)

    assert await cache.get("screens", fresh) == "fresh"
    release.set()
    assert await before == "stale"
    assert cache.peek("screens") == "fresh"
    assert cache.stats()["inflight"] == 0


async def test_clear_of_other_key_keeps_in_flight_result():
    cache = ResponseCache(ttl_sec=60)
    release = asyncio.Event()

    async def slow():
        await release.wait()
        return "kept"

    pending = asyncio.create_task(cache.get("screens", slow))
    await asyncio.sleep(0)
    cache.clear("media:1")
    release.set()

    assert await pending == "kept"
    assert cache.peek("screens") == "kept"
