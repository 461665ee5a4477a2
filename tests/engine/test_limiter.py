from __future__ import annotations

import asyncio

import pytest

from trip_curator.engine import ConcurrencyLimiter, LimiterPool
from trip_curator.errors import InvalidConfigError


def test_limiter_never_exceeds_limit() -> None:
    async def scenario() -> int:
        limiter = ConcurrencyLimiter(2)
        active = 0
        peak = 0

        async def job() -> None:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1

        await asyncio.gather(*(limiter.run(job) for _ in range(8)))
        assert limiter.get_stats().running == 0
        return peak

    assert asyncio.run(scenario()) == 2


def test_limiter_admits_waiters_in_fifo_order() -> None:
    async def scenario() -> list[int]:
        limiter = ConcurrencyLimiter(1)
        order: list[int] = []
        await limiter.acquire()

        async def waiter(index: int) -> None:
            async with limiter:
                order.append(index)

        tasks = []
        for index in range(5):
            tasks.append(asyncio.create_task(waiter(index)))
            await asyncio.sleep(0)
        assert limiter.get_stats().queued == 5
        limiter.release()
        await asyncio.gather(*tasks)
        return order

    assert asyncio.run(scenario()) == [0, 1, 2, 3, 4]


def test_limit_two_with_three_tasks_queues_the_third() -> None:
    async def scenario() -> None:
        limiter = ConcurrencyLimiter(2)
        gates = [asyncio.Event() for _ in range(3)]
        started: list[int] = []

        async def job(index: int) -> int:
            started.append(index)
            await gates[index].wait()
            return index

        tasks = [asyncio.create_task(limiter.run(job, index)) for index in range(3)]
        await asyncio.sleep(0.01)
        assert started == [0, 1]
        stats = limiter.get_stats()
        assert (stats.running, stats.queued, stats.limit) == (2, 1, 2)
        assert not limiter.is_available()

        gates[0].set()
        await asyncio.sleep(0.01)
        assert started == [0, 1, 2]
        assert limiter.get_stats().running == 2

        gates[1].set()
        gates[2].set()
        assert await asyncio.gather(*tasks) == [0, 1, 2]
        assert limiter.get_stats().running == 0
        assert limiter.is_available()

    asyncio.run(scenario())


def test_run_releases_slot_when_task_fails() -> None:
    async def scenario() -> None:
        limiter = ConcurrencyLimiter(1)

        async def boom() -> None:
            raise RuntimeError("provider exploded")

        with pytest.raises(RuntimeError):
            await limiter.run(boom)
        assert limiter.get_stats().running == 0

        async def ok() -> str:
            return "done"

        assert await limiter.run(ok) == "done"

    asyncio.run(scenario())


def test_cancelled_waiter_leaves_queue() -> None:
    async def scenario() -> None:
        limiter = ConcurrencyLimiter(1)
        await limiter.acquire()
        waiter = asyncio.create_task(limiter.acquire())
        await asyncio.sleep(0)
        assert limiter.get_stats().queued == 1
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert limiter.get_stats().queued == 0
        limiter.release()
        assert limiter.get_stats().running == 0

    asyncio.run(scenario())


def test_unmatched_release_is_ignored() -> None:
    limiter = ConcurrencyLimiter(1)
    limiter.release()
    assert limiter.get_stats().running == 0


@pytest.mark.parametrize("limit", [0, -1, 1.5, "3", True])
def test_invalid_limit_rejected(limit) -> None:
    with pytest.raises(InvalidConfigError):
        ConcurrencyLimiter(limit)


def test_limiter_pool_shares_default_and_isolates_overrides() -> None:
    pool = LimiterPool(default_limit=3, per_provider={"places": 1})
    assert pool.get() is pool.get("web")
    places = pool.get("places")
    assert places is pool.get("places")
    assert places is not pool.get()
    assert places.limit == 1
    sized = pool.get("perplexity", 5)
    assert sized.limit == 5
    assert set(pool.stats()) == {"shared", "places", "perplexity"}
