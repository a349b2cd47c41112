"""Tests for the bounded worker pool."""

import asyncio

import pytest

from lookbook.worker_pool import WorkerPool


def test_results_keep_input_order():
    async def work(item, index):
        await asyncio.sleep(0.001 * (10 - item))
        return item * 2

    outcomes = asyncio.run(WorkerPool(3).map(range(10), work))
    assert [o.result for o in outcomes] == [i * 2 for i in range(10)]
    assert [o.index for o in outcomes] == list(range(10))


def test_never_more_than_size_in_flight():
    active = 0
    peak = 0

    async def work(item, index):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.005)
        active -= 1

    pool = WorkerPool(3)
    asyncio.run(pool.map(range(20), work))
    assert peak == 3
    assert pool.peak_in_flight == 3
    assert pool.in_flight == 0


def test_each_item_processed_once():
    seen = []

    async def work(item, index):
        seen.append(item)
        await asyncio.sleep(0)

    asyncio.run(WorkerPool(3).map(list("abcdefg"), work))
    assert sorted(seen) == list("abcdefg")


def test_failure_does_not_stop_siblings():
    async def work(item, index):
        await asyncio.sleep(0)
        if item == 2:
            raise RuntimeError("bad item")
        return item

    outcomes = asyncio.run(WorkerPool(2).map(range(5), work))
    assert [o.ok for o in outcomes] == [True, True, False, True, True]
    assert str(outcomes[2].error) == "bad item"
    assert outcomes[4].result == 4


def test_empty_input():
    async def work(item, index):
        raise AssertionError("not called")

    assert asyncio.run(WorkerPool(3).map([], work)) == []


def test_fewer_items_than_workers():
    pool = WorkerPool(3)

    async def work(item, index):
        await asyncio.sleep(0.001)
        return item

    assert [o.result for o in asyncio.run(pool.map(["only"], work))] == ["only"]
    assert pool.peak_in_flight == 1


@pytest.mark.parametrize("size", [0, -1])
def test_invalid_size(size):
    with pytest.raises(ValueError):
        WorkerPool(size)
