"""Fixed-size worker pool: ceiling, completion and cancellation."""

import asyncio

import pytest

from gemini_fieldmap.pipeline.worker_pool import BoundedWorkerPool

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_processes_every_item_with_bounded_concurrency():
    pool = BoundedWorkerPool(3)
    seen: list[int] = []

    async def handler(item: int) -> None:
        await asyncio.sleep(0.005)
        seen.append(item)

    await pool.run(list(range(20)), handler)
    assert sorted(seen) == list(range(20))
    assert pool.peak_active == 3
    assert pool.active == 0


@pytest.mark.asyncio
async def test_fewer_items_than_workers():
    pool = BoundedWorkerPool(5)
    seen: list[str] = []

    async def handler(item: str) -> None:
        seen.append(item)

    await pool.run(["a", "b"], handler)
    assert seen == ["a", "b"]
    assert pool.peak_active <= 2


@pytest.mark.asyncio
async def test_empty_input_is_a_no_op():
    pool = BoundedWorkerPool(2)

    async def handler(item):
        raise AssertionError("should not be called")

    await pool.run([], handler)


@pytest.mark.asyncio
async def test_cancellation_runs_handler_cleanup():
    pool = BoundedWorkerPool(2)
    cleaned: list[int] = []

    async def handler(item: int) -> None:
        try:
            await asyncio.sleep(10)
        finally:
            cleaned.append(item)

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await pool.run([1, 2, 3, 4], handler)
    assert sorted(cleaned) == [1, 2]
    assert pool.active == 0


@pytest.mark.asyncio
async def test_handler_errors_propagate():
    pool = BoundedWorkerPool(2)

    async def handler(item: int) -> None:
        if item == 2:
            raise RuntimeError("bug")

    with pytest.raises(ExceptionGroup) as excinfo:
        await pool.run([1, 2, 3], handler)
    assert excinfo.group_contains(RuntimeError)


def test_size_must_be_positive():
    with pytest.raises(ValueError):
        BoundedWorkerPool(0)
