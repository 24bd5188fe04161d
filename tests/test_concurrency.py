import asyncio

import pytest

from seo_orchestrator.concurrency import TaskResult, execute_concurrent


@pytest.mark.asyncio
async def test_results_keep_input_order_when_completion_order_differs():
    delays = [0.03, 0.0, 0.02, 0.01]

    async def task(delay, index):
        await asyncio.sleep(delay)
        return index * 10

    results = await execute_concurrent(delays, task, concurrency=4)
    assert [r.value for r in results] == [0, 10, 20, 30]
    assert all(r.ok for r in results)


@pytest.mark.asyncio
async def test_single_failure_does_not_abort_siblings():
    async def task(item, index):
        if item == "bad":
            raise RuntimeError("boom")
        return item.upper()

    results = await execute_concurrent(["a", "bad", "c"], task, concurrency=2)
    assert [r.status for r in results] == ["fulfilled", "rejected", "fulfilled"]
    assert isinstance(results[1].reason, RuntimeError)
    assert results[0].value == "A"
    assert results[2].value == "C"


@pytest.mark.asyncio
async def test_in_flight_tasks_never_exceed_concurrency():
    in_flight = 0
    peak = 0

    async def task(item, index):
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return item

    results = await execute_concurrent(list(range(12)), task, concurrency=3)
    assert len(results) == 12
    assert peak == 3


@pytest.mark.asyncio
async def test_progress_reports_each_completion():
    seen = []

    async def task(item, index):
        return item

    results = await execute_concurrent([1, 2, 3], task, 2, lambda done, total: seen.append((done, total)))
    assert len(results) == 3
    assert seen == [(1, 3), (2, 3), (3, 3)]


@pytest.mark.asyncio
async def test_async_progress_callback_is_awaited():
    seen = []

    async def on_progress(done, total):
        seen.append(done)

    async def task(item, index):
        return item

    await execute_concurrent(["x", "y"], task, 1, on_progress)
    assert seen == [1, 2]


@pytest.mark.asyncio
async def test_empty_input_returns_empty_list():
    async def task(item, index):
        raise AssertionError("should not run")

    assert await execute_concurrent([], task, concurrency=5) == []


@pytest.mark.asyncio
async def test_invalid_concurrency_rejected():
    async def task(item, index):
        return item

    with pytest.raises(ValueError):
        await execute_concurrent([1], task, concurrency=0)


def test_task_result_constructors():
    ok = TaskResult.fulfilled(5)
    bad = TaskResult.rejected(ValueError("x"))
    assert ok.ok and ok.value == 5
    assert not bad.ok and isinstance(bad.reason, ValueError)
