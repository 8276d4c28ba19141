"""Tests for owned timers and the minute ticker."""

import asyncio
from datetime import datetime, timezone

import pytest

from aprswx.scheduler import MinuteTicker, ScheduledTask


def at(second, microsecond=0, minute=0):
    return datetime(2025, 1, 15, 12, minute, second, microsecond, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_delayed_task_runs_once():
    calls = []
    task = ScheduledTask.delayed(0.01, lambda: calls.append(1), name="test")
    await task.wait()
    assert calls == [1]
    assert task.done


@pytest.mark.asyncio
async def test_cancelled_task_never_runs():
    calls = []
    task = ScheduledTask.delayed(0.2, lambda: calls.append(1))
    await task.cancel()
    await asyncio.sleep(0.3)
    assert calls == []
    assert task.task.cancelled()


@pytest.mark.asyncio
async def test_cancel_from_inside_is_a_noop():
    holder = {}

    async def body():
        await asyncio.sleep(0)
        await holder["task"].cancel()
        return "finished"

    holder["task"] = ScheduledTask(body())
    assert await holder["task"].wait() == "finished"


def test_seconds_to_next_minute():
    ticker = MinuteTicker(lambda now: None)
    assert ticker.seconds_to_next_minute(at(15)) == 45
    assert ticker.seconds_to_next_minute(at(59, 500000)) == 0.5


@pytest.mark.asyncio
async def test_ticker_fires_on_schedule():
    times = iter([at(59, 980000), at(0, minute=1), at(1, minute=2)])
    last = at(1, minute=3)
    ticks = []

    ticker = MinuteTicker(ticks.append, interval=0.01, clock=lambda: next(times, last))
    ticker.start()
    assert ticker.running
    await asyncio.sleep(0.2)
    await ticker.stop()

    assert ticks[:2] == [at(0, minute=1), at(1, minute=2)]
    assert ticker.resyncs == 0
    assert not ticker.running


@pytest.mark.asyncio
async def test_ticker_resyncs_after_drift():
    ticks = []

    async def callback(now):
        ticks.append(now)

    ticker = MinuteTicker(callback, interval=30, clock=lambda: at(59, 990000))
    ticker.start()
    await asyncio.sleep(0.1)
    await ticker.stop()

    assert len(ticks) >= 2
    assert ticker.resyncs >= 2


@pytest.mark.asyncio
async def test_failing_callback_keeps_ticking():
    calls = []

    def callback(now):
        calls.append(now)
        raise RuntimeError("sensor offline")

    times = iter([at(59, 990000)])
    ticker = MinuteTicker(callback, interval=0.01, clock=lambda: next(times, at(0, minute=1)))
    ticker.start()
    await asyncio.sleep(0.1)
    await ticker.stop()
    assert len(calls) >= 2
