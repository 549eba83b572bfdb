"""Tests for CheckpointScheduler."""

import asyncio

import pytest

from chatrelay.services.relay.checkpoint import CheckpointScheduler


async def test_ticks_repeat_while_armed() -> None:
    scheduler = CheckpointScheduler("t")
    hits = []

    async def on_tick():
        hits.append(1)

    scheduler.arm(0.01, on_tick)
    await asyncio.sleep(0.08)
    scheduler.disarm()
    await scheduler.join()

    assert len(hits) >= 2
    assert scheduler.ticks == len(hits)
    assert scheduler.armed is False


async def test_disarm_before_first_tick_fires_nothing() -> None:
    scheduler = CheckpointScheduler()
    hits = []

    async def on_tick():
        hits.append(1)

    scheduler.arm(10.0, on_tick)
    scheduler.disarm()
    scheduler.disarm()
    await scheduler.join()

    assert hits == []


async def test_disarm_waits_for_running_tick() -> None:
    scheduler = CheckpointScheduler()
    started = asyncio.Event()
    finished = []

    async def on_tick():
        started.set()
        await asyncio.sleep(0.05)
        finished.append(1)

    scheduler.arm(0.01, on_tick)
    await started.wait()
    scheduler.disarm()
    await scheduler.join()

    assert finished == [1]
    assert scheduler.ticks == 1


async def test_failing_tick_is_logged_and_timer_keeps_running() -> None:
    scheduler = CheckpointScheduler("failing")
    calls = []

    async def on_tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("storage hiccup")

    scheduler.arm(0.01, on_tick)
    await asyncio.sleep(0.08)
    scheduler.disarm()
    await scheduler.join()

    assert len(calls) >= 2


async def test_arm_validation() -> None:
    scheduler = CheckpointScheduler()

    async def on_tick():
        pass

    with pytest.raises(ValueError):
        scheduler.arm(0, on_tick)

    scheduler.arm(1.0, on_tick)
    try:
        with pytest.raises(RuntimeError):
            scheduler.arm(1.0, on_tick)
    finally:
        scheduler.disarm()
        await scheduler.join()


async def test_join_without_arm_returns() -> None:
    await CheckpointScheduler().join()
