"""Unit tests for the establishment lock registry."""

import asyncio

import pytest

from recovery_ledger.core.exceptions import ConcurrencyConflict
from recovery_ledger.core.locks import CaseLockRegistry


@pytest.mark.asyncio
async def test_second_writer_times_out():
    locks = CaseLockRegistry(timeout_seconds=0.05)

    async with locks.hold("MH/1"):
        assert locks.is_locked("MH/1")
        with pytest.raises(ConcurrencyConflict):
            async with locks.hold("MH/1"):
                pass

    assert not locks.is_locked("MH/1")


@pytest.mark.asyncio
async def test_establishments_lock_independently():
    locks = CaseLockRegistry(timeout_seconds=0.05)

    async with locks.hold("MH/1"):
        async with locks.hold("MH/2"):
            assert locks.is_locked("MH/1")
            assert locks.is_locked("MH/2")


@pytest.mark.asyncio
async def test_lock_released_on_error():
    locks = CaseLockRegistry(timeout_seconds=0.05)

    with pytest.raises(RuntimeError):
        async with locks.hold("MH/1"):
            raise RuntimeError("boom")

    assert not locks.is_locked("MH/1")


@pytest.mark.asyncio
async def test_waiting_writer_runs_after_release():
    locks = CaseLockRegistry(timeout_seconds=1.0)
    order = []

    async def writer(name, delay):
        async with locks.hold("MH/1"):
            order.append(f"{name}-start")
            await asyncio.sleep(delay)
            order.append(f"{name}-end")

    await asyncio.gather(writer("first", 0.02), writer("second", 0))

    assert order == ["first-start", "first-end", "second-start", "second-end"]


@pytest.mark.asyncio
async def test_idle_locks_are_evicted():
    locks = CaseLockRegistry(timeout_seconds=0.05)

    for code in ("MH/1", "MH/2", "MH/3"):
        async with locks.hold(code):
            assert locks.active_count() == 1

    assert locks.active_count() == 0


@pytest.mark.asyncio
async def test_lock_kept_while_a_writer_waits():
    locks = CaseLockRegistry(timeout_seconds=1.0)
    entered = asyncio.Event()
    release = asyncio.Event()

    async def first():
        async with locks.hold("MH/1"):
            entered.set()
            await release.wait()

    async def second():
        await entered.wait()
        async with locks.hold("MH/1"):
            assert locks.is_locked("MH/1")

    task_first = asyncio.create_task(first())
    task_second = asyncio.create_task(second())
    await entered.wait()
    await asyncio.sleep(0.01)
    assert locks.active_count() == 1
    release.set()
    await asyncio.gather(task_first, task_second)

    assert locks.active_count() == 0


@pytest.mark.asyncio
async def test_timed_out_writer_does_not_leak_lock():
    locks = CaseLockRegistry(timeout_seconds=0.05)

    async with locks.hold("MH/1"):
        with pytest.raises(ConcurrencyConflict):
            async with locks.hold("MH/1"):
                pass
        assert locks.active_count() == 1

    assert locks.active_count() == 0
