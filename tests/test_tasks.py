"""Tests for readmaster.core.tasks background task tracking."""

import asyncio

import pytest

from readmaster.core.tasks import (
    create_background_task,
    drain_background_tasks,
    pending_background_tasks,
)

pytestmark = pytest.mark.asyncio


async def test_task_tracked_until_done():
    gate = asyncio.Event()

    async def work() -> str:
        await gate.wait()
        return "done"

    task = create_background_task(work(), name="gated")
    assert pending_background_tasks() == 1

    gate.set()
    assert await task == "done"
    await asyncio.sleep(0)
    assert pending_background_tasks() == 0


async def test_failure_is_contained():
    async def boom() -> None:
        raise RuntimeError("nope")

    task = create_background_task(boom(), name="failing")
    await asyncio.wait([task])
    await asyncio.sleep(0)

    assert isinstance(task.exception(), RuntimeError)
    assert pending_background_tasks() == 0


async def test_drain_waits_for_pending():
    finished: list[int] = []

    async def work(i: int) -> None:
        await asyncio.sleep(0.01)
        finished.append(i)

    for i in range(3):
        create_background_task(work(i))

    assert await drain_background_tasks(timeout=1.0) == 3
    assert sorted(finished) == [0, 1, 2]


async def test_drain_cancels_at_timeout():
    async def forever() -> None:
        await asyncio.sleep(60)

    task = create_background_task(forever(), name="slow")

    assert await drain_background_tasks(timeout=0.01) == 1
    assert task.cancelled()
    await asyncio.sleep(0)
    assert pending_background_tasks() == 0


async def test_drain_with_nothing_pending():
    assert await drain_background_tasks(timeout=0.1) == 0
