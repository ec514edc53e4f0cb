"""Shared background task utilities.

Fire-and-forget work (cache invalidation after a write) runs as tracked
asyncio tasks: the registry holds a strong reference until each task
finishes, failures are logged from a done-callback, and shutdown can
drain whatever is still pending.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_pending: set[asyncio.Task[Any]] = set()


def create_background_task(
    coro: Coroutine[Any, Any, Any], *, name: str = ""
) -> asyncio.Task[Any]:
    """Create an asyncio task with exception logging."""
    task: asyncio.Task[Any] = asyncio.create_task(coro)
    _pending.add(task)

    def _done(t: asyncio.Task[Any]) -> None:
        _pending.discard(t)
        if t.cancelled():
            return
        if exc := t.exception():
            logger.error("Background task failed", task_name=name, error=str(exc))

    task.add_done_callback(_done)
    return task


def pending_background_tasks() -> int:
    """Number of background tasks that have not finished yet."""
    return len(_pending)


async def drain_background_tasks(timeout: float | None = None) -> int:
    """Wait for pending background tasks; cancel any still running at timeout.

    Returns the number of tasks that were pending when the drain started.
    """
    tasks = [t for t in _pending if not t.done()]
    if not tasks:
        return 0

    done, still_pending = await asyncio.wait(tasks, timeout=timeout)
    for task in still_pending:
        task.cancel()
    if still_pending:
        logger.warning(
            "Background tasks cancelled at drain timeout",
            cancelled=len(still_pending),
            timeout=timeout,
        )
        await asyncio.gather(*still_pending, return_exceptions=True)

    return len(tasks)
