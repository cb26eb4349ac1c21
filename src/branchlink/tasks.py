"""Helpers for work that must not be interrupted halfway."""

import asyncio
from typing import Awaitable, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def run_to_completion(work: Awaitable[T]) -> T:
    """Await work, letting it finish even if the caller is cancelled.

    The caller stays suspended until the work is done, so locks it holds
    are only released afterwards. A cancellation received meanwhile is
    re-raised once the work has finished; the work's own error, if any, is
    logged in that case instead of being lost.

    Args:
        work: Coroutine or future to run

    Returns:
        The work's result
    """
    task = asyncio.ensure_future(work)
    cancelled = False
    while not task.done():
        try:
            # wait() does not cancel the task when the caller is cancelled
            await asyncio.wait({task})
        except asyncio.CancelledError:
            cancelled = True

    if cancelled:
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "work_failed_after_cancellation",
                error=str(task.exception()),
                error_type=type(task.exception()).__name__,
            )
        raise asyncio.CancelledError()
    return task.result()
