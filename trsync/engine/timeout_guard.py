"""Deadline enforcement for backend calls.

The guard races an awaitable against a timer. When the timer wins the
caller gets ``PollTimeoutError`` right away; the underlying call keeps
running unless asked otherwise, and whatever it eventually produces is
discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from trsync.utils.exceptions import PollTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 60.0


def _discard_late_result(name: str) -> Callable[[asyncio.Future[Any]], None]:
    def _callback(task: asyncio.Future[Any]) -> None:
        if task.cancelled():
            logger.debug("Timed out %s was cancelled", name)
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Discarding late failure of timed out %s: %s", name, exc)
        else:
            logger.debug("Discarding late result of timed out %s", name)

    return _callback


async def await_with_timeout(
    operation: Awaitable[T],
    duration: float,
    *,
    name: str = "operation",
    cancel_pending: bool = False,
) -> T:
    """Await ``operation`` for at most ``duration`` seconds.

    Args:
        operation: Coroutine or future to run
        duration: Deadline in seconds
        name: Operation name used in errors and logs
        cancel_pending: Cancel the operation when the deadline passes

    Returns:
        The operation's result, if it settles first.

    Raises:
        PollTimeoutError: At ``duration``, if the operation has not settled.
        Exception: Whatever the operation raised before the deadline.

    """
    task = asyncio.ensure_future(operation)
    try:
        done, _ = await asyncio.wait({task}, timeout=duration)
    except asyncio.CancelledError:
        task.add_done_callback(_discard_late_result(name))
        raise

    if task in done:
        return task.result()

    if cancel_pending:
        task.cancel()
    task.add_done_callback(_discard_late_result(name))
    msg = f"{name} timed out after {duration:g}s"
    raise PollTimeoutError(msg, {"operation": name, "timeout": duration})


class TimeoutGuard:
    """``await_with_timeout`` with a fixed deadline."""

    def __init__(self, duration: float = DEFAULT_TIMEOUT, cancel_pending: bool = False):
        """Initialize guard.

        Args:
            duration: Deadline in seconds applied to every call
            cancel_pending: Cancel calls that miss the deadline

        """
        self.duration = duration
        self.cancel_pending = cancel_pending

    async def __call__(self, operation: Awaitable[T], name: str = "operation") -> T:
        """Run ``operation`` under the guard's deadline."""
        return await await_with_timeout(
            operation,
            self.duration,
            name=name,
            cancel_pending=self.cancel_pending,
        )
