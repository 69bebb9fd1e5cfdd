"""Task helpers for the polling cycles."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Coroutine


async def wait_settled(task: asyncio.Task[Any]) -> None:
    """Wait for ``task`` to finish without re-raising its outcome.

    Cancelling the caller still cancels the wait, never ``task`` itself.
    """
    if not task.done():
        await asyncio.wait({task})


class BackgroundTaskGroup:
    """Owns the ticker and cycle tasks of one refresh loop.

    Tasks drop out of the group as soon as they finish, so ``len()`` is the
    number still running.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def create(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` and keep a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def cancel_and_wait(self, timeout: float | None = None) -> int:
        """Cancel every running task and wait for them to unwind.

        Returns:
            Number of tasks still unfinished when ``timeout`` expired.

        """
        pending = [t for t in self._tasks if not t.done()]
        if not pending:
            return 0
        for t in pending:
            t.cancel()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(
                asyncio.gather(*pending, return_exceptions=True), timeout=timeout
            )
        stuck = sum(1 for t in pending if not t.done())
        self._tasks.clear()
        return stuck
