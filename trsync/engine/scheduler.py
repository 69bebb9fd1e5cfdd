"""Periodic job and stats refresh.

Two independent cycles run on fixed intervals. A tick that finds the
previous cycle of the same kind still in flight is skipped, never queued.
Command refreshes go through ``run_now``, which waits for the pending cycle
instead, so at most one fetch of each kind is outstanding.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from trsync.engine.timeout_guard import TimeoutGuard
from trsync.utils.exceptions import PollTimeoutError
from trsync.utils.tasks import BackgroundTaskGroup, wait_settled

if TYPE_CHECKING:
    from trsync.bridge.base import RemoteBridge
    from trsync.engine.context import SyncContext

logger = logging.getLogger(__name__)


class PeriodicRefresh:
    """Runs ``refresh`` every ``interval`` seconds with overlap suppression."""

    def __init__(
        self,
        name: str,
        interval: float,
        refresh: Callable[[], Awaitable[object]],
        gate: Callable[[], bool] = lambda: True,
    ):
        """Initialize periodic refresh.

        Args:
            name: Name used for tasks and logs
            interval: Seconds between ticks
            refresh: Coroutine function run on each tick
            gate: Ticks are ignored while this returns False

        """
        self.name = name
        self.interval = interval
        self._refresh = refresh
        self._gate = gate
        self._tasks = BackgroundTaskGroup()
        self._ticker: asyncio.Task[None] | None = None
        self._cycle: asyncio.Task[None] | None = None
        self.skipped_ticks = 0
        self.completed_cycles = 0

    @property
    def running(self) -> bool:
        """True while the ticker is active."""
        return self._ticker is not None and not self._ticker.done()

    @property
    def in_flight(self) -> bool:
        """True while a cycle is pending."""
        return self._cycle is not None and not self._cycle.done()

    def start(self) -> None:
        """Start ticking; the first tick fires after one interval."""
        if self.running:
            return
        self._ticker = self._tasks.create(self._run(), name=f"{self.name}-ticker")

    async def stop(self) -> None:
        """Stop ticking and cancel a pending cycle."""
        await self._tasks.cancel_and_wait(timeout=1.0)
        self._ticker = None
        self._cycle = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.tick()

    def tick(self) -> asyncio.Task[None] | None:
        """Start a cycle unless gated off or one is still pending."""
        if not self._gate():
            return None
        if self.in_flight:
            self.skipped_ticks += 1
            logger.debug("Skipping %s tick: previous cycle still pending", self.name)
            return None
        return self._start_cycle()

    async def run_now(self) -> None:
        """Run a cycle right away, after any pending one has finished.

        Not gated: command refreshes happen even while polling is paused.
        """
        while self._cycle is not None and not self._cycle.done():
            await wait_settled(self._cycle)
        await wait_settled(self._start_cycle())

    def _start_cycle(self) -> asyncio.Task[None]:
        self._cycle = self._tasks.create(self._run_cycle(), name=f"{self.name}-cycle")
        return self._cycle

    async def _run_cycle(self) -> None:
        try:
            await self._refresh()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Unhandled error in %s refresh", self.name)
        finally:
            self.completed_cycles += 1


class PollScheduler:
    """Keeps the context's job snapshot and stats fresh."""

    def __init__(
        self,
        ctx: SyncContext,
        bridge: RemoteBridge,
        translate: Callable[..., str],
        guard: TimeoutGuard | None = None,
        jobs_interval: float = 3.0,
        stats_interval: float = 1.0,
    ):
        """Initialize scheduler.

        Args:
            ctx: State to update
            bridge: Backend to poll
            translate: Message lookup for user-visible errors
            guard: Deadline applied to each poll
            jobs_interval: Seconds between job refreshes
            stats_interval: Seconds between stats refreshes

        """
        self.ctx = ctx
        self.bridge = bridge
        self.translate = translate
        self.guard = guard or TimeoutGuard()

        self.jobs = PeriodicRefresh(
            "jobs", jobs_interval, self.refresh_jobs, self._polling_allowed
        )
        self.stats = PeriodicRefresh(
            "stats", stats_interval, self.refresh_stats, self._polling_allowed
        )

    def _polling_allowed(self) -> bool:
        return self.ctx.connection.polling_allowed

    @property
    def running(self) -> bool:
        """True while either cycle is ticking."""
        return self.jobs.running or self.stats.running

    def start(self) -> None:
        """Start both cycles."""
        self.jobs.start()
        self.stats.start()
        logger.debug(
            "Polling jobs every %.1fs and stats every %.1fs",
            self.jobs.interval,
            self.stats.interval,
        )

    async def stop(self) -> None:
        """Stop both cycles."""
        await self.jobs.stop()
        await self.stats.stop()

    async def initial_fetch(self) -> None:
        """Fetch jobs and stats once; errors propagate.

        Used by the connect handshake before polling is allowed.
        """
        self.ctx.begin_first_load()
        try:
            jobs, stats = await asyncio.gather(
                self.guard(self.bridge.list_jobs(), name="list_jobs"),
                self.guard(self.bridge.get_session_stats(), name="get_session_stats"),
            )
        except Exception:
            self.ctx.end_first_load(succeeded=False)
            raise
        self.ctx.replace_jobs(jobs)
        self.ctx.replace_stats(stats)
        self.ctx.end_first_load(succeeded=True)

    async def refresh_jobs(self) -> bool:
        """Run one job refresh cycle.

        Returns:
            True if a fresh snapshot was applied.

        """
        self.ctx.begin_first_load()
        try:
            jobs = await self.guard(self.bridge.list_jobs(), name="list_jobs")
        except PollTimeoutError as e:
            self.ctx.end_first_load(succeeded=False)
            logger.warning("Job poll timed out: %s", e)
            self.ctx.set_error(self.translate("errors.connectionLost"))
            if self.ctx.connection.polling_allowed:
                self.ctx.connection.poll_timed_out()
            return False
        except Exception as e:
            self.ctx.end_first_load(succeeded=False)
            logger.error("Failed to fetch jobs: %s", e)
            self.ctx.set_error(self.translate("errors.fetchFailed", str(e)))
            return False

        self.ctx.replace_jobs(jobs)
        self.ctx.set_error(None)
        if self.ctx.connection.polling_allowed:
            self.ctx.connection.poll_succeeded()
        self.ctx.end_first_load(succeeded=True)
        return True

    async def refresh_stats(self) -> bool:
        """Run one stats refresh cycle; failures are only logged."""
        try:
            stats = await self.guard(
                self.bridge.get_session_stats(), name="get_session_stats"
            )
        except Exception as e:
            logger.debug("Failed to fetch session stats: %s", e)
            return False
        self.ctx.replace_stats(stats)
        return True
