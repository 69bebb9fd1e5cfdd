"""Session state owned by one engine instance.

Everything a renderer reads lives here: the job snapshot, session stats,
connection state, error message, selection and bulk flags. Nothing is
kept in module globals, so independent sessions can coexist.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from trsync.engine.bulk import BulkOperationTracker
from trsync.engine.connection import ConnectionStateMachine
from trsync.engine.selection import SelectionModel
from trsync.models import BulkAction, ConnectionState, Job, SessionStats

logger = logging.getLogger(__name__)

EVENTS = frozenset(
    {
        "jobs_updated",
        "stats_updated",
        "connection_state_changed",
        "error_changed",
        "loading_changed",
        "selection_changed",
        "bulk_operation_changed",
    }
)


class SyncContext:
    """Injectable owner of all mutable session state."""

    def __init__(self) -> None:
        """Create empty state."""
        self.connection = ConnectionStateMachine()
        self.selection = SelectionModel()
        self.bulk = BulkOperationTracker()

        self._jobs: tuple[Job, ...] = ()
        self._jobs_by_id: Mapping[int, Job] = MappingProxyType({})
        self._stats: SessionStats | None = None
        self._error: str | None = None
        self._first_load = True
        self._loading = False
        self._listeners: dict[str, list[Callable[..., None]]] = {e: [] for e in EVENTS}

        self.connection.add_listener(
            lambda old, new: self._emit("connection_state_changed", old, new)
        )
        self.selection.add_listener(lambda ids: self._emit("selection_changed", ids))
        self.bulk.add_listener(
            lambda action, busy: self._emit("bulk_operation_changed", action, busy)
        )

    def subscribe(self, event: str, callback: Callable[..., None]) -> Callable[[], None]:
        """Register ``callback`` for ``event``.

        Returns:
            A function that unsubscribes the callback.

        """
        if event not in EVENTS:
            msg = f"Unknown event: {event}"
            raise ValueError(msg)
        self._listeners[event].append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        return _unsubscribe

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners[event]):
            callback(*args)

    # Read-only views

    @property
    def jobs(self) -> tuple[Job, ...]:
        """Latest job snapshot."""
        return self._jobs

    @property
    def jobs_by_id(self) -> Mapping[int, Job]:
        """Latest snapshot indexed by id."""
        return self._jobs_by_id

    def get_job(self, job_id: int) -> Job | None:
        """Return a job from the latest snapshot."""
        return self._jobs_by_id.get(job_id)

    @property
    def stats(self) -> SessionStats | None:
        """Latest session statistics."""
        return self._stats

    @property
    def error(self) -> str | None:
        """User-visible error message."""
        return self._error

    @property
    def connection_state(self) -> ConnectionState:
        """Current connection state."""
        return self.connection.state

    @property
    def is_reconnecting(self) -> bool:
        """True while polls are timing out."""
        return self.connection.is_reconnecting

    @property
    def is_first_load(self) -> bool:
        """True until the first successful job fetch."""
        return self._first_load

    @property
    def is_loading(self) -> bool:
        """True only while the first-ever job fetch is in flight."""
        return self._loading

    def is_bulk_in_progress(self, action: BulkAction) -> bool:
        """In-progress flag of a bulk action."""
        return self.bulk.is_in_progress(action)

    # Mutations, used by the engine only

    def replace_jobs(self, jobs: Iterable[Job]) -> None:
        """Replace the snapshot, then run the convergence check on it."""
        snapshot = tuple(jobs)
        self._jobs = snapshot
        self._jobs_by_id = MappingProxyType({job.id: job for job in snapshot})
        self._emit("jobs_updated", snapshot)
        self.bulk.check_convergence(snapshot)

    def replace_stats(self, stats: SessionStats) -> None:
        """Replace the session statistics."""
        self._stats = stats
        self._emit("stats_updated", stats)

    def set_error(self, message: str | None) -> None:
        """Set or clear the user-visible error."""
        if message != self._error:
            self._error = message
            self._emit("error_changed", message)

    def begin_first_load(self) -> None:
        """Flag the first-ever job fetch as in flight."""
        if self._first_load and not self._loading:
            self._loading = True
            self._emit("loading_changed", True)

    def end_first_load(self, succeeded: bool) -> None:
        """Finish a first-load attempt; success clears the first-load flag for good."""
        if succeeded:
            self._first_load = False
        if self._loading:
            self._loading = False
            self._emit("loading_changed", False)
