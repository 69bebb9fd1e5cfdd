"""State synchronization engine."""

from __future__ import annotations

from trsync.engine.bulk import (
    BulkOperationRecord,
    BulkOperationTracker,
    ConvergenceOutcome,
)
from trsync.engine.connection import ConnectionStateMachine, StartupReconnector
from trsync.engine.context import SyncContext
from trsync.engine.filters import filter_jobs
from trsync.engine.scheduler import PeriodicRefresh, PollScheduler
from trsync.engine.selection import SelectionModel
from trsync.engine.session import SyncSession
from trsync.engine.timeout_guard import TimeoutGuard, await_with_timeout

__all__ = [
    "BulkOperationRecord",
    "BulkOperationTracker",
    "ConnectionStateMachine",
    "ConvergenceOutcome",
    "PeriodicRefresh",
    "PollScheduler",
    "SelectionModel",
    "StartupReconnector",
    "SyncContext",
    "SyncSession",
    "TimeoutGuard",
    "await_with_timeout",
    "filter_jobs",
]
