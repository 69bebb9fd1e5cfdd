"""Bulk operation convergence tracking.

A bulk start or stop returns once the daemon acknowledges it, well before
the jobs actually change state. The tracker keeps a per-action in-progress
flag until later snapshots show that every selected job reached the
action's target class.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Sequence

from trsync.models import BulkAction, Job, JobStatus, StatusClass, status_class

logger = logging.getLogger(__name__)

TARGET_CLASS: Mapping[BulkAction, StatusClass] = MappingProxyType(
    {
        BulkAction.START: StatusClass.ACTIVE,
        BulkAction.STOP: StatusClass.IDLE,
    }
)

BulkListener = Callable[[BulkAction, bool], None]


class ConvergenceOutcome(str, Enum):
    """Result of checking a record against a snapshot."""

    PENDING = "pending"
    CONVERGED = "converged"
    MOOT = "moot"


def is_eligible(action: BulkAction, status: JobStatus) -> bool:
    """Return True if a job in ``status`` needs ``action``."""
    if action == BulkAction.START:
        return status == JobStatus.STOPPED
    if action == BulkAction.STOP:
        return status_class(status) == StatusClass.ACTIVE
    msg = f"Convergence is not tracked for {action.value}"
    raise ValueError(msg)


def eligible_ids(
    action: BulkAction,
    selection: Iterable[int],
    jobs: Sequence[Job],
) -> tuple[int, ...]:
    """Selected ids whose current status is eligible, in snapshot order."""
    selected = frozenset(selection)
    return tuple(
        job.id for job in jobs if job.id in selected and is_eligible(action, job.status)
    )


@dataclass(frozen=True)
class BulkOperationRecord:
    """Baseline captured when a bulk action is issued."""

    action: BulkAction
    baseline: Mapping[int, JobStatus]
    affected: tuple[int, ...]
    selection: frozenset[int]
    issued_at: float = field(default_factory=time.monotonic)

    @classmethod
    def capture(
        cls,
        action: BulkAction,
        selection: Iterable[int],
        jobs: Sequence[Job],
    ) -> BulkOperationRecord:
        """Record the status of every selected job present in ``jobs``."""
        selected = frozenset(selection)
        baseline = {job.id: job.status for job in jobs if job.id in selected}
        return cls(
            action=action,
            baseline=MappingProxyType(baseline),
            affected=eligible_ids(action, selected, jobs),
            selection=selected,
        )


def evaluate(record: BulkOperationRecord, jobs: Sequence[Job]) -> ConvergenceOutcome:
    """Check ``record`` against a snapshot.

    An id is settled if it was already in the target class at baseline, or
    its status changed since baseline and is now in the target class. Ids
    missing from the snapshot or from the baseline are never settled.
    """
    if not eligible_ids(record.action, record.selection, jobs):
        return ConvergenceOutcome.MOOT

    target = TARGET_CLASS[record.action]
    current = {job.id: job.status for job in jobs}
    for job_id in record.selection:
        before = record.baseline.get(job_id)
        now = current.get(job_id)
        if before is None or now is None:
            return ConvergenceOutcome.PENDING
        if status_class(before) == target:
            continue
        if now != before and status_class(now) == target:
            continue
        return ConvergenceOutcome.PENDING
    return ConvergenceOutcome.CONVERGED


class BulkOperationTracker:
    """Per-action in-progress flags and their baselines."""

    def __init__(self) -> None:
        """Start with nothing in progress."""
        self._in_progress: set[BulkAction] = set()
        self._records: dict[BulkAction, BulkOperationRecord] = {}
        self._listeners: list[BulkListener] = []

    def add_listener(self, listener: BulkListener) -> None:
        """Call ``listener(action, in_progress)`` when a flag changes."""
        self._listeners.append(listener)

    def _notify(self, action: BulkAction, in_progress: bool) -> None:
        for listener in list(self._listeners):
            listener(action, in_progress)

    def is_in_progress(self, action: BulkAction) -> bool:
        """Return the in-progress flag of ``action``."""
        return action in self._in_progress

    @property
    def in_progress(self) -> frozenset[BulkAction]:
        """Actions currently in progress."""
        return frozenset(self._in_progress)

    def record(self, action: BulkAction) -> BulkOperationRecord | None:
        """Return the baseline record of ``action``, if any."""
        return self._records.get(action)

    def begin(
        self,
        action: BulkAction,
        selection: Iterable[int],
        jobs: Sequence[Job],
    ) -> BulkOperationRecord | None:
        """Capture a baseline and raise the flag for ``action``.

        Returns:
            The record to issue the command for, or None when the action is
            already in progress or no selected job is eligible.

        """
        if action in self._in_progress:
            logger.debug("Bulk %s already in progress", action.value)
            return None

        record = BulkOperationRecord.capture(action, selection, jobs)
        if not record.affected:
            logger.debug("Bulk %s skipped: no eligible jobs selected", action.value)
            return None

        self._records[action] = record
        self._in_progress.add(action)
        logger.info("Bulk %s issued for %d job(s)", action.value, len(record.affected))
        self._notify(action, True)
        return record

    def fail(self, action: BulkAction) -> None:
        """Roll back after the command failed."""
        self.clear(action)

    def mark_busy(self, action: BulkAction) -> bool:
        """Raise the flag without a baseline; False if already raised."""
        if action in self._in_progress:
            return False
        self._in_progress.add(action)
        self._notify(action, True)
        return True

    def clear(self, action: BulkAction) -> None:
        """Drop the flag and baseline of ``action``."""
        self._records.pop(action, None)
        if action in self._in_progress:
            self._in_progress.discard(action)
            self._notify(action, False)

    def check_convergence(self, jobs: Sequence[Job]) -> dict[BulkAction, ConvergenceOutcome]:
        """Evaluate every tracked action against a fresh snapshot."""
        outcomes: dict[BulkAction, ConvergenceOutcome] = {}
        for action, record in list(self._records.items()):
            outcome = evaluate(record, jobs)
            outcomes[action] = outcome
            if outcome != ConvergenceOutcome.PENDING:
                logger.info(
                    "Bulk %s finished (%s) after %.1fs",
                    action.value,
                    outcome.value,
                    time.monotonic() - record.issued_at,
                )
                self.clear(action)
        return outcomes
