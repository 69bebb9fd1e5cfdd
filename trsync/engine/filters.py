"""Job list filtering used to build the visible (filtered) list."""

from __future__ import annotations

from typing import Iterable

from trsync.models import Job, JobStatus

ALL = "all"
SLOW = "slow"

STATUS_FILTERS: tuple[str, ...] = (ALL, *(s.value for s in JobStatus), SLOW)


def matches_status(job: Job, status: str | None) -> bool:
    """Return True if ``job`` passes the status filter.

    ``slow`` selects jobs in slow mode; ``all`` or None passes everything.
    """
    if not status or status == ALL:
        return True
    if status == SLOW:
        return job.is_slow_mode
    return job.status == JobStatus(status)


def filter_jobs(
    jobs: Iterable[Job],
    status: str | None = None,
    search: str = "",
) -> list[Job]:
    """Filter by status and by case-insensitive name substring."""
    if status and status not in STATUS_FILTERS:
        msg = f"Unknown status filter: {status}"
        raise ValueError(msg)
    needle = search.strip().lower()
    return [
        job
        for job in jobs
        if matches_status(job, status) and (not needle or needle in job.name.lower())
    ]
