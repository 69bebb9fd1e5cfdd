"""Selection of job ids marked by the user."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable, Iterator

if TYPE_CHECKING:
    from trsync.models import Job


class SelectionModel:
    """Set of selected job ids.

    Ids are kept across snapshot replacements and are never pruned here;
    an id may refer to a job that no longer exists.
    """

    def __init__(self) -> None:
        """Start with an empty selection."""
        self._ids: set[int] = set()
        self._listeners: list[Callable[[frozenset[int]], None]] = []

    @property
    def ids(self) -> frozenset[int]:
        """Selected ids."""
        return frozenset(self._ids)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)

    def __iter__(self) -> Iterator[int]:
        return iter(frozenset(self._ids))

    def add_listener(self, listener: Callable[[frozenset[int]], None]) -> None:
        """Call ``listener(ids)`` whenever the selection changes."""
        self._listeners.append(listener)

    def _changed(self) -> None:
        ids = self.ids
        for listener in list(self._listeners):
            listener(ids)

    def toggle(self, job_id: int) -> bool:
        """Flip membership of ``job_id``; returns the new membership."""
        if job_id in self._ids:
            self._ids.discard(job_id)
            selected = False
        else:
            self._ids.add(job_id)
            selected = True
        self._changed()
        return selected

    def select_all(self, filtered: Iterable[Job]) -> frozenset[int]:
        """Select exactly the filtered jobs, or clear if they already are.

        Calling it twice returns the selection to where it was only when it
        started as empty or as the full filtered set.
        """
        filtered_ids = {job.id for job in filtered}
        if self._ids == filtered_ids:
            self._ids = set()
        else:
            self._ids = filtered_ids
        self._changed()
        return self.ids

    def discard(self, ids: Iterable[int]) -> None:
        """Remove ``ids`` from the selection."""
        before = len(self._ids)
        self._ids.difference_update(ids)
        if len(self._ids) != before:
            self._changed()

    def clear(self) -> None:
        """Deselect everything."""
        if self._ids:
            self._ids = set()
            self._changed()

    def present_in(self, jobs: Iterable[Job]) -> frozenset[int]:
        """Selected ids that exist in ``jobs``."""
        return frozenset(job.id for job in jobs if job.id in self._ids)
