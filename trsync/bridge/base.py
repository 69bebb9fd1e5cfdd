"""Remote bridge interface.

The engine talks to the daemon only through this interface, so tests and
alternative backends can supply their own implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from trsync.models import Config, FileEntry, Job, SessionStats


class RemoteBridge(ABC):
    """Abstract base class for backend bridges.

    Every call is asynchronous and may fail with any exception; none has a
    guaranteed latency.
    """

    @abstractmethod
    async def initialize(self, config: Config) -> None:
        """Establish or replace the active connection.

        Raises:
            BackendConnectionError: If the backend cannot be reached

        """

    @abstractmethod
    async def load_config(self) -> Config | None:
        """Return the persisted configuration, or None if there is none."""

    @abstractmethod
    async def list_jobs(self) -> Sequence[Job]:
        """Return a full snapshot of the backend's jobs."""

    @abstractmethod
    async def get_session_stats(self) -> SessionStats:
        """Return session wide transfer statistics."""

    @abstractmethod
    async def add_job(self, source: str, destination_dir: str = "") -> None:
        """Add a job from a URL, magnet link or ``data:`` URL."""

    @abstractmethod
    async def add_job_from_payload(self, payload: str, destination_dir: str = "") -> None:
        """Add a job from base64 encoded metainfo."""

    @abstractmethod
    async def remove_job(self, job_id: int, delete_data: bool = False) -> None:
        """Remove a job, optionally deleting its data."""

    @abstractmethod
    async def start_jobs(self, ids: Sequence[int]) -> None:
        """Start jobs."""

    @abstractmethod
    async def stop_jobs(self, ids: Sequence[int]) -> None:
        """Stop jobs."""

    @abstractmethod
    async def set_speed_limit(self, ids: Sequence[int], enable_slow_mode: bool) -> None:
        """Enable or lift the slow mode speed limit."""

    @abstractmethod
    async def verify_job(self, job_id: int) -> None:
        """Start verifying a job's local data."""

    @abstractmethod
    async def list_job_files(self, job_id: int) -> Sequence[FileEntry]:
        """Return the files of a job."""

    @abstractmethod
    async def set_files_wanted(
        self, job_id: int, file_ids: Sequence[int], wanted: bool
    ) -> None:
        """Mark files of a job as wanted or unwanted."""

    @abstractmethod
    async def test_connection(self, config: Config) -> None:
        """Check ``config`` without touching the active connection.

        Raises:
            BackendConnectionError: If the backend cannot be reached

        """

    async def get_default_download_dir(self) -> str:
        """Return the backend's default download directory."""
        return ""

    async def get_download_paths(self) -> list[str]:
        """Return known download directories, default first."""
        return []

    async def remove_download_path(self, path: str) -> None:
        """Forget a download directory."""

    async def validate_download_path(self, path: str) -> str:
        """Return the normalized path or raise ``DownloadPathError``."""
        return path

    async def close(self) -> None:
        """Release transport resources."""
