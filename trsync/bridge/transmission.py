"""Remote bridge backed by a Transmission daemon."""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import ntpath
import os
import posixpath
import re
from pathlib import PurePosixPath
from typing import Callable, Sequence

import aiohttp

from trsync.bridge.base import RemoteBridge
from trsync.bridge.protocol import (
    ERR_NO_SUCH_FILE,
    ERR_PERMISSION_DENIED,
    TorrentInfo,
    TorrentStatusCode,
)
from trsync.bridge.rpc_client import TransmissionRPCClient
from trsync.config.config import ConfigManager
from trsync.i18n import get_system_locale
from trsync.models import Config, FileEntry, Job, JobStatus, SessionStats
from trsync.utils.exceptions import (
    BackendConnectionError,
    ConfigurationError,
    DownloadPathError,
    RPCError,
    SyncError,
)
from trsync.utils.formatting import convert_speed_to_kib, format_bytes, format_speed

logger = logging.getLogger(__name__)

MAX_DOWNLOAD_PATHS = 10

# Failures a daemon call can raise
TRANSPORT_ERRORS = (SyncError, aiohttp.ClientError, asyncio.TimeoutError, OSError)

_STATUS_MAP: dict[int, JobStatus] = {
    TorrentStatusCode.STOPPED: JobStatus.STOPPED,
    TorrentStatusCode.CHECK_WAIT: JobStatus.CHECKING,
    TorrentStatusCode.CHECK: JobStatus.CHECKING,
    TorrentStatusCode.DOWNLOAD_WAIT: JobStatus.QUEUED,
    TorrentStatusCode.DOWNLOAD: JobStatus.DOWNLOADING,
    TorrentStatusCode.SEED_WAIT: JobStatus.QUEUED,
    TorrentStatusCode.SEED: JobStatus.SEEDING,
}

_WINDOWS_PATH = re.compile(r"^([A-Za-z]:|\\\\)")

ClientFactory = Callable[[Config], TransmissionRPCClient]


def map_status(info: TorrentInfo) -> JobStatus:
    """Map a daemon status code to a job status.

    Stopped torrents that finished downloading are reported as completed.
    """
    if info.status == TorrentStatusCode.STOPPED and info.percent_done >= 1.0:
        return JobStatus.COMPLETED
    return _STATUS_MAP.get(info.status, JobStatus.STOPPED)


def to_job(info: TorrentInfo) -> Job:
    """Convert a ``torrent-get`` entry into a ``Job``."""
    status = map_status(info)

    if status == JobStatus.CHECKING and info.recheck_progress is not None:
        progress = info.recheck_progress * 100
    else:
        progress = info.percent_done * 100

    total = info.size_when_done
    if status == JobStatus.DOWNLOADING:
        downloaded = (
            info.downloaded_ever
            if info.downloaded_ever is not None
            else info.have_valid or 0
        )
        size_formatted = f"{format_bytes(downloaded)} / {format_bytes(total)}"
    else:
        size_formatted = format_bytes(total)

    is_slow_mode = status in (JobStatus.DOWNLOADING, JobStatus.SEEDING) and (
        info.download_limited or info.upload_limited
    )

    return Job(
        id=info.id,
        name=info.name,
        status=status,
        progress=min(100.0, max(0.0, progress)),
        size=total,
        size_formatted=size_formatted,
        upload_ratio=info.upload_ratio,
        seeds_connected=info.peers_sending_to_us,
        seeds_total=sum(t.seeder_count for t in info.tracker_stats),
        peers_connected=info.peers_connected,
        peers_total=sum(t.leecher_count for t in info.tracker_stats),
        uploaded_bytes=info.uploaded_ever,
        uploaded_formatted=format_bytes(info.uploaded_ever),
        download_speed=info.rate_download,
        upload_speed=info.rate_upload,
        download_speed_formatted=format_speed(info.rate_download),
        upload_speed_formatted=format_speed(info.rate_upload),
        is_slow_mode=is_slow_mode,
    )


def _default_client_factory(config: Config) -> TransmissionRPCClient:
    conn = config.connection
    return TransmissionRPCClient(conn.url, conn.username, conn.password)


class TransmissionBridge(RemoteBridge):
    """``RemoteBridge`` implementation over the Transmission RPC protocol."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        client_factory: ClientFactory | None = None,
    ):
        """Initialize bridge.

        Args:
            config_manager: Persists the configuration (defaults to the user config file)
            client_factory: Builds an RPC client for a configuration

        """
        self.config_manager = config_manager or ConfigManager()
        self._client_factory = client_factory or _default_client_factory
        self._client: TransmissionRPCClient | None = None
        self.config: Config | None = None

    @property
    def client(self) -> TransmissionRPCClient:
        """Active RPC client.

        Raises:
            BackendConnectionError: If ``initialize`` has not succeeded yet

        """
        if self._client is None:
            msg = "Bridge is not initialized"
            raise BackendConnectionError(msg)
        return self._client

    async def initialize(self, config: Config) -> None:
        """Persist ``config`` and connect to the daemon it describes."""
        if not config.ui.language:
            ui = config.ui.model_copy(update={"language": get_system_locale()})
            config = config.model_copy(update={"ui": ui})

        try:
            self.config_manager.save(config)
        except ConfigurationError as e:
            msg = f"Failed to save configuration: {e.message}"
            raise BackendConnectionError(msg) from e

        client = self._client_factory(config)
        try:
            await client.session_get()
        except TRANSPORT_ERRORS as e:
            await client.close()
            msg = f"Failed to connect to {config.connection.url}: {e}"
            raise BackendConnectionError(msg, {"url": config.connection.url}) from e

        if self._client is not None:
            await self._client.close()
        self._client = client
        self.config = config
        logger.info("Connected to %s", config.connection.url)

    async def load_config(self) -> Config | None:
        """Load the persisted configuration."""
        return self.config_manager.load()

    async def list_jobs(self) -> list[Job]:
        """List jobs, stopping seeding jobs that reached the upload ratio cap."""
        jobs = [to_job(info) for info in await self.client.list_torrents()]

        max_ratio = self.config.limits.max_upload_ratio if self.config else 0.0
        if max_ratio > 0:
            to_stop = [
                job.id
                for job in jobs
                if job.status == JobStatus.SEEDING and job.upload_ratio >= max_ratio
            ]
            if to_stop:
                logger.info("Stopping %d job(s) at upload ratio %.2f", len(to_stop), max_ratio)
                try:
                    await self.client.torrent_stop(to_stop)
                except TRANSPORT_ERRORS as e:
                    logger.warning("Failed to stop jobs over the ratio cap: %s", e)

        return jobs

    async def get_session_stats(self) -> SessionStats:
        """Return transfer rates, free space and daemon version."""
        session = await self.client.session_get(("download-dir", "version"))
        stats = await self.client.session_stats()

        free_space = 0
        if session.download_dir:
            try:
                free_space = await self.client.free_space(session.download_dir)
            except TRANSPORT_ERRORS as e:
                logger.debug("Failed to get free space: %s", e)

        return SessionStats(
            download_rate=stats.download_speed,
            upload_rate=stats.upload_speed,
            free_space=free_space,
            backend_version=session.version or "unknown",
        )

    async def add_job(self, source: str, destination_dir: str = "") -> None:
        """Add a job from a URL, magnet link or ``data:`` URL."""
        if destination_dir:
            destination_dir = await self.validate_download_path(destination_dir)

        if source.startswith("data:"):
            parts = source.split(",")
            if len(parts) != 2:
                msg = "Invalid data URL format"
                raise ValueError(msg)
            try:
                data = base64.b64decode(parts[1], validate=True)
            except binascii.Error as e:
                msg = f"Failed to decode base64 data: {e}"
                raise ValueError(msg) from e
            await self._add(
                metainfo=base64.b64encode(data).decode("ascii"),
                destination_dir=destination_dir,
            )
        else:
            await self._add(filename=source, destination_dir=destination_dir)

    async def add_job_from_payload(self, payload: str, destination_dir: str = "") -> None:
        """Add a job from base64 encoded metainfo."""
        if destination_dir:
            destination_dir = await self.validate_download_path(destination_dir)
        await self._add(metainfo=payload, destination_dir=destination_dir)

    async def _add(
        self,
        *,
        filename: str | None = None,
        metainfo: str | None = None,
        destination_dir: str = "",
    ) -> None:
        try:
            await self.client.torrent_add(
                filename=filename,
                metainfo=metainfo,
                download_dir=destination_dir or None,
            )
        except RPCError as e:
            reason = e.message.lower()
            if ERR_PERMISSION_DENIED in reason:
                raise DownloadPathError(
                    "errors.directoryAccessDenied", {"path": destination_dir}
                ) from e
            if ERR_NO_SUCH_FILE in reason:
                raise DownloadPathError(
                    "errors.parentDirectoryNotExists", {"path": destination_dir}
                ) from e
            raise

        if destination_dir:
            self._remember_download_path(destination_dir)

    async def remove_job(self, job_id: int, delete_data: bool = False) -> None:
        """Remove a job."""
        await self.client.torrent_remove([job_id], delete_local_data=delete_data)

    async def start_jobs(self, ids: Sequence[int]) -> None:
        """Start jobs."""
        await self.client.torrent_start(ids)

    async def stop_jobs(self, ids: Sequence[int]) -> None:
        """Stop jobs."""
        await self.client.torrent_stop(ids)

    async def set_speed_limit(self, ids: Sequence[int], enable_slow_mode: bool) -> None:
        """Limit both directions to the configured slow speed, or lift the limits."""
        limit = 0
        if enable_slow_mode and self.config is not None:
            limits = self.config.limits
            limit = convert_speed_to_kib(limits.slow_speed_limit, limits.slow_speed_unit.value)

        if limit > 0:
            await self.client.torrent_set(
                ids,
                downloadLimit=limit,
                downloadLimited=True,
                uploadLimit=limit,
                uploadLimited=True,
            )
        else:
            await self.client.torrent_set(ids, downloadLimited=False, uploadLimited=False)

    async def verify_job(self, job_id: int) -> None:
        """Start verifying a job."""
        await self.client.torrent_verify([job_id])

    async def list_job_files(self, job_id: int) -> list[FileEntry]:
        """Return the files of a job."""
        info = await self.client.get_torrent_files(job_id)
        if info is None:
            msg = "Torrent not found"
            raise RPCError(msg, {"id": job_id})
        if info.files is None or info.file_stats is None:
            msg = "No files information available"
            raise RPCError(msg, {"id": job_id})
        if len(info.files) != len(info.file_stats):
            msg = "Files and file stats count mismatch"
            raise RPCError(msg, {"id": job_id})

        entries = []
        for index, (file, stats) in enumerate(zip(info.files, info.file_stats)):
            progress = stats.bytes_completed / file.length * 100 if file.length > 0 else 0.0
            entries.append(
                FileEntry(
                    id=index,
                    name=PurePosixPath(file.name).name,
                    path=file.name,
                    size=file.length,
                    progress=min(100.0, progress),
                    wanted=stats.wanted,
                )
            )
        return entries

    async def set_files_wanted(
        self, job_id: int, file_ids: Sequence[int], wanted: bool
    ) -> None:
        """Mark files as wanted or unwanted."""
        if wanted:
            await self.client.torrent_set([job_id], files_wanted=list(file_ids))
        else:
            await self.client.torrent_set([job_id], files_unwanted=list(file_ids))

    async def test_connection(self, config: Config) -> None:
        """Connect with ``config`` on a throwaway client and list jobs."""
        client = self._client_factory(config)
        try:
            await client.list_torrents()
        except TRANSPORT_ERRORS as e:
            msg = f"Connection test failed: {e}"
            raise BackendConnectionError(msg, {"url": config.connection.url}) from e
        finally:
            await client.close()

    async def get_default_download_dir(self) -> str:
        """Return the configured default dir, else the daemon's."""
        if self.config and self.config.downloads.default_download_path:
            return self.config.downloads.default_download_path
        session = await self.client.session_get(("download-dir",))
        return session.download_dir or ""

    async def get_download_paths(self) -> list[str]:
        """Return the default download dir followed by the path history."""
        paths: list[str] = []
        try:
            default_dir = await self.get_default_download_dir()
        except TRANSPORT_ERRORS as e:
            logger.debug("Failed to get default download dir: %s", e)
            default_dir = ""
        if default_dir:
            paths.append(default_dir)
        if self.config:
            paths.extend(p for p in self.config.downloads.download_paths if p not in paths)
        return paths

    async def remove_download_path(self, path: str) -> None:
        """Drop ``path`` from the history."""
        if self.config is None or path not in self.config.downloads.download_paths:
            return
        history = [p for p in self.config.downloads.download_paths if p != path]
        self._store_download_paths(history)

    async def validate_download_path(self, path: str) -> str:
        """Check that the parent of ``path`` is reachable on the daemon host.

        Returns:
            The path with a leading ``~/`` expanded

        Raises:
            DownloadPathError: With a translation key describing the problem

        """
        if not path:
            raise DownloadPathError("errors.emptyPath")

        if _WINDOWS_PATH.match(path):
            pathmod = ntpath
        else:
            pathmod = posixpath
            if path.startswith("~/"):
                home = os.path.expanduser("~")
                if home == "~":
                    raise DownloadPathError("errors.invalidPath", {"path": path})
                path = posixpath.join(home, path[2:])

        parent = pathmod.dirname(path.rstrip("/\\")) or path
        try:
            await self.client.free_space(parent)
        except RPCError as e:
            reason = e.message.lower()
            if ERR_PERMISSION_DENIED in reason:
                key = "errors.directoryAccessDenied"
            elif ERR_NO_SUCH_FILE in reason:
                key = "errors.parentDirectoryNotExists"
            else:
                key = "errors.directoryNotAccessible"
            raise DownloadPathError(key, {"path": path}) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DownloadPathError("errors.directoryNotAccessible", {"path": path}) from e
        return path

    def _remember_download_path(self, path: str) -> None:
        if self.config is None:
            return
        history = self.config.downloads.download_paths
        if path in history:
            return
        self._store_download_paths([path, *history][:MAX_DOWNLOAD_PATHS])

    def _store_download_paths(self, history: list[str]) -> None:
        assert self.config is not None
        downloads = self.config.downloads.model_copy(update={"download_paths": history})
        self.config = self.config.model_copy(update={"downloads": downloads})
        try:
            self.config_manager.save(self.config)
        except ConfigurationError as e:
            logger.warning("Failed to save download path history: %s", e)

    async def close(self) -> None:
        """Close the active RPC client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
