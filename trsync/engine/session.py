"""Engine facade: connection handshake, polling and user commands."""

from __future__ import annotations

import asyncio
import base64
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Sequence, TypeVar

from trsync.engine.bulk import BulkOperationRecord
from trsync.engine.connection import StartupReconnector
from trsync.engine.context import SyncContext
from trsync.engine.scheduler import PollScheduler
from trsync.engine.timeout_guard import TimeoutGuard
from trsync.i18n.manager import TranslationManager
from trsync.models import BulkAction, Config, ConnectionState, FileEntry
from trsync.utils.backoff import ExponentialBackoff
from trsync.utils.exceptions import (
    BackendConnectionError,
    CommandError,
    DownloadPathError,
    SyncError,
)
from trsync.utils.logging_config import LoggingContext

if TYPE_CHECKING:
    from trsync.bridge.base import RemoteBridge

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncSession:
    """Connects a bridge to a ``SyncContext`` and runs commands against it."""

    def __init__(
        self,
        bridge: RemoteBridge,
        ctx: SyncContext | None = None,
        translate: Callable[..., str] | None = None,
        config: Config | None = None,
    ):
        """Initialize session.

        Args:
            bridge: Backend to talk to
            ctx: State owner (a fresh one by default)
            translate: Message lookup; defaults to the bundled catalogs
            config: Settings used for intervals and timeouts until a
                config is loaded

        """
        self.bridge = bridge
        self.ctx = ctx or SyncContext()
        self.translations = TranslationManager(config)
        self._translate = translate
        self.config = config or Config()
        self.scheduler = self._build_scheduler(self.config)

    def translate(self, key: str, *args: Any) -> str:
        """Translate a message key."""
        if self._translate is not None:
            return self._translate(key, *args)
        return self.translations.translator.translate(key, *args)

    def _build_scheduler(self, config: Config) -> PollScheduler:
        polling = config.polling
        return PollScheduler(
            self.ctx,
            self.bridge,
            self.translate,
            guard=TimeoutGuard(polling.poll_timeout),
            jobs_interval=polling.jobs_interval,
            stats_interval=polling.stats_interval,
        )

    # Lifecycle

    async def start(self) -> ConnectionState:
        """Connect with the persisted config and start polling.

        Without a persisted config the session stays uninitialized and
        waits for ``apply_settings``. Connection failures leave it in
        ``FAILED``; they are not retried.
        """
        try:
            config = await self.bridge.load_config()
        except SyncError as e:
            logger.error("Failed to load config: %s", e)
            self.ctx.connection.begin_initialize()
            self.ctx.connection.initialize_failed()
            self.ctx.set_error(self.translate("errors.initializeFailed", e.message))
            return self.ctx.connection_state

        if config is None:
            logger.info("No persisted configuration; waiting for settings")
            self.ctx.connection.await_config()
            return self.ctx.connection_state

        try:
            await self._connect(config)
        except BackendConnectionError as e:
            logger.error("Startup connection failed: %s", e)
        return self.ctx.connection_state

    async def apply_settings(self, config: Config) -> None:
        """Re-initialize with user supplied settings.

        Raises:
            BackendConnectionError: If the daemon cannot be reached

        """
        await self._connect(config)

    async def reconnect(self) -> Config:
        """Retry the persisted config a bounded number of times.

        Raises:
            BackendConnectionError: If no config is persisted
            ReconnectExhaustedError: When every attempt failed

        """
        await self.scheduler.stop()
        self.ctx.connection.begin_initialize()
        reconnector = StartupReconnector(
            self.bridge,
            self.translate,
            max_attempts=self.config.polling.max_startup_attempts,
            backoff=ExponentialBackoff.for_startup(self.config.polling.startup_retry_delay),
        )
        try:
            config = await reconnector.run()
            self.scheduler = self._build_scheduler(config)
            await self.scheduler.initial_fetch()
        except SyncError as e:
            self.ctx.connection.initialize_failed()
            self.ctx.set_error(e.message)
            raise
        except Exception as e:
            self.ctx.connection.initialize_failed()
            message = self.translate("errors.initializeFailed", str(e))
            self.ctx.set_error(message)
            raise BackendConnectionError(message) from e
        self._connected(config)
        return config

    async def _connect(self, config: Config) -> None:
        await self.scheduler.stop()
        self.ctx.connection.begin_initialize()
        try:
            with LoggingContext("initialize", logger=logger, host=config.connection.host):
                await self.bridge.initialize(config)
            self.scheduler = self._build_scheduler(config)
            await self.scheduler.initial_fetch()
        except Exception as e:
            self.ctx.connection.initialize_failed()
            reason = e.message if isinstance(e, SyncError) else str(e)
            message = self.translate("errors.initializeFailed", reason)
            self.ctx.set_error(message)
            if isinstance(e, BackendConnectionError):
                raise
            raise BackendConnectionError(message) from e
        self._connected(config)

    def _connected(self, config: Config) -> None:
        self.config = config
        self.translations.update(config)
        self.ctx.connection.initialize_succeeded()
        self.ctx.set_error(None)
        self.scheduler.start()

    async def close(self) -> None:
        """Stop polling and release the bridge."""
        await self.scheduler.stop()
        await self.bridge.close()

    async def __aenter__(self) -> SyncSession:
        """Enter async context."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        await self.close()

    async def test_connection(self, config: Config) -> None:
        """Check ``config`` without touching the active connection.

        Raises:
            BackendConnectionError: If the daemon cannot be reached

        """
        with LoggingContext("test_connection", logger=logger, host=config.connection.host):
            await self.bridge.test_connection(config)

    # Commands

    def _describe(self, error: BaseException) -> str:
        if isinstance(error, DownloadPathError):
            return self.translate(error.key)
        if isinstance(error, SyncError):
            return error.message
        return str(error) or type(error).__name__

    async def _run_command(
        self,
        name: str,
        operation: Awaitable[T],
        *,
        refresh: bool = False,
        rollback: BulkAction | None = None,
    ) -> T:
        try:
            with LoggingContext(name, logger=logger):
                result = await operation
        except Exception as e:
            if rollback is not None:
                self.ctx.bulk.fail(rollback)
            message = self.translate("errors.commandFailed", name, self._describe(e))
            self.ctx.set_error(message)
            raise CommandError(message, {"command": name}) from e
        if refresh:
            await self.scheduler.jobs.run_now()
        return result

    async def add_job(self, source: str, destination_dir: str = "") -> None:
        """Add a job from a URL, magnet link or ``data:`` URL."""
        await self._run_command(
            "add_job", self.bridge.add_job(source, destination_dir), refresh=True
        )

    async def add_job_from_payload(self, payload: str, destination_dir: str = "") -> None:
        """Add a job from base64 encoded metainfo."""
        await self._run_command(
            "add_job_from_payload",
            self.bridge.add_job_from_payload(payload, destination_dir),
            refresh=True,
        )

    async def add_job_from_file(self, path: str | Path, destination_dir: str = "") -> None:
        """Read a ``.torrent`` file and add it."""
        try:
            data = Path(path).expanduser().read_bytes()
        except OSError as e:
            message = self.translate("errors.fileReadFailed", str(path))
            self.ctx.set_error(message)
            raise CommandError(message, {"path": str(path)}) from e
        await self.add_job_from_payload(base64.b64encode(data).decode("ascii"), destination_dir)

    async def remove_job(self, job_id: int, delete_data: bool = False) -> None:
        """Remove one job."""
        await self._run_command(
            "remove_job", self.bridge.remove_job(job_id, delete_data), refresh=True
        )
        self.ctx.selection.discard([job_id])

    async def start_job(self, job_id: int) -> None:
        """Start one job."""
        await self._run_command("start_job", self.bridge.start_jobs([job_id]), refresh=True)

    async def stop_job(self, job_id: int) -> None:
        """Stop one job."""
        await self._run_command("stop_job", self.bridge.stop_jobs([job_id]), refresh=True)

    async def verify_job(self, job_id: int) -> None:
        """Start verifying one job."""
        await self._run_command("verify_job", self.bridge.verify_job(job_id), refresh=True)

    async def set_speed_limit(self, ids: Sequence[int], enable_slow_mode: bool) -> None:
        """Toggle slow mode for ``ids``."""
        await self._run_command(
            "set_speed_limit",
            self.bridge.set_speed_limit(list(ids), enable_slow_mode),
            refresh=True,
        )

    async def list_job_files(self, job_id: int) -> list[FileEntry]:
        """Return the files of a job."""
        files = await self._run_command("list_job_files", self.bridge.list_job_files(job_id))
        return list(files)

    async def set_files_wanted(
        self, job_id: int, file_ids: Sequence[int], wanted: bool
    ) -> None:
        """Mark files of a job as wanted or unwanted."""
        await self._run_command(
            "set_files_wanted",
            self.bridge.set_files_wanted(job_id, list(file_ids), wanted),
        )

    async def get_download_paths(self) -> list[str]:
        """Return known download directories, default first."""
        return await self._run_command("get_download_paths", self.bridge.get_download_paths())

    async def remove_download_path(self, path: str) -> None:
        """Forget a download directory."""
        await self._run_command(
            "remove_download_path", self.bridge.remove_download_path(path)
        )

    # Bulk commands

    async def _issue_bulk(
        self,
        action: BulkAction,
        command: Callable[[list[int]], Awaitable[None]],
    ) -> BulkOperationRecord | None:
        record = self.ctx.bulk.begin(action, self.ctx.selection.ids, self.ctx.jobs)
        if record is None:
            return None
        await self._run_command(
            f"{action.value}_selected",
            command(list(record.affected)),
            rollback=action,
        )
        return record

    async def start_selected(self) -> BulkOperationRecord | None:
        """Start every selected stopped job.

        Returns:
            The tracked record, or None when nothing was issued.

        Raises:
            CommandError: If the daemon rejected the command

        """
        return await self._issue_bulk(BulkAction.START, self.bridge.start_jobs)

    async def stop_selected(self) -> BulkOperationRecord | None:
        """Stop every selected active job."""
        return await self._issue_bulk(BulkAction.STOP, self.bridge.stop_jobs)

    async def remove_selected(self, delete_data: bool = False) -> int:
        """Remove every selected job concurrently.

        Returns:
            Number of jobs removed (0 when nothing was issued).

        """
        ids = sorted(self.ctx.selection.present_in(self.ctx.jobs))
        if not ids or not self.ctx.bulk.mark_busy(BulkAction.REMOVE):
            return 0
        try:
            await self._run_command(
                "remove_selected",
                asyncio.gather(*(self.bridge.remove_job(i, delete_data) for i in ids)),
            )
        finally:
            self.ctx.bulk.clear(BulkAction.REMOVE)
        self.ctx.selection.discard(ids)
        await self.scheduler.jobs.run_now()
        return len(ids)

    async def wait_for_bulk(self, action: BulkAction, timeout: float | None = None) -> bool:
        """Wait until ``action`` is no longer in progress.

        Returns:
            False if ``timeout`` passed first.

        """
        if not self.ctx.bulk.is_in_progress(action):
            return True
        done = asyncio.Event()

        def _on_change(changed: BulkAction, in_progress: bool) -> None:
            if changed == action and not in_progress:
                done.set()

        unsubscribe = self.ctx.subscribe("bulk_operation_changed", _on_change)
        try:
            await asyncio.wait_for(done.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        finally:
            unsubscribe()
        return True
