"""Pytest configuration and shared fixtures for trsync tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from trsync.bridge.base import RemoteBridge
from trsync.bridge.protocol import DEFAULT_RPC_PATH, SESSION_ID_HEADER
from trsync.engine.context import SyncContext
from trsync.i18n import Translator
from trsync.models import (
    Config,
    FileEntry,
    Job,
    JobStatus,
    PollingConfig,
    SessionStats,
)


def _make_job(job_id: int, status: JobStatus | str = JobStatus.STOPPED, **kwargs: Any) -> Job:
    """Build a job with sensible display defaults."""
    data: dict[str, Any] = {
        "id": job_id,
        "name": f"job-{job_id}",
        "status": JobStatus(status),
        "progress": 0.0,
    }
    data.update(kwargs)
    return Job(**data)


class FakeBridge(RemoteBridge):
    """Scriptable in-memory bridge.

    ``failures`` maps method names to exceptions raised on every call,
    ``delays`` maps method names to seconds slept before answering, and
    ``initialize_errors`` is consumed one exception per ``initialize`` call.
    """

    def __init__(
        self,
        jobs: Sequence[Job] = (),
        config: Config | None = None,
        stats: SessionStats | None = None,
    ):
        self.jobs = list(jobs)
        self.config = config
        self.stats = stats or SessionStats(
            download_rate=1024, upload_rate=512, free_space=10 * 1024**3, backend_version="4.0.5"
        )
        self.files: dict[int, list[FileEntry]] = {}
        self.failures: dict[str, BaseException] = {}
        self.delays: dict[str, float] = {}
        self.initialize_errors: list[BaseException] = []
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.initialized_with: Config | None = None
        self.closed = False

    def calls_to(self, name: str) -> list[tuple[Any, ...]]:
        return [args for method, args in self.calls if method == name]

    async def _call(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        if name in self.failures:
            raise self.failures[name]

    async def initialize(self, config: Config) -> None:
        await self._call("initialize", config)
        if self.initialize_errors:
            raise self.initialize_errors.pop(0)
        self.initialized_with = config

    async def load_config(self) -> Config | None:
        await self._call("load_config")
        return self.config

    async def list_jobs(self) -> list[Job]:
        await self._call("list_jobs")
        return list(self.jobs)

    async def get_session_stats(self) -> SessionStats:
        await self._call("get_session_stats")
        return self.stats

    async def add_job(self, source: str, destination_dir: str = "") -> None:
        await self._call("add_job", source, destination_dir)

    async def add_job_from_payload(self, payload: str, destination_dir: str = "") -> None:
        await self._call("add_job_from_payload", payload, destination_dir)

    async def remove_job(self, job_id: int, delete_data: bool = False) -> None:
        await self._call("remove_job", job_id, delete_data)
        self.jobs = [job for job in self.jobs if job.id != job_id]

    async def start_jobs(self, ids: Sequence[int]) -> None:
        await self._call("start_jobs", list(ids))

    async def stop_jobs(self, ids: Sequence[int]) -> None:
        await self._call("stop_jobs", list(ids))

    async def set_speed_limit(self, ids: Sequence[int], enable_slow_mode: bool) -> None:
        await self._call("set_speed_limit", list(ids), enable_slow_mode)

    async def verify_job(self, job_id: int) -> None:
        await self._call("verify_job", job_id)

    async def list_job_files(self, job_id: int) -> list[FileEntry]:
        await self._call("list_job_files", job_id)
        return self.files.get(job_id, [])

    async def set_files_wanted(self, job_id: int, file_ids: Sequence[int], wanted: bool) -> None:
        await self._call("set_files_wanted", job_id, list(file_ids), wanted)

    async def test_connection(self, config: Config) -> None:
        await self._call("test_connection", config)

    async def get_download_paths(self) -> list[str]:
        await self._call("get_download_paths")
        return ["/downloads"]

    async def remove_download_path(self, path: str) -> None:
        await self._call("remove_download_path", path)

    async def close(self) -> None:
        self.closed = True

    def set_status(self, job_id: int, status: JobStatus) -> None:
        """Change the status the daemon reports for a job."""
        self.jobs = [
            job.model_copy(update={"status": status}) if job.id == job_id else job
            for job in self.jobs
        ]


class FakeDaemon:
    """In-process Transmission RPC endpoint.

    ``results`` forces a non-success result per method and ``path_errors``
    maps ``free-space`` paths to the error the daemon reports for them.
    """

    def __init__(self) -> None:
        self.session_id = "session-1"
        self.credentials: tuple[str, str] | None = None
        self.torrents: list[dict[str, Any]] = []
        self.session = {"download-dir": "/downloads", "version": "4.0.5 (a6fe2a64aa)"}
        self.results: dict[str, str] = {}
        self.path_errors: dict[str, str] = {}
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.handshakes = 0
        self.url = ""
        self.port = 0

    def requests_for(self, method: str) -> list[dict[str, Any]]:
        return [args for name, args in self.requests if name == method]

    async def handle(self, request: web.Request) -> web.Response:
        if self.credentials is not None:
            expected = aiohttp.BasicAuth(*self.credentials).encode()
            if request.headers.get("Authorization") != expected:
                return web.Response(status=401)
        if request.headers.get(SESSION_ID_HEADER) != self.session_id:
            self.handshakes += 1
            return web.Response(status=409, headers={SESSION_ID_HEADER: self.session_id})

        body = await request.json()
        method = body["method"]
        arguments = body.get("arguments", {})
        self.requests.append((method, arguments))

        result = self.results.get(method, "success")
        if method == "free-space" and arguments.get("path") in self.path_errors:
            result = self.path_errors[arguments["path"]]
        payload = self._answer(method, arguments) if result == "success" else {}
        return web.json_response({"result": result, "arguments": payload, "tag": body.get("tag")})

    def _answer(self, method: str, arguments: dict[str, Any]) -> dict[str, Any]:
        if method == "torrent-get":
            ids = arguments.get("ids")
            torrents = [t for t in self.torrents if ids is None or t["id"] in ids]
            return {"torrents": torrents}
        if method == "session-get":
            return dict(self.session)
        if method == "session-stats":
            return {"downloadSpeed": 2048, "uploadSpeed": 1024}
        if method == "free-space":
            return {"path": arguments["path"], "size-bytes": 5 * 1024**3}
        if method == "torrent-add":
            return {"torrent-added": {"id": 99, "name": "added"}}
        return {}


@pytest.fixture
def translate():
    """English translator."""
    return Translator("en").translate


@pytest.fixture
def quiet_config():
    """Config whose poll loop never ticks on its own during a test."""
    return Config(
        polling=PollingConfig(
            jobs_interval=3600,
            stats_interval=3600,
            poll_timeout=1.0,
            startup_retry_delay=0,
        )
    )


@pytest.fixture
def fake_bridge(quiet_config):
    """Bridge with a persisted config and two jobs."""
    return FakeBridge(
        jobs=[_make_job(1, JobStatus.STOPPED), _make_job(2, JobStatus.DOWNLOADING)],
        config=quiet_config,
    )


@pytest.fixture
def make_job():
    """Job factory: ``make_job(id, status, **fields)``."""
    return _make_job


@pytest.fixture
def bridge_factory():
    """The ``FakeBridge`` class, for tests that need their own instance."""
    return FakeBridge


@pytest.fixture
def ctx():
    """Fresh sync context."""
    return SyncContext()


@pytest.fixture
def connected_ctx(ctx):
    """Sync context already in CONNECTED."""
    ctx.connection.begin_initialize()
    ctx.connection.initialize_succeeded()
    return ctx


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    """Keep tests away from the user's config and locale."""
    monkeypatch.setenv("TRSYNC_CONFIG", str(tmp_path / "trsync.toml"))
    monkeypatch.setenv("LANG", "en_US.UTF-8")
    for var in (
        "LC_ALL",
        "LC_MESSAGES",
        "TRSYNC_HOST",
        "TRSYNC_PORT",
        "TRSYNC_USERNAME",
        "TRSYNC_PASSWORD",
        "TRSYNC_LANGUAGE",
        "TRSYNC_LOG_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture(autouse=True)
def cleanup_logging():
    """Clean up logging handlers after each test to prevent closed file errors."""
    yield
    for logger_name in list(logging.Logger.manager.loggerDict.keys()):
        logger = logging.getLogger(logger_name)
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    package_logger = logging.getLogger("trsync")
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


@pytest_asyncio.fixture
async def rpc_daemon():
    """Fake Transmission daemon listening on localhost."""
    daemon = FakeDaemon()
    app = web.Application()
    app.router.add_post(DEFAULT_RPC_PATH, daemon.handle)
    server = TestServer(app)
    await server.start_server()
    daemon.url = str(server.make_url(DEFAULT_RPC_PATH))
    daemon.port = server.port
    yield daemon
    await server.close()
