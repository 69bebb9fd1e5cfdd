"""Transmission RPC client.

Provides an aiohttp client for the daemon's JSON RPC endpoint, including
the ``X-Transmission-Session-Id`` handshake.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

import aiohttp

from trsync.bridge.protocol import (
    FILE_FIELDS,
    RESULT_SUCCESS,
    SESSION_ID_HEADER,
    TORRENT_FIELDS,
    RPCRequest,
    RPCResponse,
    SessionInfo,
    SessionStatsInfo,
    TorrentFilesInfo,
    TorrentInfo,
)
from trsync.utils.exceptions import RPCAuthError, RPCError

logger = logging.getLogger(__name__)


class TransmissionRPCClient:
    """Client for the Transmission RPC protocol over HTTP."""

    def __init__(
        self,
        url: str,
        username: str = "",
        password: str = "",
        timeout: float = 30.0,
    ):
        """Initialize RPC client.

        Args:
            url: Full RPC endpoint URL
            username: Basic auth username (empty disables auth)
            password: Basic auth password
            timeout: Request timeout in seconds

        """
        self.url = url
        self.auth = aiohttp.BasicAuth(username, password) if username else None
        self.timeout = aiohttp.ClientTimeout(total=timeout)

        self._session: aiohttp.ClientSession | None = None
        self._session_loop: asyncio.AbstractEventLoop | None = None
        self._session_id: str | None = None
        self._tag = 0

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure HTTP session is created in the running loop."""
        current_loop = asyncio.get_running_loop()
        should_recreate = (
            self._session is None
            or self._session.closed
            or self._session_loop is not current_loop
        )
        if should_recreate:
            if self._session and not self._session.closed:
                await self._session.close()
            self._session = aiohttp.ClientSession(timeout=self.timeout, auth=self.auth)
            self._session_loop = current_loop
        assert self._session is not None
        return self._session

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._session_id:
            headers[SESSION_ID_HEADER] = self._session_id
        return headers

    async def close(self) -> None:
        """Close the HTTP session."""
        if self._session:
            try:
                if not self._session.closed:
                    await self._session.close()
            finally:
                self._session = None
                self._session_loop = None

    async def __aenter__(self) -> TransmissionRPCClient:
        """Enter async context."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        await self.close()

    async def call(self, method: str, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """Invoke an RPC method and return its ``arguments``.

        A ``409`` answer carries a fresh session id; the request is retried
        once with it.

        Raises:
            RPCAuthError: If the daemon rejects the credentials
            RPCError: If the daemon reports a non-success result
            aiohttp.ClientError: On transport failures

        """
        session = await self._ensure_session()
        self._tag += 1
        request = RPCRequest(method=method, arguments=arguments or {}, tag=self._tag)
        body = request.model_dump(exclude_none=True)

        for attempt in range(2):
            async with session.post(self.url, json=body, headers=self._get_headers()) as resp:
                if resp.status == 409 and attempt == 0:
                    self._session_id = resp.headers.get(SESSION_ID_HEADER)
                    logger.debug("Received new RPC session id")
                    continue
                if resp.status == 401:
                    msg = "Authentication failed"
                    raise RPCAuthError(msg, {"url": self.url})
                resp.raise_for_status()
                data = await resp.json(content_type=None)
                break

        response = RPCResponse(**data)
        if response.result != RESULT_SUCCESS:
            raise RPCError(response.result, {"method": method})
        return response.arguments

    # Torrent methods

    async def torrent_get(
        self,
        fields: Sequence[str] = TORRENT_FIELDS,
        ids: Sequence[int] | None = None,
    ) -> list[dict[str, Any]]:
        """Return raw torrent dicts for ``ids`` (all torrents when None)."""
        arguments: dict[str, Any] = {"fields": list(fields)}
        if ids is not None:
            arguments["ids"] = list(ids)
        result = await self.call("torrent-get", arguments)
        return result.get("torrents", [])

    async def list_torrents(self) -> list[TorrentInfo]:
        """List all torrents with the display fields."""
        return [TorrentInfo(**t) for t in await self.torrent_get()]

    async def get_torrent_files(self, torrent_id: int) -> TorrentFilesInfo | None:
        """Return file info for one torrent, or None if it does not exist."""
        torrents = await self.torrent_get(FILE_FIELDS, [torrent_id])
        if not torrents:
            return None
        return TorrentFilesInfo(**torrents[0])

    async def torrent_add(
        self,
        *,
        filename: str | None = None,
        metainfo: str | None = None,
        download_dir: str | None = None,
    ) -> dict[str, Any]:
        """Add a torrent by URL/magnet (``filename``) or base64 ``metainfo``."""
        arguments: dict[str, Any] = {}
        if filename is not None:
            arguments["filename"] = filename
        if metainfo is not None:
            arguments["metainfo"] = metainfo
        if download_dir:
            arguments["download-dir"] = download_dir
        return await self.call("torrent-add", arguments)

    async def torrent_remove(self, ids: Sequence[int], delete_local_data: bool = False) -> None:
        """Remove torrents."""
        await self.call(
            "torrent-remove",
            {"ids": list(ids), "delete-local-data": delete_local_data},
        )

    async def torrent_start(self, ids: Sequence[int]) -> None:
        """Start torrents."""
        await self.call("torrent-start", {"ids": list(ids)})

    async def torrent_stop(self, ids: Sequence[int]) -> None:
        """Stop torrents."""
        await self.call("torrent-stop", {"ids": list(ids)})

    async def torrent_verify(self, ids: Sequence[int]) -> None:
        """Queue torrents for verification."""
        await self.call("torrent-verify", {"ids": list(ids)})

    async def torrent_set(self, ids: Sequence[int], **arguments: Any) -> None:
        """Set torrent properties; keyword names use RPC spelling with ``_`` for ``-``."""
        payload = {key.replace("_", "-"): value for key, value in arguments.items()}
        payload["ids"] = list(ids)
        await self.call("torrent-set", payload)

    # Session methods

    async def session_get(self, fields: Sequence[str] = ("download-dir", "version")) -> SessionInfo:
        """Return session settings."""
        return SessionInfo(**await self.call("session-get", {"fields": list(fields)}))

    async def session_stats(self) -> SessionStatsInfo:
        """Return session wide transfer rates."""
        return SessionStatsInfo(**await self.call("session-stats"))

    async def free_space(self, path: str) -> int:
        """Return free bytes at ``path`` on the daemon host."""
        result = await self.call("free-space", {"path": path})
        return int(result.get("size-bytes", 0))
