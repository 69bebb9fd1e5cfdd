"""Tests for the Transmission RPC client."""

from __future__ import annotations

import aiohttp
import pytest
import pytest_asyncio

from trsync.bridge.rpc_client import TransmissionRPCClient
from trsync.utils.exceptions import RPCAuthError, RPCError

pytestmark = [pytest.mark.unit, pytest.mark.bridge]


@pytest_asyncio.fixture
async def client(rpc_daemon):
    client = TransmissionRPCClient(rpc_daemon.url)
    yield client
    await client.close()


class TestSessionHandshake:
    """Test the session id handshake."""

    @pytest.mark.asyncio
    async def test_first_call_retries_with_session_id(self, client, rpc_daemon):
        await client.session_get()
        await client.session_stats()

        assert rpc_daemon.handshakes == 1
        assert [m for m, _ in rpc_daemon.requests] == ["session-get", "session-stats"]

    @pytest.mark.asyncio
    async def test_rotated_session_id_is_picked_up(self, client, rpc_daemon):
        await client.session_get()
        rpc_daemon.session_id = "session-2"

        info = await client.session_get()

        assert info.download_dir == "/downloads"
        assert rpc_daemon.handshakes == 2

    @pytest.mark.asyncio
    async def test_auth_failure(self, rpc_daemon):
        rpc_daemon.credentials = ("admin", "secret")
        async with TransmissionRPCClient(rpc_daemon.url, "admin", "wrong") as client:
            with pytest.raises(RPCAuthError):
                await client.session_get()

    @pytest.mark.asyncio
    async def test_basic_auth(self, rpc_daemon):
        rpc_daemon.credentials = ("admin", "secret")
        async with TransmissionRPCClient(rpc_daemon.url, "admin", "secret") as client:
            info = await client.session_get()
        assert info.version.startswith("4.0.5")

    @pytest.mark.asyncio
    async def test_http_error_raises(self, rpc_daemon):
        async with TransmissionRPCClient(rpc_daemon.url + "/missing") as client:
            with pytest.raises(aiohttp.ClientResponseError):
                await client.session_get()


class TestCalls:
    """Test method wrappers."""

    @pytest.mark.asyncio
    async def test_error_result_raises(self, client, rpc_daemon):
        rpc_daemon.results["torrent-start"] = "invalid argument"

        with pytest.raises(RPCError) as exc_info:
            await client.torrent_start([1])

        assert exc_info.value.message == "invalid argument"
        assert exc_info.value.details == {"method": "torrent-start"}

    @pytest.mark.asyncio
    async def test_list_torrents_parses_fields(self, client, rpc_daemon):
        rpc_daemon.torrents = [
            {
                "id": 7,
                "name": "debian.iso",
                "status": 4,
                "percentDone": 0.25,
                "sizeWhenDone": 4096,
                "trackerStats": [{"seederCount": 3, "leecherCount": 4, "host": "x"}],
                "unknownField": True,
            }
        ]

        (info,) = await client.list_torrents()

        assert info.id == 7
        assert info.percent_done == 0.25
        assert info.tracker_stats[0].leecher_count == 4
        fields = rpc_daemon.requests_for("torrent-get")[0]["fields"]
        assert "percentDone" in fields
        assert "ids" not in rpc_daemon.requests_for("torrent-get")[0]

    @pytest.mark.asyncio
    async def test_missing_torrent_files(self, client):
        assert await client.get_torrent_files(5) is None

    @pytest.mark.asyncio
    async def test_torrent_set_uses_rpc_spelling(self, client, rpc_daemon):
        await client.torrent_set([3], files_unwanted=[0, 1], downloadLimited=False)

        assert rpc_daemon.requests_for("torrent-set") == [
            {"files-unwanted": [0, 1], "downloadLimited": False, "ids": [3]}
        ]

    @pytest.mark.asyncio
    async def test_torrent_add_arguments(self, client, rpc_daemon):
        await client.torrent_add(filename="magnet:?xt=urn:btih:abc", download_dir="/media")
        await client.torrent_add(metainfo="ZGF0YQ==")

        assert rpc_daemon.requests_for("torrent-add") == [
            {"filename": "magnet:?xt=urn:btih:abc", "download-dir": "/media"},
            {"metainfo": "ZGF0YQ=="},
        ]

    @pytest.mark.asyncio
    async def test_remove_and_free_space(self, client, rpc_daemon):
        await client.torrent_remove([1, 2], delete_local_data=True)

        assert await client.free_space("/downloads") == 5 * 1024**3
        assert rpc_daemon.requests_for("torrent-remove") == [
            {"ids": [1, 2], "delete-local-data": True}
        ]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, client):
        await client.session_get()
        await client.close()
        await client.close()
        assert await client.session_get()
