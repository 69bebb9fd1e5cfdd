"""Transmission RPC protocol definitions.

Defines constants, status codes and payload models for the daemon's
JSON-over-HTTP RPC.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

# API Constants
DEFAULT_RPC_PATH = "/transmission/rpc"
SESSION_ID_HEADER = "X-Transmission-Session-Id"
RESULT_SUCCESS = "success"

# Errors reported by the daemon in ``result``
ERR_PERMISSION_DENIED = "permission denied"
ERR_NO_SUCH_FILE = "no such file or directory"

TORRENT_FIELDS: tuple[str, ...] = (
    "id",
    "name",
    "status",
    "percentDone",
    "uploadRatio",
    "peersConnected",
    "peersSendingToUs",
    "trackerStats",
    "uploadedEver",
    "sizeWhenDone",
    "rateDownload",
    "rateUpload",
    "downloadedEver",
    "haveValid",
    "downloadLimited",
    "uploadLimited",
    "recheckProgress",
)

FILE_FIELDS: tuple[str, ...] = ("name", "files", "fileStats")


class TorrentStatusCode(IntEnum):
    """Numeric torrent status used by the daemon."""

    STOPPED = 0
    CHECK_WAIT = 1
    CHECK = 2
    DOWNLOAD_WAIT = 3
    DOWNLOAD = 4
    SEED_WAIT = 5
    SEED = 6


class RPCRequest(BaseModel):
    """RPC request body."""

    method: str = Field(..., description="RPC method name")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Method arguments")
    tag: int | None = Field(None, description="Echoed back in the response")


class RPCResponse(BaseModel):
    """RPC response body."""

    result: str = Field(..., description="'success' or an error string")
    arguments: dict[str, Any] = Field(default_factory=dict, description="Returned values")
    tag: int | None = Field(None, description="Request tag")


class TrackerStat(BaseModel):
    """Per-tracker swarm counts."""

    seeder_count: int = Field(0, alias="seederCount", description="Seeders reported by tracker")
    leecher_count: int = Field(0, alias="leecherCount", description="Leechers reported by tracker")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class TorrentInfo(BaseModel):
    """One entry of a ``torrent-get`` response."""

    id: int = Field(..., description="Torrent ID")
    name: str = Field("", description="Torrent name")
    status: int = Field(0, description="Numeric status")
    percent_done: float = Field(0.0, alias="percentDone", description="Progress (0-1)")
    upload_ratio: float = Field(0.0, alias="uploadRatio", description="Upload ratio")
    peers_connected: int = Field(0, alias="peersConnected", description="Connected peers")
    peers_sending_to_us: int = Field(0, alias="peersSendingToUs", description="Peers we download from")
    tracker_stats: list[TrackerStat] = Field(default_factory=list, alias="trackerStats")
    uploaded_ever: int = Field(0, alias="uploadedEver", description="Total uploaded bytes")
    size_when_done: int = Field(0, alias="sizeWhenDone", description="Size in bytes")
    rate_download: int = Field(0, alias="rateDownload", description="Download rate in bytes/s")
    rate_upload: int = Field(0, alias="rateUpload", description="Upload rate in bytes/s")
    downloaded_ever: int | None = Field(None, alias="downloadedEver", description="Total downloaded bytes")
    have_valid: int | None = Field(None, alias="haveValid", description="Verified bytes")
    download_limited: bool = Field(False, alias="downloadLimited")
    upload_limited: bool = Field(False, alias="uploadLimited")
    recheck_progress: float | None = Field(None, alias="recheckProgress", description="Verify progress (0-1)")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class TorrentFile(BaseModel):
    """Static file info from ``files``."""

    name: str = Field(..., description="Path relative to the download dir")
    length: int = Field(0, description="File size in bytes")
    bytes_completed: int = Field(0, alias="bytesCompleted")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class TorrentFileStat(BaseModel):
    """Per-file state from ``fileStats``."""

    bytes_completed: int = Field(0, alias="bytesCompleted")
    wanted: bool = Field(True, description="File is selected for download")
    priority: int = Field(0, description="File priority")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class TorrentFilesInfo(BaseModel):
    """``torrent-get`` entry carrying file information."""

    name: str = Field("", description="Torrent name")
    files: list[TorrentFile] | None = Field(None)
    file_stats: list[TorrentFileStat] | None = Field(None, alias="fileStats")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class SessionInfo(BaseModel):
    """Subset of ``session-get`` arguments."""

    download_dir: str | None = Field(None, alias="download-dir")
    version: str | None = Field(None)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class SessionStatsInfo(BaseModel):
    """Subset of ``session-stats`` arguments."""

    download_speed: int = Field(0, alias="downloadSpeed")
    upload_speed: int = Field(0, alias="uploadSpeed")

    model_config = {"populate_by_name": True, "extra": "ignore"}
