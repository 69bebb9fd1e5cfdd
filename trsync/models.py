"""Pydantic models for trsync.

Provides validated data models for jobs, session statistics and the
persisted client configuration.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class JobStatus(str, Enum):
    """Job status as reported by the daemon."""

    STOPPED = "stopped"
    DOWNLOADING = "downloading"
    SEEDING = "seeding"
    CHECKING = "checking"
    QUEUED = "queued"
    COMPLETED = "completed"


class StatusClass(str, Enum):
    """Coarse status classes used by bulk operations."""

    ACTIVE = "active"
    IDLE = "idle"


_STATUS_CLASSES: dict[JobStatus, StatusClass] = {
    JobStatus.DOWNLOADING: StatusClass.ACTIVE,
    JobStatus.SEEDING: StatusClass.ACTIVE,
    JobStatus.STOPPED: StatusClass.IDLE,
}


def status_class(status: JobStatus) -> StatusClass | None:
    """Return the class of ``status``, or None for transient statuses."""
    return _STATUS_CLASSES.get(JobStatus(status))


class ConnectionState(str, Enum):
    """Connection lifecycle states."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class BulkAction(str, Enum):
    """Actions that can be applied to the whole selection."""

    START = "start"
    STOP = "stop"
    REMOVE = "remove"


class Theme(str, Enum):
    """UI theme."""

    LIGHT = "light"
    DARK = "dark"
    AUTO = "auto"


class SpeedUnit(str, Enum):
    """Units accepted for the slow mode speed limit."""

    KIB = "KiB/s"
    MIB = "MiB/s"


class Job(BaseModel):
    """One torrent tracked by the daemon.

    Jobs are immutable; a poll replaces the whole snapshot.
    """

    id: int = Field(..., description="Stable job identifier")
    name: str = Field(..., description="Job name")
    status: JobStatus = Field(..., description="Current status")
    progress: float = Field(default=0.0, ge=0.0, le=100.0, description="Progress (0-100)")
    size: int = Field(default=0, ge=0, description="Size when done in bytes")
    size_formatted: str = Field(default="0 B", description="Human readable size")
    upload_ratio: float = Field(default=0.0, description="Upload ratio")
    seeds_connected: int = Field(default=0, description="Connected seeds")
    seeds_total: int = Field(default=0, description="Seeds known to trackers")
    peers_connected: int = Field(default=0, description="Connected peers")
    peers_total: int = Field(default=0, description="Peers known to trackers")
    uploaded_bytes: int = Field(default=0, ge=0, description="Total uploaded bytes")
    uploaded_formatted: str = Field(default="0 B", description="Human readable upload total")
    download_speed: int = Field(default=0, ge=0, description="Download rate in bytes/s")
    upload_speed: int = Field(default=0, ge=0, description="Upload rate in bytes/s")
    download_speed_formatted: str = Field(default="0 B/s", description="Human readable download rate")
    upload_speed_formatted: str = Field(default="0 B/s", description="Human readable upload rate")
    is_slow_mode: bool = Field(default=False, description="Speed limits are enabled")

    model_config = {"frozen": True}

    @property
    def status_class(self) -> StatusClass | None:
        """Status class of the job."""
        return status_class(self.status)


class FileEntry(BaseModel):
    """One file inside a job."""

    id: int = Field(..., ge=0, description="File index within the job")
    name: str = Field(..., description="File name")
    path: str = Field(..., description="Path relative to the download dir")
    size: int = Field(default=0, ge=0, description="File size in bytes")
    progress: float = Field(default=0.0, ge=0.0, le=100.0, description="Progress (0-100)")
    wanted: bool = Field(default=True, description="File is selected for download")

    model_config = {"frozen": True}


class SessionStats(BaseModel):
    """Session wide statistics."""

    download_rate: int = Field(default=0, ge=0, description="Total download rate in bytes/s")
    upload_rate: int = Field(default=0, ge=0, description="Total upload rate in bytes/s")
    free_space: int = Field(default=0, description="Free space in the default download dir")
    backend_version: str = Field(default="", description="Daemon version string")

    model_config = {"frozen": True}


class ConnectionConfig(BaseModel):
    """Daemon connection settings."""

    host: str = Field(default="localhost", description="Daemon host")
    port: int = Field(default=9091, ge=1, le=65535, description="RPC port")
    username: str = Field(default="", description="RPC username")
    password: str = Field(default="", description="RPC password")
    rpc_path: str = Field(default="/transmission/rpc", description="RPC endpoint path")
    use_https: bool = Field(default=False, description="Connect over HTTPS")

    @field_validator("rpc_path")
    @classmethod
    def _validate_rpc_path(cls, v: str) -> str:
        if not v.startswith("/"):
            return "/" + v
        return v

    @property
    def url(self) -> str:
        """RPC endpoint URL."""
        scheme = "https" if self.use_https else "http"
        return f"{scheme}://{self.host}:{self.port}{self.rpc_path}"


class UIConfig(BaseModel):
    """UI and internationalization configuration."""

    language: str = Field(default="", description="Language code (empty for system locale)")
    theme: Theme = Field(default=Theme.AUTO, description="UI theme")


class LimitsConfig(BaseModel):
    """Speed and ratio limits."""

    slow_speed_limit: int = Field(default=10, ge=0, description="Slow mode speed limit")
    slow_speed_unit: SpeedUnit = Field(default=SpeedUnit.KIB, description="Slow mode speed unit")
    max_upload_ratio: float = Field(
        default=0.0,
        ge=0.0,
        description="Stop seeding at this upload ratio (0 disables)",
    )


class DownloadsConfig(BaseModel):
    """Download directory settings."""

    default_download_path: str = Field(default="", description="Preferred download directory")
    download_paths: list[str] = Field(
        default_factory=list,
        description="Recently used download directories, newest first",
    )


class PollingConfig(BaseModel):
    """Poll scheduler settings."""

    jobs_interval: float = Field(default=3.0, gt=0, description="Job refresh interval in seconds")
    stats_interval: float = Field(default=1.0, gt=0, description="Stats refresh interval in seconds")
    poll_timeout: float = Field(default=60.0, gt=0, description="Deadline for a single poll in seconds")
    max_startup_attempts: int = Field(default=3, ge=1, description="Startup reconnect attempts")
    startup_retry_delay: float = Field(
        default=1.0,
        ge=0,
        description="Base delay between startup reconnect attempts in seconds",
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Log level")
    log_file: str | None = Field(None, description="Log file path")
    structured_logging: bool = Field(default=True, description="Use structured logging")
    log_correlation_id: bool = Field(
        default=False,
        description="Include correlation IDs",
    )


class Config(BaseModel):
    """Main configuration model."""

    connection: ConnectionConfig = Field(
        default_factory=ConnectionConfig,
        description="Daemon connection configuration",
    )
    ui: UIConfig = Field(
        default_factory=UIConfig,
        description="UI and internationalization configuration",
    )
    limits: LimitsConfig = Field(
        default_factory=LimitsConfig,
        description="Speed and ratio limits",
    )
    downloads: DownloadsConfig = Field(
        default_factory=DownloadsConfig,
        description="Download directory configuration",
    )
    polling: PollingConfig = Field(
        default_factory=PollingConfig,
        description="Poll scheduler configuration",
    )
    observability: ObservabilityConfig = Field(
        default_factory=ObservabilityConfig,
        description="Observability configuration",
    )
