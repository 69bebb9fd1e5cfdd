"""trsync - a Transmission remote client with a locally synchronized view."""

from __future__ import annotations

__version__ = "0.1.0"

from trsync.models import (
    BulkAction,
    Config,
    ConnectionState,
    FileEntry,
    Job,
    JobStatus,
    SessionStats,
    StatusClass,
)

__all__ = [
    "BulkAction",
    "Config",
    "ConnectionState",
    "FileEntry",
    "Job",
    "JobStatus",
    "SessionStats",
    "StatusClass",
    "__version__",
]
