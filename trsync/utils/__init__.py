"""Shared utilities and infrastructure."""

from __future__ import annotations

from trsync.utils.exceptions import (
    BackendConnectionError,
    CommandError,
    ConfigurationError,
    PollTimeoutError,
    SyncError,
)
from trsync.utils.logging_config import get_logger, setup_logging

__all__ = [
    "BackendConnectionError",
    "CommandError",
    "ConfigurationError",
    "PollTimeoutError",
    "SyncError",
    "get_logger",
    "setup_logging",
]
