"""Exception hierarchy for trsync.

Poll-cycle failures are absorbed by the engine and surfaced through the
session state; command failures are raised to the caller as ``CommandError``.
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base exception for all trsync errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize trsync error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class BackendConnectionError(SyncError):
    """Initialize or connection test failed; the session needs a new config."""


class ReconnectExhaustedError(BackendConnectionError):
    """The bounded startup reconnect helper ran out of attempts."""


class PollTimeoutError(SyncError):
    """A guarded call did not settle before its deadline."""


class CommandError(SyncError):
    """A user-issued mutation failed."""


class ConfigurationError(SyncError):
    """Configuration loading or validation errors."""


class InvalidTransitionError(SyncError):
    """Connection state machine was asked for an illegal transition."""


class RPCError(SyncError):
    """Transmission RPC returned a non-success result."""


class RPCAuthError(RPCError):
    """Transmission RPC rejected the credentials."""


class DownloadPathError(SyncError):
    """Download directory is empty, missing or not accessible.

    ``key`` is the translation key describing the problem.
    """

    def __init__(self, key: str, details: dict[str, Any] | None = None):
        """Initialize with a translation key."""
        super().__init__(key, details)
        self.key = key
