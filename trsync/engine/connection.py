"""Connection lifecycle state machine and the bounded startup reconnector.

State graph::

    UNINITIALIZED -> INITIALIZING -> CONNECTED <-> RECONNECTING
                          |               ^
                          v               |
                        FAILED -----------+ (via INITIALIZING)

Any state may move to INITIALIZING when new settings are supplied. The
steady-state RECONNECTING loop has no attempt cap.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from trsync.models import ConnectionState
from trsync.utils.backoff import ExponentialBackoff
from trsync.utils.exceptions import (
    BackendConnectionError,
    InvalidTransitionError,
    ReconnectExhaustedError,
)

if TYPE_CHECKING:
    from trsync.bridge.base import RemoteBridge
    from trsync.models import Config

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectionState, ConnectionState], None]

_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.UNINITIALIZED: frozenset({ConnectionState.INITIALIZING}),
    ConnectionState.INITIALIZING: frozenset(
        {ConnectionState.CONNECTED, ConnectionState.FAILED, ConnectionState.INITIALIZING}
    ),
    ConnectionState.CONNECTED: frozenset(
        {ConnectionState.RECONNECTING, ConnectionState.INITIALIZING}
    ),
    ConnectionState.RECONNECTING: frozenset(
        {
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
            ConnectionState.INITIALIZING,
        }
    ),
    ConnectionState.FAILED: frozenset({ConnectionState.INITIALIZING}),
}


class ConnectionStateMachine:
    """Owns the current connection state and gates polling on it."""

    def __init__(self) -> None:
        """Start in ``UNINITIALIZED``."""
        self._state = ConnectionState.UNINITIALIZED
        self._listeners: list[StateListener] = []
        self.awaiting_config = False
        self.reconnect_attempts = 0

    @property
    def state(self) -> ConnectionState:
        """Current state."""
        return self._state

    @property
    def polling_allowed(self) -> bool:
        """True while the poll scheduler may run."""
        return self._state in (ConnectionState.CONNECTED, ConnectionState.RECONNECTING)

    @property
    def is_reconnecting(self) -> bool:
        """True while polls are timing out."""
        return self._state == ConnectionState.RECONNECTING

    def add_listener(self, listener: StateListener) -> None:
        """Call ``listener(old, new)`` on every transition."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        """Stop notifying ``listener``."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _transition(self, new_state: ConnectionState) -> None:
        old_state = self._state
        if new_state not in _TRANSITIONS[old_state]:
            msg = f"Illegal transition {old_state.value} -> {new_state.value}"
            raise InvalidTransitionError(msg, {"from": old_state.value, "to": new_state.value})
        self._state = new_state
        logger.debug("Connection state %s -> %s", old_state.value, new_state.value)
        for listener in list(self._listeners):
            listener(old_state, new_state)

    def await_config(self) -> None:
        """Record that no persisted config exists; stay ``UNINITIALIZED``."""
        if self._state != ConnectionState.UNINITIALIZED:
            msg = f"Cannot await config in state {self._state.value}"
            raise InvalidTransitionError(msg)
        self.awaiting_config = True

    def begin_initialize(self) -> None:
        """Move to ``INITIALIZING`` (startup or new settings)."""
        self.awaiting_config = False
        self._transition(ConnectionState.INITIALIZING)

    def initialize_succeeded(self) -> None:
        """Initialize and the first fetch succeeded."""
        self._transition(ConnectionState.CONNECTED)
        self.reconnect_attempts = 0

    def initialize_failed(self) -> None:
        """Initialize or the first fetch failed; wait for new settings."""
        self._transition(ConnectionState.FAILED)

    def poll_succeeded(self) -> None:
        """A job poll completed; leaves ``RECONNECTING`` if needed."""
        if self._state == ConnectionState.RECONNECTING:
            self._transition(ConnectionState.CONNECTED)
        self.reconnect_attempts = 0

    def poll_timed_out(self) -> None:
        """A job poll exceeded its deadline."""
        self._transition(ConnectionState.RECONNECTING)
        self.reconnect_attempts += 1


class StartupReconnector:
    """Bounded load-config-and-initialize retry used at startup.

    Never drives the steady-state poll loop.
    """

    def __init__(
        self,
        bridge: RemoteBridge,
        translate: Callable[..., str],
        max_attempts: int = 3,
        backoff: ExponentialBackoff | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize reconnector.

        Args:
            bridge: Backend to initialize
            translate: Message lookup for the terminal error
            max_attempts: Initialize attempts before giving up
            backoff: Delay policy between attempts
            sleep: Awaitable sleep (injectable for tests)

        """
        self.bridge = bridge
        self.translate = translate
        self.max_attempts = max_attempts
        self.backoff = backoff or ExponentialBackoff()
        self._sleep = sleep

    async def run(self) -> Config:
        """Load the persisted config and initialize with it.

        Returns:
            The config the bridge is now initialized with.

        Raises:
            BackendConnectionError: If no config is persisted
            ReconnectExhaustedError: After ``max_attempts`` failed attempts

        """
        last_error: Exception | None = None
        for attempt, delay in enumerate(self.backoff.delays(self.max_attempts)):
            if attempt:
                logger.debug("Reconnect attempt %d in %.2fs", attempt + 1, delay)
                await self._sleep(delay)

            config = await self.bridge.load_config()
            if config is None:
                raise BackendConnectionError(self.translate("errors.notConfigured"))

            try:
                await self.bridge.initialize(config)
            except Exception as e:
                last_error = e
                logger.warning(
                    "Reconnect attempt %d/%d failed: %s",
                    attempt + 1,
                    self.max_attempts,
                    e,
                )
                continue
            return config

        raise ReconnectExhaustedError(
            self.translate("errors.maxReconnectAttempts", self.max_attempts),
            {"attempts": self.max_attempts, "last_error": str(last_error)},
        )
