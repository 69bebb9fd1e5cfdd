"""Tests for the connection state machine and startup reconnector."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from trsync.engine.connection import ConnectionStateMachine, StartupReconnector
from trsync.models import Config, ConnectionState
from trsync.utils.backoff import ExponentialBackoff
from trsync.utils.exceptions import (
    BackendConnectionError,
    InvalidTransitionError,
    ReconnectExhaustedError,
)

pytestmark = [pytest.mark.unit, pytest.mark.engine]


@pytest.fixture
def machine():
    return ConnectionStateMachine()


def _connected(machine: ConnectionStateMachine) -> ConnectionStateMachine:
    machine.begin_initialize()
    machine.initialize_succeeded()
    return machine


class TestConnectionStateMachine:
    """Test state transitions."""

    def test_starts_uninitialized_without_polling(self, machine):
        assert machine.state == ConnectionState.UNINITIALIZED
        assert not machine.polling_allowed
        assert not machine.awaiting_config

    def test_await_config_stays_uninitialized(self, machine):
        machine.await_config()
        assert machine.state == ConnectionState.UNINITIALIZED
        assert machine.awaiting_config
        assert not machine.polling_allowed

        machine.begin_initialize()
        assert machine.state == ConnectionState.INITIALIZING
        assert not machine.awaiting_config

    def test_initialize_success_allows_polling(self, machine):
        _connected(machine)
        assert machine.state == ConnectionState.CONNECTED
        assert machine.polling_allowed

    def test_initialize_failure_waits_for_new_config(self, machine):
        machine.begin_initialize()
        machine.initialize_failed()
        assert machine.state == ConnectionState.FAILED
        assert not machine.polling_allowed

        with pytest.raises(InvalidTransitionError):
            machine.poll_timed_out()

        machine.begin_initialize()
        assert machine.state == ConnectionState.INITIALIZING

    def test_timeout_moves_to_reconnecting(self, machine):
        _connected(machine)
        machine.poll_timed_out()
        assert machine.state == ConnectionState.RECONNECTING
        assert machine.is_reconnecting
        assert machine.polling_allowed
        assert machine.reconnect_attempts == 1

    def test_reconnecting_has_no_attempt_cap(self, machine):
        _connected(machine)
        for _ in range(25):
            machine.poll_timed_out()
        assert machine.state == ConnectionState.RECONNECTING
        assert machine.reconnect_attempts == 25

    def test_successful_poll_reconnects_and_resets_attempts(self, machine):
        _connected(machine)
        machine.poll_timed_out()
        machine.poll_timed_out()
        machine.poll_succeeded()
        assert machine.state == ConnectionState.CONNECTED
        assert machine.reconnect_attempts == 0

    def test_successful_poll_while_connected_is_a_no_op(self, machine):
        _connected(machine)
        listener = MagicMock()
        machine.add_listener(listener)
        machine.poll_succeeded()
        assert machine.state == ConnectionState.CONNECTED
        listener.assert_not_called()

    def test_new_settings_reinitialize_from_any_connected_state(self, machine):
        _connected(machine)
        machine.begin_initialize()
        assert machine.state == ConnectionState.INITIALIZING

        machine.initialize_succeeded()
        machine.poll_timed_out()
        machine.begin_initialize()
        assert machine.state == ConnectionState.INITIALIZING

    @pytest.mark.parametrize(
        "action",
        ["initialize_succeeded", "initialize_failed", "poll_timed_out"],
    )
    def test_illegal_transitions_from_uninitialized(self, machine, action):
        with pytest.raises(InvalidTransitionError):
            getattr(machine, action)()
        assert machine.state == ConnectionState.UNINITIALIZED

    def test_await_config_only_when_uninitialized(self, machine):
        _connected(machine)
        with pytest.raises(InvalidTransitionError):
            machine.await_config()

    def test_listeners_see_every_transition(self, machine):
        seen = []
        machine.add_listener(lambda old, new: seen.append((old, new)))
        _connected(machine)
        machine.poll_timed_out()

        assert seen == [
            (ConnectionState.UNINITIALIZED, ConnectionState.INITIALIZING),
            (ConnectionState.INITIALIZING, ConnectionState.CONNECTED),
            (ConnectionState.CONNECTED, ConnectionState.RECONNECTING),
        ]

    def test_remove_listener(self, machine):
        listener = MagicMock()
        machine.add_listener(listener)
        machine.remove_listener(listener)
        machine.begin_initialize()
        listener.assert_not_called()


class TestStartupReconnector:
    """Test the bounded startup helper."""

    @pytest.fixture
    def bridge(self):
        bridge = MagicMock()
        bridge.load_config = AsyncMock(return_value=Config())
        bridge.initialize = AsyncMock()
        return bridge

    @pytest.mark.asyncio
    async def test_returns_config_on_first_success(self, bridge, translate):
        sleep = AsyncMock()
        reconnector = StartupReconnector(bridge, translate, sleep=sleep)

        config = await reconnector.run()

        assert config == Config()
        bridge.initialize.assert_awaited_once_with(config)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_with_backoff_until_success(self, bridge, translate):
        bridge.initialize.side_effect = [OSError("refused"), None]
        sleep = AsyncMock()
        backoff = ExponentialBackoff(base_delay=0.5, jitter=0)
        reconnector = StartupReconnector(bridge, translate, backoff=backoff, sleep=sleep)

        await reconnector.run()

        assert bridge.initialize.await_count == 2
        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, bridge, translate):
        bridge.initialize.side_effect = OSError("refused")
        sleep = AsyncMock()
        backoff = ExponentialBackoff(base_delay=1.0, jitter=0)
        reconnector = StartupReconnector(bridge, translate, max_attempts=3, backoff=backoff, sleep=sleep)

        with pytest.raises(ReconnectExhaustedError) as exc_info:
            await reconnector.run()

        assert bridge.initialize.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]
        assert exc_info.value.message == translate("errors.maxReconnectAttempts", 3)
        assert "check your settings" in exc_info.value.message
        assert exc_info.value.details["last_error"] == "refused"

    @pytest.mark.asyncio
    async def test_no_persisted_config_fails_immediately(self, bridge, translate):
        bridge.load_config.return_value = None
        reconnector = StartupReconnector(bridge, translate, sleep=AsyncMock())

        with pytest.raises(BackendConnectionError) as exc_info:
            await reconnector.run()

        assert not isinstance(exc_info.value, ReconnectExhaustedError)
        bridge.initialize.assert_not_awaited()
