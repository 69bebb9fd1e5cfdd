"""Tests for the startup reconnect delay schedule."""

from __future__ import annotations

import pytest

from trsync.utils.backoff import ExponentialBackoff

pytestmark = [pytest.mark.unit]


def test_delays_start_immediately_then_grow():
    backoff = ExponentialBackoff(base_delay=1.0, jitter=0)
    assert list(backoff.delays(4)) == [0.0, 1.0, 2.0, 4.0]


def test_delays_are_capped():
    backoff = ExponentialBackoff(base_delay=4.0, max_delay=6.0, jitter=0)
    assert list(backoff.delays(3)) == [0.0, 4.0, 6.0]


def test_jitter_stays_within_spread():
    backoff = ExponentialBackoff(base_delay=2.0, jitter=0.25)
    for _ in range(50):
        assert 1.5 <= backoff.next_delay(0) <= 2.5


def test_for_startup_zero_delay_never_waits():
    assert list(ExponentialBackoff.for_startup(0).delays(3)) == [0.0, 0.0, 0.0]


def test_for_startup_keeps_configured_base():
    backoff = ExponentialBackoff.for_startup(15.0)
    assert backoff.base_delay == 15.0
    assert backoff.max_delay == 15.0
