"""Tests for the sync context."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from trsync.engine.context import EVENTS, SyncContext
from trsync.models import BulkAction, ConnectionState, JobStatus

pytestmark = [pytest.mark.unit, pytest.mark.engine]


def test_initial_state(ctx):
    assert ctx.jobs == ()
    assert ctx.stats is None
    assert ctx.error is None
    assert ctx.connection_state == ConnectionState.UNINITIALIZED
    assert ctx.is_first_load
    assert not ctx.is_loading


def test_contexts_do_not_share_state(make_job):
    first, second = SyncContext(), SyncContext()
    first.replace_jobs([make_job(1)])
    first.selection.toggle(1)

    assert second.jobs == ()
    assert not second.selection


def test_replace_jobs_builds_index(ctx, make_job):
    ctx.replace_jobs([make_job(1), make_job(2, JobStatus.SEEDING)])

    assert ctx.get_job(2).status == JobStatus.SEEDING
    assert ctx.get_job(3) is None
    assert set(ctx.jobs_by_id) == {1, 2}
    with pytest.raises(TypeError):
        ctx.jobs_by_id[3] = make_job(3)  # type: ignore[index]


def test_replace_jobs_is_a_full_replacement(ctx, make_job):
    ctx.replace_jobs([make_job(1), make_job(2)])
    ctx.replace_jobs([make_job(2)])
    assert [job.id for job in ctx.jobs] == [2]


def test_subscribe_and_unsubscribe(ctx, make_job):
    callback = MagicMock()
    unsubscribe = ctx.subscribe("jobs_updated", callback)

    ctx.replace_jobs([make_job(1)])
    unsubscribe()
    ctx.replace_jobs([])

    callback.assert_called_once()
    assert callback.call_args.args[0][0].id == 1


def test_unknown_event_rejected(ctx):
    with pytest.raises(ValueError, match="Unknown event"):
        ctx.subscribe("nope", MagicMock())


def test_component_events_are_forwarded(ctx, make_job):
    seen = {event: MagicMock() for event in EVENTS}
    for event, callback in seen.items():
        ctx.subscribe(event, callback)

    ctx.connection.begin_initialize()
    ctx.selection.toggle(1)
    ctx.bulk.begin(BulkAction.START, {1}, [make_job(1)])

    seen["connection_state_changed"].assert_called_once_with(
        ConnectionState.UNINITIALIZED, ConnectionState.INITIALIZING
    )
    seen["selection_changed"].assert_called_once_with(frozenset({1}))
    seen["bulk_operation_changed"].assert_called_once_with(BulkAction.START, True)
    assert ctx.is_bulk_in_progress(BulkAction.START)


def test_set_error_emits_only_on_change(ctx):
    callback = MagicMock()
    ctx.subscribe("error_changed", callback)

    ctx.set_error("boom")
    ctx.set_error("boom")
    ctx.set_error(None)

    assert [c.args[0] for c in callback.call_args_list] == ["boom", None]


def test_loading_only_during_first_fetch(ctx):
    callback = MagicMock()
    ctx.subscribe("loading_changed", callback)

    ctx.begin_first_load()
    assert ctx.is_loading
    ctx.end_first_load(succeeded=False)
    assert not ctx.is_loading
    assert ctx.is_first_load

    ctx.begin_first_load()
    ctx.end_first_load(succeeded=True)
    assert not ctx.is_first_load

    ctx.begin_first_load()
    assert not ctx.is_loading
    assert [c.args[0] for c in callback.call_args_list] == [True, False, True, False]
