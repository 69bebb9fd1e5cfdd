"""Command line interface for trsync.

Provides commands to configure the daemon connection, list and watch jobs
and issue start, stop, remove and other job commands.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, NoReturn, TypeVar

import click
from rich.console import Console
from rich.live import Live

from trsync.bridge.transmission import TransmissionBridge
from trsync.cli.status import files_table, jobs_table, render_session, stats_line
from trsync.config.config import ConfigManager
from trsync.engine.filters import STATUS_FILTERS, filter_jobs
from trsync.engine.session import SyncSession
from trsync.i18n.manager import TranslationManager
from trsync.models import BulkAction, Config, ConnectionState, LogLevel, SpeedUnit
from trsync.utils.exceptions import (
    BackendConnectionError,
    CommandError,
    ConfigurationError,
)
from trsync.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

console = Console()

T = TypeVar("T")


def _raise_cli_error(message: str) -> NoReturn:
    """Raise a ClickException with the given message."""
    raise click.ClickException(message) from None


def _get_config_manager(ctx: click.Context) -> ConfigManager:
    return ctx.obj["config_manager"]


def _create_session(config_manager: ConfigManager) -> SyncSession:
    """Build a session talking to the daemon described by the persisted config."""
    return SyncSession(TransmissionBridge(config_manager))


def _run(
    ctx: click.Context,
    action: Callable[[SyncSession], Awaitable[T]],
    connect: bool = True,
) -> T:
    """Run ``action`` against a connected session and translate failures."""

    async def _main() -> T:
        session = _create_session(_get_config_manager(ctx))
        async with session:
            if connect:
                state = await session.start()
                if state != ConnectionState.CONNECTED:
                    _raise_cli_error(
                        session.ctx.error or session.translate("errors.notConfigured")
                    )
            try:
                return await action(session)
            except (CommandError, BackendConnectionError) as e:
                _raise_cli_error(e.message)

    return asyncio.run(_main())


def _select(session: SyncSession, ids: tuple[int, ...], status: str | None, search: str) -> None:
    if ids:
        for job_id in ids:
            if job_id not in session.ctx.selection:
                session.ctx.selection.toggle(job_id)
    else:
        session.ctx.selection.select_all(filter_jobs(session.ctx.jobs, status, search))


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(dir_okay=False),
    help="Configuration file path",
)
@click.option(
    "--verbose",
    "-v",
    count=True,
    help="Increase verbosity (-v: info, -vv: debug)",
)
@click.pass_context
def cli(ctx, config, verbose):
    """trsync - Transmission remote client."""
    ctx.ensure_object(dict)
    config_manager = ConfigManager(config)
    ctx.obj["config_manager"] = config_manager

    try:
        cfg = config_manager.load() or Config()
    except ConfigurationError as e:
        logger.warning("Ignoring unreadable configuration: %s", e)
        cfg = Config()
    ctx.obj["translations"] = TranslationManager(cfg)

    observability = cfg.observability
    if verbose >= 2:
        observability = observability.model_copy(update={"log_level": LogLevel.DEBUG})
    elif verbose == 1:
        observability = observability.model_copy(update={"log_level": LogLevel.INFO})
    elif observability.log_level == LogLevel.INFO:
        # Keep the console quiet unless asked
        observability = observability.model_copy(update={"log_level": LogLevel.WARNING})
    setup_logging(observability)


def _t(ctx: click.Context, key: str, *args: Any) -> str:
    return ctx.obj["translations"].translator.translate(key, *args)


@cli.command()
@click.option("--host", help="Daemon host")
@click.option("--port", type=int, help="RPC port")
@click.option("--username", help="RPC username")
@click.option("--password", help="RPC password")
@click.option("--https/--no-https", default=None, help="Connect over HTTPS")
@click.option("--language", help="Interface language (en, ru)")
@click.option("--slow-limit", type=int, help="Slow mode speed limit")
@click.option("--slow-unit", type=click.Choice([u.value for u in SpeedUnit]), help="Slow mode unit")
@click.option("--max-ratio", type=float, help="Stop seeding at this ratio (0 disables)")
@click.option("--download-dir", help="Preferred download directory")
@click.option("--no-verify", is_flag=True, help="Save without connecting")
@click.pass_context
def configure(ctx, no_verify, **options):
    """Save connection settings and connect with them."""
    config_manager = _get_config_manager(ctx)
    try:
        config = config_manager.load() or Config()
    except ConfigurationError:
        config = Config()

    data = config.model_dump()
    updates = {
        ("connection", "host"): options["host"],
        ("connection", "port"): options["port"],
        ("connection", "username"): options["username"],
        ("connection", "password"): options["password"],
        ("connection", "use_https"): options["https"],
        ("ui", "language"): options["language"],
        ("limits", "slow_speed_limit"): options["slow_limit"],
        ("limits", "slow_speed_unit"): options["slow_unit"],
        ("limits", "max_upload_ratio"): options["max_ratio"],
        ("downloads", "default_download_path"): options["download_dir"],
    }
    for (section, key), value in updates.items():
        if value is not None:
            data[section][key] = value
    try:
        config = Config(**data)
    except ValueError as e:
        _raise_cli_error(str(e))

    if no_verify:
        try:
            config_manager.save(config)
        except ConfigurationError as e:
            _raise_cli_error(e.message)
    else:
        _run(ctx, lambda session: session.apply_settings(config), connect=False)
    console.print(_t(ctx, "messages.configSaved", config_manager.config_file))


@cli.command()
@click.pass_context
def test(ctx):
    """Check the saved connection settings."""
    config_manager = _get_config_manager(ctx)
    config = config_manager.load()
    if config is None:
        _raise_cli_error(_t(ctx, "errors.notConfigured"))

    _run(ctx, lambda session: session.test_connection(config), connect=False)
    console.print(f"[green]{_t(ctx, 'messages.connectionOk')}[/green]")


@cli.command(name="list")
@click.option("--status", "-s", type=click.Choice(STATUS_FILTERS), default="all")
@click.option("--search", "-q", default="", help="Filter by name")
@click.pass_context
def list_jobs(ctx, status, search):
    """List jobs."""

    async def _list(session: SyncSession) -> None:
        jobs = filter_jobs(session.ctx.jobs, status, search)
        if jobs:
            console.print(jobs_table(jobs, session.translate))
        else:
            console.print(session.translate("torrents.empty"))
        console.print(stats_line(session.ctx.stats, session.translate))

    _run(ctx, _list)


@cli.command()
@click.option("--status", "-s", type=click.Choice(STATUS_FILTERS), default="all")
@click.option("--search", "-q", default="", help="Filter by name")
@click.option("--duration", type=float, default=None, help="Stop after this many seconds")
@click.pass_context
def watch(ctx, status, search, duration):
    """Show a live view refreshed by the poll loop."""

    async def _watch(session: SyncSession) -> None:
        def _render() -> Any:
            visible = filter_jobs(session.ctx.jobs, status, search)
            return render_session(session.ctx, session.translate, visible)

        with Live(_render(), console=console, auto_refresh=False) as live:
            unsubscribers = [
                session.ctx.subscribe(event, lambda *_: live.update(_render(), refresh=True))
                for event in ("jobs_updated", "stats_updated", "connection_state_changed", "error_changed")
            ]
            try:
                if duration is None:
                    await asyncio.Event().wait()
                else:
                    await asyncio.sleep(duration)
            finally:
                for unsubscribe in unsubscribers:
                    unsubscribe()

    try:
        _run(ctx, _watch)
    except KeyboardInterrupt:
        pass


def _bulk_command(action: BulkAction) -> Callable[..., None]:
    @click.argument("ids", nargs=-1, type=int)
    @click.option("--status", "-s", type=click.Choice(STATUS_FILTERS), default="all",
                  help="Without IDS, act on all jobs matching this filter")
    @click.option("--search", "-q", default="", help="Without IDS, act on matching names")
    @click.option("--wait", is_flag=True, help="Wait until the jobs reach the target state")
    @click.option("--timeout", type=float, default=60.0, help="Seconds to wait with --wait")
    @click.pass_context
    def command(ctx, ids, status, search, wait, timeout):
        async def _issue(session: SyncSession) -> None:
            _select(session, ids, status, search)
            if action == BulkAction.START:
                record = await session.start_selected()
            else:
                record = await session.stop_selected()
            if record is None:
                console.print(session.translate("messages.nothingToDo", action.value))
                return
            console.print(
                session.translate("messages.commandIssued", action.value, len(record.affected))
            )
            if wait:
                console.print(session.translate("messages.waiting"))
                if not await session.wait_for_bulk(action, timeout):
                    _raise_cli_error(f"Timed out after {timeout:g}s")
                console.print(session.translate("messages.converged"))

        _run(ctx, _issue)

    command.__doc__ = f"{action.value.capitalize()} selected jobs (all matching jobs without IDS)."
    return command


cli.command(name="start")(_bulk_command(BulkAction.START))
cli.command(name="stop")(_bulk_command(BulkAction.STOP))


@cli.command()
@click.argument("ids", nargs=-1, type=int, required=True)
@click.option("--delete-data", is_flag=True, help="Also delete downloaded data")
@click.pass_context
def remove(ctx, ids, delete_data):
    """Remove jobs."""

    async def _remove(session: SyncSession) -> int:
        _select(session, ids, None, "")
        return await session.remove_selected(delete_data=delete_data)

    removed = _run(ctx, _remove)
    console.print(_t(ctx, "messages.removed", removed))


@cli.command()
@click.argument("job_id", type=int)
@click.pass_context
def verify(ctx, job_id):
    """Verify a job's local data."""
    _run(ctx, lambda session: session.verify_job(job_id))
    console.print(_t(ctx, "messages.verifying"))


@cli.command()
@click.argument("source")
@click.option("--dir", "-d", "download_dir", default="", help="Download directory")
@click.pass_context
def add(ctx, source, download_dir):
    """Add a job from a .torrent file, URL or magnet link."""

    async def _add(session: SyncSession) -> None:
        if Path(source).expanduser().is_file():
            await session.add_job_from_file(source, download_dir)
        else:
            await session.add_job(source, download_dir)

    _run(ctx, _add)
    console.print(_t(ctx, "messages.added"))


@cli.command()
@click.argument("job_id", type=int)
@click.option("--want", multiple=True, type=int, help="File index to download")
@click.option("--skip", multiple=True, type=int, help="File index to skip")
@click.pass_context
def files(ctx, job_id, want, skip):
    """Show a job's files, optionally changing which are wanted."""

    async def _files(session: SyncSession) -> None:
        if want:
            await session.set_files_wanted(job_id, want, True)
        if skip:
            await session.set_files_wanted(job_id, skip, False)
        entries = await session.list_job_files(job_id)
        console.print(files_table(entries, session.translate))

    _run(ctx, _files)


@cli.command()
@click.argument("ids", nargs=-1, type=int, required=True)
@click.option("--off", is_flag=True, help="Lift the speed limit")
@click.pass_context
def slow(ctx, ids, off):
    """Toggle slow mode for jobs."""
    _run(ctx, lambda session: session.set_speed_limit(ids, not off))
    console.print(_t(ctx, "messages.slowOff" if off else "messages.slowOn"))


@cli.command()
@click.option("--remove", "remove_path", help="Forget a download directory")
@click.pass_context
def paths(ctx, remove_path):
    """List known download directories."""

    async def _paths(session: SyncSession) -> list[str]:
        if remove_path:
            await session.remove_download_path(remove_path)
        return await session.get_download_paths()

    for path in _run(ctx, _paths):
        console.print(path)


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
