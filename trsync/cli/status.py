"""Rich rendering of the synchronized session state."""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterable

from rich.console import Group
from rich.table import Table
from rich.text import Text

from trsync.models import ConnectionState, JobStatus
from trsync.utils.formatting import format_bytes, format_speed

if TYPE_CHECKING:
    from trsync.engine.context import SyncContext
    from trsync.models import FileEntry, Job, SessionStats

Translate = Callable[..., str]

STATUS_STYLES: dict[JobStatus, str] = {
    JobStatus.DOWNLOADING: "cyan",
    JobStatus.SEEDING: "green",
    JobStatus.STOPPED: "dim",
    JobStatus.CHECKING: "yellow",
    JobStatus.QUEUED: "magenta",
    JobStatus.COMPLETED: "bold green",
}

CONNECTION_STYLES: dict[ConnectionState, str] = {
    ConnectionState.UNINITIALIZED: "dim",
    ConnectionState.INITIALIZING: "yellow",
    ConnectionState.CONNECTED: "green",
    ConnectionState.RECONNECTING: "bold yellow",
    ConnectionState.FAILED: "bold red",
}


def jobs_table(
    jobs: Iterable[Job],
    translate: Translate,
    selected: frozenset[int] = frozenset(),
) -> Table:
    """Build the job list table."""
    table = Table(show_lines=False, expand=True)
    table.add_column("", width=1)
    table.add_column(translate("torrents.id"), justify="right", style="dim")
    table.add_column(translate("torrents.name"), overflow="fold")
    table.add_column(translate("torrents.status"))
    table.add_column(translate("torrents.progress"), justify="right")
    table.add_column(translate("torrents.size"), justify="right")
    table.add_column(translate("torrents.ratio"), justify="right")
    table.add_column(translate("torrents.seeds"), justify="right")
    table.add_column(translate("torrents.peers"), justify="right")
    table.add_column(translate("torrents.download"), justify="right")
    table.add_column(translate("torrents.upload"), justify="right")

    for job in jobs:
        status = Text(
            translate(f"status.{job.status.value}"),
            style=STATUS_STYLES.get(job.status, ""),
        )
        if job.is_slow_mode:
            status.append(f" ({translate('status.slow')})", style="dim")
        table.add_row(
            "*" if job.id in selected else "",
            str(job.id),
            job.name,
            status,
            f"{job.progress:.1f}%",
            job.size_formatted,
            f"{job.upload_ratio:.2f}",
            f"{job.seeds_connected}/{job.seeds_total}",
            f"{job.peers_connected}/{job.peers_total}",
            job.download_speed_formatted,
            job.upload_speed_formatted,
        )
    return table


def stats_line(stats: SessionStats | None, translate: Translate) -> Text:
    """One-line session statistics summary."""
    if stats is None:
        return Text("")
    return Text.assemble(
        (f"{translate('stats.download')}: ", "dim"),
        format_speed(stats.download_rate),
        (f"  {translate('stats.upload')}: ", "dim"),
        format_speed(stats.upload_rate),
        (f"  {translate('stats.freeSpace')}: ", "dim"),
        format_bytes(stats.free_space),
        (f"  {translate('stats.version')}: ", "dim"),
        stats.backend_version,
    )


def files_table(files: Iterable[FileEntry], translate: Translate) -> Table:
    """Build the file list table of one job."""
    table = Table(expand=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column(translate("files.name"), overflow="fold")
    table.add_column(translate("files.size"), justify="right")
    table.add_column(translate("files.progress"), justify="right")
    table.add_column(translate("files.wanted"), justify="center")
    for entry in files:
        table.add_row(
            str(entry.id),
            entry.path,
            format_bytes(entry.size),
            f"{entry.progress:.1f}%",
            "[green]yes[/green]" if entry.wanted else "[dim]no[/dim]",
        )
    return table


def connection_line(ctx: SyncContext, translate: Translate) -> Text:
    """Connection state, busy flags and the current error."""
    state = ctx.connection_state
    line = Text(
        translate(f"connection.{state.value}"),
        style=CONNECTION_STYLES.get(state, ""),
    )
    busy = sorted(action.value for action in ctx.bulk.in_progress)
    if busy:
        line.append(f"  [{', '.join(busy)}...]", style="yellow")
    if ctx.selection:
        line.append("  " + translate("torrents.selected", len(ctx.selection)), style="dim")
    if ctx.error:
        line.append(f"  {ctx.error}", style="red")
    return line


def render_session(
    ctx: SyncContext,
    translate: Translate,
    jobs: Iterable[Job] | None = None,
) -> Group:
    """Full view used by ``watch``; ``jobs`` defaults to the whole snapshot."""
    visible = list(ctx.jobs if jobs is None else jobs)
    if ctx.is_loading:
        body: Table | Text = Text(translate("torrents.loading"), style="dim")
    elif not visible:
        body = Text(translate("torrents.empty"), style="dim")
    else:
        body = jobs_table(visible, translate, ctx.selection.ids)
    return Group(connection_line(ctx, translate), body, stats_line(ctx.stats, translate))
