"""Typer CLI for the Reclaim MCP server."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from reclaim_mcp import config
from reclaim_mcp.client import ReclaimClient
from reclaim_mcp.errors import ReclaimError
from reclaim_mcp.log import configure_logging
from reclaim_mcp.models import AccountInfo, Task, filter_active_tasks
from reclaim_mcp.normalize import CHUNK_MINUTES, minutes_to_chunks
from reclaim_mcp.timeparse import ResolutionContext, resolve

app = typer.Typer(
    name="reclaim",
    help="Reclaim.ai task tools and MCP server.",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def _setup() -> None:
    config.load_env()
    configure_logging(config.log_level())


def _fail(exc: ReclaimError) -> None:
    console.print(f"[red]{exc.user_message()}[/red]")
    raise typer.Exit(1)


async def _with_client(fn):
    client = ReclaimClient()
    try:
        return await fn(client)
    finally:
        await client.aclose()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def serve(
    transport: Annotated[Optional[str], typer.Option(help="stdio or http (default: MCP_TRANSPORT)")] = None,
) -> None:
    """Run the MCP server."""
    from reclaim_mcp.mcp_server import run_server

    if not config.api_key():
        console.print("[red]RECLAIM_API_KEY is not set. Add it to the environment or a .env file.[/red]")
        raise typer.Exit(1)
    try:
        run_server(transport)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)


@app.command("resolve")
def resolve_cmd(
    expression: Annotated[Optional[str], typer.Argument(help="Date or date-time, e.g. 2026-03-08T02:30")] = None,
    days: Annotated[Optional[int], typer.Option("--days", "-d", help="Days from now instead of a date")] = None,
    time_zone: Annotated[Optional[str], typer.Option("--tz", help="IANA zone for input without an offset")] = None,
) -> None:
    """Show the UTC instant a date/time input resolves to."""
    if (expression is None) == (days is None):
        console.print("[red]Give either an EXPRESSION or --days.[/red]")
        raise typer.Exit(1)

    context = ResolutionContext(time_zone=time_zone, default_time_zone=config.default_time_zone())
    try:
        result = resolve(days if days is not None else expression, context)
    except ReclaimError as exc:
        _fail(exc)
    console.print(result)


@app.command()
def chunks(minutes: int) -> None:
    """Convert minutes to 15-minute scheduling chunks."""
    try:
        count = minutes_to_chunks(minutes, "minutes")
    except ReclaimError as exc:
        _fail(exc)
    console.print(f"{minutes} minutes = {count} chunk{'s' if count != 1 else ''} of {CHUNK_MINUTES}m")


def _fmt_chunks(value: int | None) -> str:
    if value is None:
        return "-"
    hours, mins = divmod(value * CHUNK_MINUTES, 60)
    return f"{hours}h{mins:02d}" if hours else f"{mins}m"


@app.command("tasks")
def list_tasks(
    all_tasks: Annotated[bool, typer.Option("--all", "-a", help="Include archived, cancelled and deleted tasks")] = False,
    search: Annotated[Optional[str], typer.Option("--search", "-q", help="Filter by title (case-insensitive substring match)")] = None,
) -> None:
    """List tasks."""
    try:
        tasks: list[Task] = asyncio.run(_with_client(lambda c: c.list_tasks()))
    except ReclaimError as exc:
        _fail(exc)

    total = len(tasks)
    if not all_tasks:
        tasks = filter_active_tasks(tasks)
    if search:
        q = search.lower()
        tasks = [t for t in tasks if q in t.title.lower()]

    if not tasks:
        console.print("No tasks found.")
        return

    table = Table(title="Tasks")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Remaining")
    table.add_column("Chunk (min-max)")
    table.add_column("Due")

    for t in tasks:
        style = None
        if t.status == "COMPLETE":
            style = "yellow"
        elif not t.is_active:
            style = "dim"
        table.add_row(
            str(t.id),
            t.title,
            t.status.value if t.status else "-",
            t.priority or "-",
            _fmt_chunks(t.time_chunks_remaining if t.time_chunks_remaining is not None else t.time_chunks_required),
            f"{_fmt_chunks(t.min_chunk_size)}-{_fmt_chunks(t.max_chunk_size)}",
            t.due or "-",
            style=style,
        )

    console.print(table)
    if len(tasks) != total:
        console.print(f"[dim]Showing {len(tasks)} of {total} tasks[/dim]")


@app.command()
def defaults() -> None:
    """Show the account's time zone and task defaults."""
    try:
        info: AccountInfo = asyncio.run(_with_client(lambda c: c.fetch_account_info()))
    except ReclaimError as exc:
        _fail(exc)

    console.print(f"Time zone: {info.time_zone or '[dim]not set[/dim]'}")
    table = Table(title="Task defaults")
    table.add_column("Field")
    table.add_column("Value")
    for key, value in info.defaults.to_dict().items():
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)
