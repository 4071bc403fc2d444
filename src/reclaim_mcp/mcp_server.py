"""MCP server for Reclaim.ai: exposes task management tools to AI assistants."""

from __future__ import annotations

import functools
import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ResourceError, ToolError

from reclaim_mcp import config
from reclaim_mcp.account import AccountInfoCache
from reclaim_mcp.client import ReclaimClient
from reclaim_mcp.errors import InvalidInputError, ReclaimError
from reclaim_mcp.log import configure_logging
from reclaim_mcp.models import AccountInfo, TaskInput, filter_active_tasks
from reclaim_mcp.normalize import TaskFlow, normalize
from reclaim_mcp.timeparse import ResolutionContext, resolve

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "reclaim",
    instructions="""\
Tools for managing tasks in Reclaim.ai, which schedules tasks onto the user's \
calendar in 15-minute chunks.

Key concepts:
- **Chunks**: Durations are stored as 15-minute chunks. Pass duration_minutes (a \
multiple of 15) or time_chunks_required. min/max chunk sizes bound how a task may \
be split; set lock_chunk_size_to_duration to keep it in one block.
- **Dates**: deadline and snooze_until take a number of days from now, a date \
(YYYY-MM-DD) or a date-time. Date-times without an offset are read in time_zone, \
else the server default, else the account's time zone.
- **Status COMPLETE**: the scheduled time ran out, NOT that the user finished. \
Finished tasks are ARCHIVED. COMPLETE tasks are still active.

Typical workflow:
1. Use reclaim_list_tasks to see active tasks
2. Use reclaim_create_task (with start_time to pin it) to add work
3. Use reclaim_update_task when estimates or deadlines change
4. Use reclaim_log_work / reclaim_mark_complete to track progress
""",
)

STATUS_NOTE = (
    "IMPORTANT NOTE: Tasks with 'status: COMPLETE' were NOT marked complete by the user. "
    "This means the user finished the initial block of time allocated to the task but did NOT "
    "finish the task. If asked to list all tasks or all active tasks, include each 'COMPLETE' "
    "task unless the user requests otherwise. Do NOT skip 'COMPLETE' tasks."
)
GET_TASK_NOTE = (
    "Note: If 'status' is 'COMPLETE', this means the task is NOT marked completed by the user. "
    "ARCHIVED or CANCELLED is used for completed tasks. A 'COMPLETE' task is still 'active'."
)

_client: ReclaimClient | None = None
_account: AccountInfoCache | None = None


def _get_client() -> ReclaimClient:
    global _client
    if _client is None:
        _client = ReclaimClient()
    return _client


def _get_account() -> AccountInfoCache:
    global _account
    if _account is None:
        _account = AccountInfoCache(lambda: _get_client().fetch_account_info())
    return _account


async def _resolution_context(time_zone: str | None, timezone: str | None) -> ResolutionContext:
    explicit = time_zone or timezone
    default = config.default_time_zone()
    account_tz = None
    if not (explicit and explicit.strip()) and not default:
        info = await _get_account().get()
        account_tz = info.time_zone if info else None
    return ResolutionContext(time_zone=explicit, default_time_zone=default, account_time_zone=account_tz)


def _dump(result: Any) -> str:
    if result is None:
        result = {"success": True}
    return json.dumps(result, indent=2) if isinstance(result, (dict, list)) else str(result)


def _relay_errors(fn):
    """Log tool failures and hand them to the client as MCP tool errors."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        try:
            return await fn(*args, **kwargs)
        except ReclaimError as exc:
            logger.error("MCP tool %s failed: %s", fn.__name__, exc.user_message())
            raise ToolError(exc.user_message()) from exc
        except Exception:
            logger.exception("MCP tool %s raised unexpectedly", fn.__name__)
            raise

    return wrapper


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
@_relay_errors
async def reclaim_create_task(
    title: str,
    notes: str | None = None,
    event_category: str | None = None,
    event_sub_type: str | None = None,
    priority: str | None = None,
    time_chunks_required: int | None = None,
    duration_minutes: int | None = None,
    min_chunk_size: int | None = None,
    min_duration_minutes: int | None = None,
    max_chunk_size: int | None = None,
    max_duration_minutes: int | None = None,
    lock_chunk_size_to_duration: bool = False,
    on_deck: bool | None = None,
    always_private: bool | None = None,
    time_scheme_id: str | None = None,
    status: str | None = None,
    deadline: int | str | None = None,
    due: str | None = None,
    snooze_until: int | str | None = None,
    start_time: str | None = None,
    event_color: str | None = None,
    time_zone: str | None = None,
    timezone: str | None = None,
) -> str:
    """Create a new task in Reclaim.ai. Unset fields take the account's task defaults.

    Args:
        title: Task title
        notes: Task notes
        event_category: WORK or PERSONAL
        event_sub_type: Sub-category, e.g. FOCUS, STAFF_MEETING, ERRAND ("meeting" is accepted)
        priority: P1 (highest) to P4
        time_chunks_required: Total duration in 15-minute chunks (60 minutes = 4 chunks)
        duration_minutes: Total duration in minutes; must be a multiple of 15
        min_chunk_size: Minimum scheduled block in 15-minute chunks
        min_duration_minutes: Minimum scheduled block in minutes (multiple of 15)
        max_chunk_size: Maximum scheduled block in 15-minute chunks
        max_duration_minutes: Maximum scheduled block in minutes (multiple of 15)
        lock_chunk_size_to_duration: Schedule the whole duration as one block (no splitting)
        on_deck: Prioritize this task next
        always_private: Keep calendar events private
        time_scheme_id: Scheduling hours (time scheme) id
        status: NEW, SCHEDULED, IN_PROGRESS, COMPLETE, CANCELLED or ARCHIVED
        deadline: Days from now, YYYY-MM-DD, or ISO 8601 date-time
        due: Due date as YYYY-MM-DD or ISO 8601; used when deadline is not given
        snooze_until: Don't schedule before this; days from now, YYYY-MM-DD, or ISO 8601
        start_time: Place the task at this ISO 8601 date-time instead of auto-scheduling
        event_color: Calendar color, e.g. LAVENDER, SAGE, GRAPE, TOMATO
        time_zone: IANA zone for date-times without an offset (e.g. America/Los_Angeles)
        timezone: Alias for time_zone
    """
    fields = TaskInput(
        title=title,
        notes=notes,
        event_category=event_category,
        event_sub_type=event_sub_type,
        priority=priority,
        time_chunks_required=time_chunks_required,
        duration_minutes=duration_minutes,
        min_chunk_size=min_chunk_size,
        min_duration_minutes=min_duration_minutes,
        max_chunk_size=max_chunk_size,
        max_duration_minutes=max_duration_minutes,
        lock_chunk_size_to_duration=bool(lock_chunk_size_to_duration),
        on_deck=on_deck,
        always_private=always_private,
        time_scheme_id=time_scheme_id,
        status=status,
        deadline=deadline,
        due=due,
        snooze_until=snooze_until,
        start_time=start_time,
        event_color=event_color,
    )
    context = await _resolution_context(time_zone, timezone)
    info = await _get_account().get()
    flow = TaskFlow.CREATE_AT_TIME if start_time else TaskFlow.CREATE
    normalized = normalize(fields, info.defaults if info else None, context, flow)

    client = _get_client()
    if flow is TaskFlow.CREATE_AT_TIME:
        return _dump(await client.create_task_at_time(normalized.start_time, normalized.payload))
    task = await client.create_task(normalized.payload)
    return _dump(task.to_dict())


@mcp.tool()
@_relay_errors
async def reclaim_update_task(
    task_id: int,
    title: str | None = None,
    notes: str | None = None,
    event_category: str | None = None,
    event_sub_type: str | None = None,
    priority: str | None = None,
    time_chunks_required: int | None = None,
    duration_minutes: int | None = None,
    min_chunk_size: int | None = None,
    min_duration_minutes: int | None = None,
    max_chunk_size: int | None = None,
    max_duration_minutes: int | None = None,
    lock_chunk_size_to_duration: bool | None = None,
    on_deck: bool | None = None,
    always_private: bool | None = None,
    time_scheme_id: str | None = None,
    status: str | None = None,
    deadline: int | str | None = None,
    due: str | None = None,
    snooze_until: int | str | None = None,
    event_color: str | None = None,
    time_zone: str | None = None,
    timezone: str | None = None,
) -> str:
    """Update fields of an existing task. Only provided fields are changed.

    Args:
        task_id: Reclaim task ID
        title: New title
        notes: New notes
        event_category: WORK or PERSONAL
        event_sub_type: Sub-category, e.g. FOCUS, STAFF_MEETING
        priority: P1 (highest) to P4
        time_chunks_required: Total duration in 15-minute chunks
        duration_minutes: Total duration in minutes (multiple of 15)
        min_chunk_size: Minimum block in chunks
        min_duration_minutes: Minimum block in minutes (multiple of 15)
        max_chunk_size: Maximum block in chunks
        max_duration_minutes: Maximum block in minutes (multiple of 15)
        lock_chunk_size_to_duration: Set min and max block to the total duration
        on_deck: Prioritize this task next
        always_private: Keep calendar events private
        time_scheme_id: Scheduling hours (time scheme) id
        status: New status
        deadline: Days from now, YYYY-MM-DD, or ISO 8601 date-time
        due: Due date as YYYY-MM-DD or ISO 8601; used when deadline is not given
        snooze_until: Days from now, YYYY-MM-DD, or ISO 8601 date-time
        event_color: Calendar color
        time_zone: IANA zone for date-times without an offset
        timezone: Alias for time_zone
    """
    fields = TaskInput(
        title=title,
        notes=notes,
        event_category=event_category,
        event_sub_type=event_sub_type,
        priority=priority,
        time_chunks_required=time_chunks_required,
        duration_minutes=duration_minutes,
        min_chunk_size=min_chunk_size,
        min_duration_minutes=min_duration_minutes,
        max_chunk_size=max_chunk_size,
        max_duration_minutes=max_duration_minutes,
        lock_chunk_size_to_duration=bool(lock_chunk_size_to_duration),
        on_deck=on_deck,
        always_private=always_private,
        time_scheme_id=time_scheme_id,
        status=status,
        deadline=deadline,
        due=due,
        snooze_until=snooze_until,
        event_color=event_color,
    )
    needs_zone = isinstance(deadline, str) or isinstance(snooze_until, str) or due is not None
    context = await _resolution_context(time_zone, timezone) if needs_zone else ResolutionContext()
    normalized = normalize(fields, None, context, TaskFlow.UPDATE)
    task = await _get_client().update_task(task_id, normalized.payload)
    return _dump(task.to_dict())


@mcp.tool()
@_relay_errors
async def reclaim_delete_task(task_id: int) -> str:
    """Delete a task.

    Args:
        task_id: Reclaim task ID
    """
    await _get_client().delete_task(task_id)
    return _dump({"success": True})


@mcp.tool()
@_relay_errors
async def reclaim_mark_complete(task_id: int) -> str:
    """Mark a task as done by the user (archives it).

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().mark_complete(task_id))


@mcp.tool()
@_relay_errors
async def reclaim_mark_incomplete(task_id: int) -> str:
    """Mark a task as not done (unarchive it).

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().mark_incomplete(task_id))


@mcp.tool()
@_relay_errors
async def reclaim_add_time(task_id: int, minutes: int) -> str:
    """Add scheduled time to a task.

    Args:
        task_id: Reclaim task ID
        minutes: Minutes to add (positive)
    """
    return _dump(await _get_client().add_time(task_id, minutes))


@mcp.tool()
@_relay_errors
async def reclaim_start_timer(task_id: int) -> str:
    """Start the live timer for a task.

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().start_timer(task_id))


@mcp.tool()
@_relay_errors
async def reclaim_stop_timer(task_id: int) -> str:
    """Stop the live timer for a task.

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().stop_timer(task_id))


@mcp.tool()
@_relay_errors
async def reclaim_log_work(
    task_id: int,
    minutes: int,
    end: str | None = None,
    time_zone: str | None = None,
    timezone: str | None = None,
) -> str:
    """Log completed work time against a task.

    Args:
        task_id: Reclaim task ID
        minutes: Minutes worked (positive)
        end: When the work ended; YYYY-MM-DD or ISO 8601. Defaults to now.
        time_zone: IANA zone for an end time without an offset
        timezone: Alias for time_zone
    """
    end_iso = None
    if end:
        end_iso = resolve(end, await _resolution_context(time_zone, timezone))
    return _dump(await _get_client().log_work(task_id, minutes, end_iso))


@mcp.tool()
@_relay_errors
async def reclaim_clear_exceptions(task_id: int) -> str:
    """Clear scheduling exceptions for a task.

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().clear_exceptions(task_id))


@mcp.tool()
@_relay_errors
async def reclaim_prioritize(task_id: int) -> str:
    """Mark a task for prioritization in the planner.

    Args:
        task_id: Reclaim task ID
    """
    return _dump(await _get_client().prioritize(task_id))


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
@_relay_errors
async def reclaim_list_tasks(filter: str = "active") -> str:
    """List tasks.

    Args:
        filter: "active" (default) skips deleted, ARCHIVED and CANCELLED tasks; "all" returns everything
    """
    if filter not in ("active", "all"):
        raise InvalidInputError(f"Invalid filter '{filter}'. Use: active, all")
    tasks = await _get_client().list_tasks()
    if filter == "active":
        tasks = filter_active_tasks(tasks)
    return _dump([t.to_dict() for t in tasks]) + "\n\n" + STATUS_NOTE


@mcp.tool()
@_relay_errors
async def reclaim_get_task(task_id: int) -> str:
    """Get all details for a single task.

    Args:
        task_id: Reclaim task ID
    """
    task = await _get_client().get_task(task_id)
    return _dump(task.to_dict()) + "\n\n" + GET_TASK_NOTE


async def _account_info() -> AccountInfo:
    info = await _get_account().get()
    if info is None:
        # cache swallowed the failure; fetch directly so the caller sees it
        info = await _get_client().fetch_account_info()
    return info


@mcp.tool()
@_relay_errors
async def reclaim_get_task_defaults() -> str:
    """Get account-level task defaults (chunk sizes, priority, due days) and the account time zone."""
    info = await _account_info()
    return _dump({"timeZone": info.time_zone, "defaults": info.defaults.to_dict()})


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@mcp.resource(
    "tasks://active",
    name="reclaim_active_tasks",
    description="Active Reclaim tasks: not deleted, not ARCHIVED or CANCELLED. COMPLETE tasks are included.",
    mime_type="application/json",
)
async def active_tasks_resource() -> str:
    try:
        tasks = filter_active_tasks(await _get_client().list_tasks())
    except ReclaimError as exc:
        logger.error("MCP resource tasks://active failed: %s", exc.user_message())
        raise ResourceError(f"Failed to fetch resource tasks://active: {exc.message}") from exc
    return _dump([t.to_dict() for t in tasks])


@mcp.resource(
    "tasks://defaults",
    name="reclaim_task_defaults",
    description="Account-level task defaults. Useful for building valid task payloads.",
    mime_type="application/json",
)
async def task_defaults_resource() -> str:
    try:
        info = await _account_info()
    except ReclaimError as exc:
        logger.error("MCP resource tasks://defaults failed: %s", exc.user_message())
        raise ResourceError(f"Failed to fetch resource tasks://defaults: {exc.message}") from exc
    return _dump({"timeZone": info.time_zone, "defaults": info.defaults.to_dict()})


def run_server(transport: str | None = None) -> None:
    """Run over stdio or streamable HTTP, as configured."""
    mode = (transport or config.transport()).lower()
    if mode == "stdio":
        logger.info("reclaim MCP server listening on stdio")
        mcp.run(transport="stdio")
    elif mode == "http":
        mcp.settings.host = config.http_host()
        mcp.settings.port = config.http_port()
        mcp.settings.streamable_http_path = config.http_path()
        mcp.settings.stateless_http = config.http_stateless()
        mcp.settings.json_response = True
        logger.info(
            "reclaim MCP server on http://%s:%s%s (%s)",
            mcp.settings.host,
            mcp.settings.port,
            mcp.settings.streamable_http_path,
            "stateless" if mcp.settings.stateless_http else "session",
        )
        mcp.run(transport="streamable-http")
    else:
        raise ValueError(f'Invalid MCP_TRANSPORT value "{mode}". Use "stdio" or "http".')


def main():
    """Entry point for the MCP server."""
    config.load_env()
    configure_logging(config.log_level())
    if not config.api_key():
        logger.critical("RECLAIM_API_KEY is not set. Add it to the environment or a .env file.")
        raise SystemExit(1)
    try:
        run_server()
    except ValueError as exc:
        logger.critical("%s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
