"""Convert raw task fields into a Reclaim API payload.

Minute durations become 15-minute chunk counts, account defaults fill gaps on
creation, chunk bounds are clamped and repaired, date fields are resolved to
UTC instants, and enumerated fields are canonicalized.
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from reclaim_mcp.errors import ChunkSizeConflictError, InvalidInputError
from reclaim_mcp.models import AccountDefaults, EventCategory, EventColor, Priority, TaskInput, TaskStatus
from reclaim_mcp.timeparse import ResolutionContext, format_instant, resolve

logger = logging.getLogger(__name__)

CHUNK_MINUTES = 15
CHUNK = timedelta(minutes=CHUNK_MINUTES)
DEFAULT_DUE_DAYS = 1


class TaskFlow(enum.StrEnum):
    CREATE = "create"
    CREATE_AT_TIME = "create_at_time"
    UPDATE = "update"


@dataclass
class NormalizedTask:
    """Wire payload plus the resolved placement time for create-at-time."""

    payload: dict[str, Any]
    start_time: str | None = None


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

CATEGORY_TAGS = frozenset(c.value for c in EventCategory)
CATEGORY_ALIASES = {
    "JOB": "WORK",
    "BUSINESS": "WORK",
    "OFFICE": "WORK",
    "PROFESSIONAL": "WORK",
    "HOME": "PERSONAL",
    "LIFE": "PERSONAL",
    "PRIVATE": "PERSONAL",
    "FAMILY": "PERSONAL",
}
DEFAULT_CATEGORY = EventCategory.WORK.value

PRIORITY_TAGS = frozenset(p.value for p in Priority)
PRIORITY_ALIASES = {
    "1": "P1",
    "2": "P2",
    "3": "P3",
    "4": "P4",
    "CRITICAL": "P1",
    "URGENT": "P1",
    "HIGHEST": "P1",
    "ASAP": "P1",
    "HIGH": "P2",
    "MEDIUM": "P3",
    "NORMAL": "P3",
    "DEFAULT": "P3",
    "LOW": "P4",
    "LOWEST": "P4",
    "SOMEDAY": "P4",
}
DEFAULT_PRIORITY = Priority.P3.value

PERSONAL_SUB_TYPES = frozenset({"VACATION", "HEALTH", "ERRAND", "OTHER_PERSONAL"})
SUB_TYPE_TAGS = frozenset(
    {
        "ONE_ON_ONE",
        "STAFF_MEETING",
        "OP_REVIEW",
        "EXTERNAL",
        "IDEATION",
        "FOCUS",
        "PRODUCTIVITY",
        "TRAVEL",
        "FLIGHT",
        "TRAIN",
        "RECLAIM",
        "UNKNOWN",
    }
) | PERSONAL_SUB_TYPES
SUB_TYPE_ALIASES = {
    "MEETING": "STAFF_MEETING",
    "TEAM_MEETING": "STAFF_MEETING",
    "STANDUP": "STAFF_MEETING",
    "STAND_UP": "STAFF_MEETING",
    "1:1": "ONE_ON_ONE",
    "1_ON_1": "ONE_ON_ONE",
    "1ON1": "ONE_ON_ONE",
    "ONE_ON_1": "ONE_ON_ONE",
    "REVIEW": "OP_REVIEW",
    "CLIENT": "EXTERNAL",
    "CUSTOMER": "EXTERNAL",
    "BRAINSTORM": "IDEATION",
    "DEEP_WORK": "FOCUS",
    "FOCUS_TIME": "FOCUS",
    "ADMIN": "PRODUCTIVITY",
    "TRIP": "TRAVEL",
    "PTO": "VACATION",
    "HOLIDAY": "VACATION",
    "TIME_OFF": "VACATION",
    "DOCTOR": "HEALTH",
    "EXERCISE": "HEALTH",
    "WORKOUT": "HEALTH",
    "FITNESS": "HEALTH",
    "ERRANDS": "ERRAND",
    "CHORE": "ERRAND",
    "CHORES": "ERRAND",
    "PERSONAL": "OTHER_PERSONAL",
    "OTHER": "OTHER_PERSONAL",
}
DEFAULT_SUB_TYPES = {"WORK": "FOCUS", "PERSONAL": "OTHER_PERSONAL"}

COLOR_TAGS = frozenset(c.value for c in EventColor)
COLOR_ALIASES = {
    "PURPLE": "GRAPE",
    "VIOLET": "GRAPE",
    "LILAC": "LAVENDER",
    "LIGHT_PURPLE": "LAVENDER",
    "GREEN": "SAGE",
    "LIGHT_GREEN": "SAGE",
    "DARK_GREEN": "BASIL",
    "PINK": "FLAMINGO",
    "YELLOW": "BANANA",
    "ORANGE": "TANGERINE",
    "CYAN": "PEACOCK",
    "TEAL": "PEACOCK",
    "TURQUOISE": "PEACOCK",
    "GRAY": "GRAPHITE",
    "GREY": "GRAPHITE",
    "BLUE": "BLUEBERRY",
    "RED": "TOMATO",
}


def _token(value: str) -> str:
    return re.sub(r"[\s\-]+", "_", str(value).strip().upper())


def canonicalize(value: str, tags: frozenset[str], aliases: dict[str, str], fallback: str | None) -> str | None:
    """Map ``value`` to a canonical tag via ``tags`` then ``aliases``, else ``fallback``."""
    token = _token(value)
    if token in tags:
        return token
    if token in aliases:
        return aliases[token]
    logger.info("Unrecognized value %r; using %r", value, fallback)
    return fallback


def category_for_sub_type(sub_type: str) -> str:
    """Infer WORK vs PERSONAL from a (canonical or alias) sub-category."""
    canonical = canonicalize(sub_type, SUB_TYPE_TAGS, SUB_TYPE_ALIASES, None)
    return "PERSONAL" if canonical in PERSONAL_SUB_TYPES else "WORK"


def _known_sub_type(sub_type: str) -> bool:
    token = _token(sub_type)
    return token in SUB_TYPE_TAGS or token in SUB_TYPE_ALIASES


def _status(value: str) -> str:
    try:
        return TaskStatus(_token(value)).value
    except ValueError:
        valid = ", ".join(s.value for s in TaskStatus)
        raise InvalidInputError(f"Invalid status '{value}'. Valid: {valid}") from None


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


def _positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field} must be a whole number, got {value!r}.")
    if value <= 0:
        raise InvalidInputError(f"{field} must be a positive integer, got {value}.")
    return value


def minutes_to_chunks(value: int, field: str) -> int:
    """Exact minutes -> chunk conversion. Remainders are rejected, never rounded."""
    minutes = _positive_int(value, field)
    if minutes % CHUNK_MINUTES:
        raise InvalidInputError(
            f"{field} must be a multiple of {CHUNK_MINUTES} minutes. Example: 60 minutes = 4 chunks."
        )
    return minutes // CHUNK_MINUTES


def _chunks(chunks: int | None, minutes: int | None, chunk_field: str, minute_field: str) -> int | None:
    if minutes is not None:
        return minutes_to_chunks(minutes, minute_field)
    if chunks is not None:
        return _positive_int(chunks, chunk_field)
    return None


def _check_bounds(fields: TaskInput, min_chunks: int | None, max_chunks: int | None) -> None:
    if min_chunks is None or max_chunks is None or min_chunks <= max_chunks:
        return
    if fields.min_duration_minutes is not None and fields.max_duration_minutes is not None:
        raise ChunkSizeConflictError(
            f"minDurationMinutes ({fields.min_duration_minutes}) cannot be greater than "
            f"maxDurationMinutes ({fields.max_duration_minutes})."
        )
    raise ChunkSizeConflictError(
        f"minChunkSize ({min_chunks}) cannot be greater than maxChunkSize ({max_chunks})."
    )


def _pick(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def normalize(
    fields: TaskInput,
    defaults: AccountDefaults | None = None,
    context: ResolutionContext | None = None,
    flow: TaskFlow = TaskFlow.CREATE,
    now: datetime | None = None,
) -> NormalizedTask:
    """Build the API payload for a create or update call.

    Creation flows fill unset fields from ``defaults``; updates forward only what
    the caller supplied. Nothing is sent anywhere: any error is raised before a
    payload exists.

    Raises:
        InvalidInputError: bad duration, date/time, status or missing title.
        InvalidTimezoneError: unknown zone in ``context``.
        ChunkSizeConflictError: explicit minimum bound above explicit maximum.
    """
    context = context or ResolutionContext()
    now = now or datetime.now(timezone.utc)
    creating = flow is not TaskFlow.UPDATE
    d = (defaults or AccountDefaults()) if creating else AccountDefaults()
    payload: dict[str, Any] = {}

    if fields.title is not None:
        if not fields.title.strip():
            raise InvalidInputError("Title cannot be empty.")
        payload["title"] = fields.title.strip()
    elif creating:
        raise InvalidInputError("title is required to create a task.")
    if fields.notes is not None:
        payload["notes"] = fields.notes

    # Durations
    total = _chunks(fields.time_chunks_required, fields.duration_minutes, "timeChunksRequired", "durationMinutes")
    min_chunks = _chunks(fields.min_chunk_size, fields.min_duration_minutes, "minChunkSize", "minDurationMinutes")
    max_chunks = _chunks(fields.max_chunk_size, fields.max_duration_minutes, "maxChunkSize", "maxDurationMinutes")

    if fields.lock_chunk_size_to_duration:
        if total is None:
            raise InvalidInputError("lockChunkSizeToDuration requires timeChunksRequired or durationMinutes.")
        min_chunks = max_chunks = total
    else:
        _check_bounds(fields, min_chunks, max_chunks)

    # Defaults (creation only; d is empty for updates)
    sub_type_raw = _pick(fields.event_sub_type, d.event_sub_type)
    category_raw = fields.event_category
    if category_raw is None and creating:
        # a sub-type the caller named and we recognise outranks the default category
        if fields.event_sub_type is not None and _known_sub_type(fields.event_sub_type):
            category_raw = category_for_sub_type(fields.event_sub_type)
        elif d.category is not None:
            category_raw = d.category
        elif sub_type_raw is not None:
            category_raw = category_for_sub_type(sub_type_raw)
    priority_raw = _pick(fields.priority, d.priority)
    on_deck = _pick(fields.on_deck, d.on_deck)
    always_private = _pick(fields.always_private, d.always_private)
    time_scheme_id = _pick(fields.time_scheme_id, d.time_scheme_id)

    if creating:
        bounds = [b for b in (min_chunks, max_chunks) if b is not None]
        total = _pick(total, d.time_chunks_required, max(bounds) if bounds else None, 1)
        min_chunks = _pick(min_chunks, d.min_chunk_size, 1)
        max_chunks = _pick(max_chunks, d.max_chunk_size, total)

    # Clamp to the total, then widen max rather than fail
    if total is not None:
        if min_chunks is not None:
            min_chunks = min(min_chunks, total)
        if max_chunks is not None:
            max_chunks = min(max_chunks, total)
    if min_chunks is not None and max_chunks is not None and min_chunks > max_chunks:
        logger.debug("Raising maxChunkSize %s to minChunkSize %s", max_chunks, min_chunks)
        max_chunks = min_chunks

    for key, value in (
        ("timeChunksRequired", total),
        ("minChunkSize", min_chunks),
        ("maxChunkSize", max_chunks),
    ):
        if value is not None:
            payload[key] = value

    # Dates
    start_time = None
    if flow is TaskFlow.CREATE_AT_TIME:
        if not fields.start_time:
            raise InvalidInputError("start_time is required to create a task at an explicit time.")
        start_time = resolve(fields.start_time, context, now)
    elif fields.start_time:
        logger.warning("Ignoring start_time %r outside create-at-time", fields.start_time)

    due = None
    if fields.deadline is not None:
        due = resolve(fields.deadline, context, now)
    elif fields.due is not None:
        due = resolve(fields.due, context, now)
    elif start_time is not None:
        # creation always has a positive total by now
        due = format_instant(datetime.fromisoformat(start_time) + CHUNK * total)
    elif creating:
        due = resolve(_pick(d.due_in_days, DEFAULT_DUE_DAYS), context, now)
    if due is not None:
        payload["due"] = due

    if fields.snooze_until is not None:
        payload["snoozeUntil"] = resolve(fields.snooze_until, context, now)

    # Enumerations
    category = None
    if category_raw is not None:
        category = canonicalize(category_raw, CATEGORY_TAGS, CATEGORY_ALIASES, DEFAULT_CATEGORY)
        payload["eventCategory"] = category
    if sub_type_raw is not None:
        fallback = DEFAULT_SUB_TYPES[category or category_for_sub_type(sub_type_raw)]
        payload["eventSubType"] = canonicalize(sub_type_raw, SUB_TYPE_TAGS, SUB_TYPE_ALIASES, fallback)
    if priority_raw is not None:
        payload["priority"] = canonicalize(priority_raw, PRIORITY_TAGS, PRIORITY_ALIASES, DEFAULT_PRIORITY)
    if fields.event_color is not None:
        color = canonicalize(fields.event_color, COLOR_TAGS, COLOR_ALIASES, None)
        if color is not None:
            payload["eventColor"] = color
    if fields.status is not None:
        payload["status"] = _status(fields.status)

    for key, value in (
        ("onDeck", on_deck),
        ("alwaysPrivate", always_private),
        ("timeSchemeId", time_scheme_id),
    ):
        if value is not None:
            payload[key] = value

    if not creating and not payload:
        raise InvalidInputError("Update requires at least one field to change besides taskId.")

    logger.debug("Normalized %s payload: %s", flow.value, payload)
    return NormalizedTask(payload=payload, start_time=start_time)
