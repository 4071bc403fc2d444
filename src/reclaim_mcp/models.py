"""Task model, enumerations and account defaults."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any


class TaskStatus(enum.StrEnum):
    NEW = "NEW"
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    # Scheduled time is used up; the user has NOT necessarily finished the task.
    COMPLETE = "COMPLETE"
    CANCELLED = "CANCELLED"
    ARCHIVED = "ARCHIVED"


class EventCategory(enum.StrEnum):
    WORK = "WORK"
    PERSONAL = "PERSONAL"


class Priority(enum.StrEnum):
    P1 = "P1"
    P2 = "P2"
    P3 = "P3"
    P4 = "P4"


class EventColor(enum.StrEnum):
    LAVENDER = "LAVENDER"
    SAGE = "SAGE"
    GRAPE = "GRAPE"
    FLAMINGO = "FLAMINGO"
    BANANA = "BANANA"
    TANGERINE = "TANGERINE"
    PEACOCK = "PEACOCK"
    GRAPHITE = "GRAPHITE"
    BLUEBERRY = "BLUEBERRY"
    BASIL = "BASIL"
    TOMATO = "TOMATO"


_INACTIVE = {TaskStatus.ARCHIVED, TaskStatus.CANCELLED}

# Wire name -> attribute name for the fields Task knows about.
_TASK_FIELDS = {
    "id": "id",
    "title": "title",
    "notes": "notes",
    "eventCategory": "event_category",
    "eventSubType": "event_sub_type",
    "priority": "priority",
    "timeChunksRequired": "time_chunks_required",
    "timeChunksSpent": "time_chunks_spent",
    "timeChunksRemaining": "time_chunks_remaining",
    "minChunkSize": "min_chunk_size",
    "maxChunkSize": "max_chunk_size",
    "due": "due",
    "snoozeUntil": "snooze_until",
    "eventColor": "event_color",
    "deleted": "deleted",
    "onDeck": "on_deck",
    "alwaysPrivate": "always_private",
    "timeSchemeId": "time_scheme_id",
}


@dataclass
class Task:
    """A task as stored by Reclaim."""

    id: int
    title: str
    notes: str | None = None
    event_category: str | None = None
    event_sub_type: str | None = None
    priority: str | None = None
    time_chunks_required: int | None = None
    time_chunks_spent: int | None = None
    time_chunks_remaining: int | None = None
    min_chunk_size: int | None = None
    max_chunk_size: int | None = None
    status: TaskStatus | None = None
    due: str | None = None
    snooze_until: str | None = None
    event_color: str | None = None
    deleted: bool = False
    on_deck: bool = False
    always_private: bool | None = None
    time_scheme_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)  # fields we don't model

    @property
    def is_active(self) -> bool:
        return not self.deleted and self.status not in _INACTIVE

    def to_dict(self) -> dict:
        d = dict(self.extra)
        for wire, attr in _TASK_FIELDS.items():
            value = getattr(self, attr)
            if value is not None:
                d[wire] = value
        if self.status is not None:
            d["status"] = self.status.value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Task:
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in d.items():
            if key in _TASK_FIELDS:
                kwargs[_TASK_FIELDS[key]] = value
            elif key != "status":
                extra[key] = value

        raw_status = d.get("status")
        try:
            kwargs["status"] = TaskStatus(raw_status) if raw_status else None
        except ValueError:
            kwargs["status"] = None
            extra["status"] = raw_status

        kwargs.setdefault("id", 0)
        kwargs["title"] = kwargs.get("title") or ""
        kwargs["deleted"] = bool(kwargs.get("deleted") or False)
        kwargs["on_deck"] = bool(kwargs.get("on_deck") or False)
        return cls(extra=extra, **kwargs)


def filter_active_tasks(tasks: list[Task]) -> list[Task]:
    """Tasks that are not deleted, ARCHIVED or CANCELLED.

    COMPLETE tasks are kept: that status only means the scheduled time ran out.
    """
    return [t for t in tasks if t is not None and t.is_active]


@dataclass
class TaskInput:
    """Raw, caller-supplied task fields before normalization.

    Durations may be given in 15-minute chunks or in minutes. ``deadline`` and
    ``snooze_until`` accept a day count or a date/time string.
    """

    title: str | None = None
    notes: str | None = None
    event_category: str | None = None
    event_sub_type: str | None = None
    priority: str | None = None
    time_chunks_required: int | None = None
    duration_minutes: int | None = None
    min_chunk_size: int | None = None
    min_duration_minutes: int | None = None
    max_chunk_size: int | None = None
    max_duration_minutes: int | None = None
    lock_chunk_size_to_duration: bool = False
    on_deck: bool | None = None
    always_private: bool | None = None
    time_scheme_id: str | None = None
    status: str | None = None
    deadline: int | str | None = None
    due: str | None = None
    snooze_until: int | str | None = None
    start_time: str | None = None
    event_color: str | None = None


def _first(d: dict, *keys: str) -> Any:
    for key in keys:
        if d.get(key) is not None:
            return d[key]
    return None


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_chunks(value: Any) -> int | None:
    """Chunk counts below one are treated as unset."""
    count = _as_int(value)
    return count if count is not None and count > 0 else None


@dataclass
class AccountDefaults:
    """Account-level fallbacks for task fields. Never override explicit values."""

    category: str | None = None
    event_sub_type: str | None = None
    priority: str | None = None
    time_chunks_required: int | None = None
    min_chunk_size: int | None = None
    max_chunk_size: int | None = None
    due_in_days: int | None = None
    on_deck: bool | None = None
    always_private: bool | None = None
    time_scheme_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return dict(self.raw) or {
            "category": self.category,
            "eventSubType": self.event_sub_type,
            "priority": self.priority,
            "timeChunksRequired": self.time_chunks_required,
            "minChunkSize": self.min_chunk_size,
            "maxChunkSize": self.max_chunk_size,
            "dueInDays": self.due_in_days,
            "onDeck": self.on_deck,
            "alwaysPrivate": self.always_private,
            "timeSchemeId": self.time_scheme_id,
        }

    @classmethod
    def from_dict(cls, d: dict | None) -> AccountDefaults:
        if not d:
            return cls()
        return cls(
            category=_first(d, "category", "eventCategory"),
            event_sub_type=_first(d, "eventSubType"),
            priority=_first(d, "priority"),
            time_chunks_required=_as_chunks(_first(d, "timeChunksRequired")),
            min_chunk_size=_as_chunks(_first(d, "minChunkSize")),
            max_chunk_size=_as_chunks(_first(d, "maxChunkSize")),
            due_in_days=_as_int(_first(d, "dueInDays", "dueDays")),
            on_deck=_first(d, "onDeck"),
            always_private=_first(d, "alwaysPrivate"),
            time_scheme_id=_first(d, "timeSchemeId", "timePolicyId"),
            raw=dict(d),
        )


@dataclass
class AccountInfo:
    """Stored timezone and task defaults of the current account."""

    time_zone: str | None = None
    defaults: AccountDefaults = field(default_factory=AccountDefaults)

    @classmethod
    def from_user(cls, user: dict | None) -> AccountInfo:
        if not user:
            return cls()

        settings = user.get("settings") or {}
        tz = _first(user, "timezone", "timeZone") or _first(settings, "timezone", "timeZone")
        if isinstance(tz, dict):
            tz = tz.get("id")
        if not isinstance(tz, str) or not tz.strip():
            tz = None

        task_settings = (user.get("features") or {}).get("taskSettings") or {}
        defaults = (
            task_settings.get("defaults")
            or settings.get("taskDefaults")
            or user.get("taskDefaults")
        )
        return cls(time_zone=tz.strip() if tz else None, defaults=AccountDefaults.from_dict(defaults))
