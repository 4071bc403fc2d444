"""Turn caller-supplied date/time expressions into absolute UTC instants.

Three input shapes are understood:

- a positive day count (``int``): that many days from now, same wall-clock time;
- a string with an explicit UTC offset or ``Z``: already unambiguous;
- a local date or date-time with no offset (``2026-01-05``, ``2026-01-05 08:30``,
  ``2026-01-05T08:30:15.250``): interpreted in the zone picked by a
  :class:`ResolutionContext`.

Local times are disambiguated by probing the zone around a first guess rather
than by consulting transition tables. Inside a fall-back overlap the earlier
instant wins; inside a spring-forward gap the time snaps forward to the first
valid local time.

Output is always ISO 8601 in UTC with millisecond precision and a ``Z`` suffix.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser, tz

from reclaim_mcp.errors import InvalidInputError, InvalidTimezoneError

logger = logging.getLogger(__name__)

LOCAL_DATETIME_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:[T\s](\d{2})(?::(\d{2})(?::(\d{2})(?:\.(\d{1,3}))?)?)?)?$"
)
HAS_OFFSET_RE = re.compile(r"([zZ]|[+-]\d{2}:\d{2})$")

# Real-world DST shifts are at most one hour; widen for historical oddities.
PROBE_WINDOW = timedelta(hours=1)


def load_zone(name: str) -> ZoneInfo:
    """Return the IANA zone for ``name`` or raise InvalidTimezoneError."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimezoneError(
            f'Invalid timeZone "{name}". Use an IANA time zone like "America/Los_Angeles".'
        ) from exc


@dataclass(frozen=True)
class ResolutionContext:
    """Ordered time zone sources for offset-less input. The first non-blank one wins."""

    time_zone: str | None = None  # explicit, per call
    default_time_zone: str | None = None  # process-wide setting
    account_time_zone: str | None = None  # stored on the Reclaim account

    def zone_name(self) -> str | None:
        for source in (self.time_zone, self.default_time_zone, self.account_time_zone):
            if source and source.strip():
                return source.strip()
        return None

    def zone(self) -> tzinfo:
        name = self.zone_name()
        if name is None:
            return tz.tzlocal()
        return load_zone(name)


def format_instant(dt: datetime) -> str:
    """Serialize an aware datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    u = dt.astimezone(timezone.utc)
    return (
        f"{u.year:04d}-{u.month:02d}-{u.day:02d}T"
        f"{u.hour:02d}:{u.minute:02d}:{u.second:02d}.{u.microsecond // 1000:03d}Z"
    )


# ---------------------------------------------------------------------------
# Zone disambiguation
# ---------------------------------------------------------------------------


def _wall_clock(instant: datetime, zone: tzinfo) -> datetime:
    return instant.astimezone(zone).replace(tzinfo=None)


def _zone_offset(instant: datetime, zone: tzinfo) -> timedelta:
    """UTC offset of ``zone`` at ``instant``, read off its wall-clock rendering."""
    return _wall_clock(instant, zone) - instant.replace(tzinfo=None)


def zoned_time_to_utc(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int,
    millisecond: int,
    zone: tzinfo,
) -> datetime:
    """Find the UTC instant whose wall-clock time in ``zone`` is the given components.

    The components are first read as if they were UTC. The zone's offset at that
    guess, and at instants one probe window either side of each derived candidate,
    give a small set of plausible offsets. Each offset yields a candidate instant
    which is rendered back into the zone:

    - if any candidates render exactly to the requested wall-clock time, the
      earliest wins (fall-back overlap: the first occurrence);
    - otherwise the requested time falls in a gap, and the candidate rendering
      closest at-or-after it wins. If none renders at-or-after, the closest by
      absolute distance is used.

    Raises InvalidInputError when the components do not form a real date/time.
    """
    try:
        desired = datetime(year, month, day, hour, minute, second, millisecond * 1000)
    except ValueError as exc:
        raise InvalidInputError(
            f"Invalid date/time: {year:04d}-{month:02d}-{day:02d} "
            f"{hour:02d}:{minute:02d}:{second:02d} does not exist in the calendar."
        ) from exc

    guess = desired.replace(tzinfo=timezone.utc)
    try:
        offsets = [_zone_offset(guess, zone)]
        # offsets grows while we walk it; it is bounded by what the zone uses nearby
        for offset in offsets:
            candidate = guess - offset
            for probe in (candidate, candidate + PROBE_WINDOW, candidate - PROBE_WINDOW):
                found = _zone_offset(probe, zone)
                if found not in offsets:
                    offsets.append(found)

        candidates = []
        for offset in offsets:
            instant = guess - offset
            candidates.append((instant, _wall_clock(instant, zone)))
    except OverflowError as exc:
        raise InvalidInputError(f"Invalid date/time: {desired.isoformat()} is out of range.") from exc

    chosen = _choose_candidate(candidates, desired)
    if _wall_clock(chosen, zone) != desired:
        logger.debug("Local time %s does not exist in %s; using %s", desired, zone, chosen)
    return chosen


def _choose_candidate(candidates: list[tuple[datetime, datetime]], desired: datetime) -> datetime:
    """Pick from (instant, wall-clock) pairs: earliest exact match, else the
    nearest rendering at or after ``desired``, else the nearest overall.

    For a zone whose offsets come from the same lookups that built the
    candidates, some rendering is always at or after ``desired``.
    """
    exact = [instant for instant, wall in candidates if wall == desired]
    if exact:
        return min(exact)

    later = [(wall - desired, instant) for instant, wall in candidates if wall >= desired]
    if later:
        return min(later, key=lambda pair: pair[0])[1]
    return min(candidates, key=lambda pair: abs(pair[1] - desired))[0]


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------


_RANGES = (
    ("month", 1, 12),
    ("day", 1, 31),
    ("hour", 0, 23),
    ("minute", 0, 59),
    ("second", 0, 59),
    ("millisecond", 0, 999),
)


def _local_components(match: re.Match, raw: str) -> tuple[int, ...]:
    year_s, month_s, day_s, hour_s, minute_s, second_s, ms_s = match.groups()
    year = int(year_s)
    values = (
        int(month_s),
        int(day_s),
        int(hour_s) if hour_s else 0,
        int(minute_s) if minute_s else 0,
        int(second_s) if second_s else 0,
        int(ms_s.ljust(3, "0")) if ms_s else 0,
    )
    for (name, low, high), value in zip(_RANGES, values):
        if not low <= value <= high:
            raise InvalidInputError(f'Invalid {name} "{value}" in "{raw}".')
    return (year, *values)


def _resolve_days(days: int, now: datetime) -> str:
    if days <= 0:
        logger.warning(
            "Received non-positive number of days %r for deadline/snooze, using current time.", days
        )
        return format_instant(now)
    # Fixed 24h steps in absolute time, not a zone-aware calendar shift.
    return format_instant(now + timedelta(days=days))


def _resolve_offset_string(raw: str) -> str:
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        try:
            parsed = parser.parse(raw)
        except (ValueError, OverflowError) as exc:
            raise InvalidInputError(f'Invalid date format: "{raw}"') from exc
    if parsed.tzinfo is None:
        raise InvalidInputError(f'Invalid date format: "{raw}"')
    return format_instant(parsed)


def resolve(
    expression: int | str,
    context: ResolutionContext | None = None,
    now: datetime | None = None,
) -> str:
    """Resolve a date/time expression to a canonical UTC instant string.

    Args:
        expression: Day count from now, or a date/time string.
        context: Time zone sources for strings without an offset.
        now: Evaluation instant for day counts (defaults to the current time).

    Raises:
        InvalidInputError: unparseable string or impossible calendar values.
        InvalidTimezoneError: the chosen zone identifier is unknown.
    """
    context = context or ResolutionContext()

    if isinstance(expression, bool) or not isinstance(expression, (int, str)):
        raise InvalidInputError(
            f"Expected a day count or a date/time string, got {type(expression).__name__}."
        )

    if isinstance(expression, int):
        return _resolve_days(expression, now or datetime.now(timezone.utc))

    raw = expression.strip()
    if not raw:
        raise InvalidInputError("Date/time value cannot be empty.")

    if HAS_OFFSET_RE.search(raw):
        return _resolve_offset_string(raw)

    match = LOCAL_DATETIME_RE.match(raw)
    if match:
        components = _local_components(match, raw)
        return format_instant(zoned_time_to_utc(*components, context.zone()))

    try:
        parsed = parser.parse(raw)
    except (ValueError, OverflowError) as exc:
        raise InvalidInputError(f'Invalid date format: "{expression}"') from exc

    if parsed.tzinfo is not None:
        return format_instant(parsed)
    return format_instant(
        zoned_time_to_utc(
            parsed.year,
            parsed.month,
            parsed.day,
            parsed.hour,
            parsed.minute,
            parsed.second,
            parsed.microsecond // 1000,
            context.zone(),
        )
    )
