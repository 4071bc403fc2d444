from datetime import datetime, timezone

import pytest

from reclaim_mcp.errors import ChunkSizeConflictError, InvalidInputError
from reclaim_mcp.models import AccountDefaults, TaskInput
from reclaim_mcp.normalize import TaskFlow, minutes_to_chunks, normalize
from reclaim_mcp.timeparse import ResolutionContext

UTC = ResolutionContext(time_zone="UTC")
LA = ResolutionContext(time_zone="America/Los_Angeles")
NOW = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)


def _create(fields, defaults=None, context=UTC, flow=TaskFlow.CREATE):
    return normalize(fields, defaults, context, flow, now=NOW)


def test_minutes_to_chunks_exact():
    for minutes in (15, 30, 45, 60, 90, 480):
        assert minutes_to_chunks(minutes, "durationMinutes") == minutes // 15


def test_minutes_to_chunks_rejects_remainders():
    for minutes in (10, 20, 50, 61, 100):
        with pytest.raises(InvalidInputError, match="multiple of 15"):
            minutes_to_chunks(minutes, "durationMinutes")


def test_minutes_to_chunks_rejects_non_positive():
    with pytest.raises(InvalidInputError):
        minutes_to_chunks(0, "durationMinutes")
    with pytest.raises(InvalidInputError):
        minutes_to_chunks(-15, "durationMinutes")


def test_lock_overrides_separate_bounds():
    fields = TaskInput(
        title="Write report",
        duration_minutes=120,
        min_duration_minutes=30,
        max_duration_minutes=60,
        lock_chunk_size_to_duration=True,
    )
    payload = _create(fields).payload
    assert payload["timeChunksRequired"] == 8
    assert payload["minChunkSize"] == 8
    assert payload["maxChunkSize"] == 8


def test_lock_ignores_conflicting_bounds():
    fields = TaskInput(
        title="x", time_chunks_required=4, min_chunk_size=3, max_chunk_size=1, lock_chunk_size_to_duration=True
    )
    payload = _create(fields).payload
    assert (payload["minChunkSize"], payload["maxChunkSize"]) == (4, 4)


def test_lock_requires_duration():
    with pytest.raises(InvalidInputError, match="lockChunkSizeToDuration"):
        _create(TaskInput(title="x", lock_chunk_size_to_duration=True))


def test_conflicting_minute_bounds_fail():
    fields = TaskInput(title="x", min_duration_minutes=60, max_duration_minutes=30)
    with pytest.raises(ChunkSizeConflictError, match="minDurationMinutes"):
        _create(fields)


def test_conflicting_explicit_chunk_bounds_fail_on_update_too():
    fields = TaskInput(min_chunk_size=4, max_chunk_size=2)
    with pytest.raises(ChunkSizeConflictError):
        normalize(fields, None, UTC, TaskFlow.UPDATE, now=NOW)


def test_defaulted_conflict_is_repaired():
    # explicit min 4 chunks vs. account max 2 chunks: widen max instead of failing
    defaults = AccountDefaults(max_chunk_size=2)
    fields = TaskInput(title="x", duration_minutes=120, min_duration_minutes=60)
    payload = _create(fields, defaults).payload
    assert payload["minChunkSize"] == 4
    assert payload["maxChunkSize"] == 4


def test_bounds_clamped_to_total():
    defaults = AccountDefaults(min_chunk_size=4, max_chunk_size=8)
    payload = _create(TaskInput(title="x", duration_minutes=30), defaults).payload
    assert payload["timeChunksRequired"] == 2
    assert payload["minChunkSize"] == 2
    assert payload["maxChunkSize"] == 2


def test_create_fills_account_defaults():
    defaults = AccountDefaults(
        category="PERSONAL",
        priority="P2",
        time_chunks_required=4,
        due_in_days=3,
        on_deck=False,
        always_private=True,
        time_scheme_id="scheme-1",
    )
    payload = _create(TaskInput(title="Groceries"), defaults).payload
    assert payload == {
        "title": "Groceries",
        "timeChunksRequired": 4,
        "minChunkSize": 1,
        "maxChunkSize": 4,
        "due": "2026-01-08T12:00:00.000Z",
        "eventCategory": "PERSONAL",
        "priority": "P2",
        "onDeck": False,
        "alwaysPrivate": True,
        "timeSchemeId": "scheme-1",
    }


def test_create_without_any_defaults():
    payload = _create(TaskInput(title="x")).payload
    assert payload["timeChunksRequired"] == 1
    assert payload["minChunkSize"] == 1
    assert payload["maxChunkSize"] == 1
    assert payload["due"] == "2026-01-06T12:00:00.000Z"


def test_total_falls_back_to_largest_bound():
    payload = _create(TaskInput(title="x", min_chunk_size=2, max_chunk_size=6)).payload
    assert payload["timeChunksRequired"] == 6


def test_explicit_values_beat_defaults():
    defaults = AccountDefaults(priority="P4", time_chunks_required=2, always_private=True)
    fields = TaskInput(title="x", priority="high", duration_minutes=60, always_private=False)
    payload = _create(fields, defaults).payload
    assert payload["priority"] == "P2"
    assert payload["timeChunksRequired"] == 4
    assert payload["alwaysPrivate"] is False


def test_update_skips_defaults():
    defaults = AccountDefaults(priority="P1", time_chunks_required=4, category="WORK")
    result = normalize(TaskInput(priority="low"), defaults, UTC, TaskFlow.UPDATE, now=NOW)
    assert result.payload == {"priority": "P4"}


def test_update_requires_a_field():
    with pytest.raises(InvalidInputError, match="at least one field"):
        normalize(TaskInput(), None, UTC, TaskFlow.UPDATE, now=NOW)


def test_update_resolves_deadline():
    result = normalize(TaskInput(deadline="2026-01-05T08:00:00"), None, LA, TaskFlow.UPDATE, now=NOW)
    assert result.payload == {"due": "2026-01-05T16:00:00.000Z"}


def test_create_at_time_derives_due_from_duration():
    fields = TaskInput(title="Deep work", start_time="2026-01-05T09:00:00", duration_minutes=90)
    result = _create(fields, context=LA, flow=TaskFlow.CREATE_AT_TIME)
    assert result.start_time == "2026-01-05T17:00:00.000Z"
    assert result.payload["due"] == "2026-01-05T18:30:00.000Z"


def test_create_at_time_explicit_deadline_wins():
    fields = TaskInput(title="x", start_time="2026-01-05T09:00:00", duration_minutes=90, deadline=2)
    result = _create(fields, context=LA, flow=TaskFlow.CREATE_AT_TIME)
    assert result.payload["due"] == "2026-01-07T12:00:00.000Z"


def test_create_at_time_needs_start():
    with pytest.raises(InvalidInputError, match="start_time"):
        _create(TaskInput(title="x"), flow=TaskFlow.CREATE_AT_TIME)


def test_deadline_and_snooze_are_resolved():
    fields = TaskInput(title="x", deadline=2, snooze_until="2026-01-10")
    payload = _create(fields, context=LA).payload
    assert payload["due"] == "2026-01-07T12:00:00.000Z"
    assert payload["snoozeUntil"] == "2026-01-10T08:00:00.000Z"


def test_bad_deadline_fails_whole_normalization():
    with pytest.raises(InvalidInputError):
        _create(TaskInput(title="x", deadline="2026-02-30"))


def test_sub_type_aliases_and_category_inference():
    payload = _create(TaskInput(title="Sync", event_sub_type="meeting")).payload
    assert payload["eventSubType"] == "STAFF_MEETING"
    assert payload["eventCategory"] == "WORK"

    payload = _create(TaskInput(title="Post office", event_sub_type="Errand")).payload
    assert payload["eventSubType"] == "ERRAND"
    assert payload["eventCategory"] == "PERSONAL"

    # a recognised sub-type beats the account's default category
    payload = _create(TaskInput(title="1:1", event_sub_type="1:1"), AccountDefaults(category="PERSONAL")).payload
    assert payload["eventSubType"] == "ONE_ON_ONE"
    assert payload["eventCategory"] == "WORK"


def test_unknown_sub_type_falls_back_by_category():
    payload = _create(TaskInput(title="x", event_category="personal", event_sub_type="knitting")).payload
    assert payload["eventSubType"] == "OTHER_PERSONAL"
    payload = _create(TaskInput(title="x", event_category="WORK", event_sub_type="knitting")).payload
    assert payload["eventSubType"] == "FOCUS"


def test_enum_canonicalization():
    payload = _create(TaskInput(title="x", event_category=" home ", priority="urgent", event_color="purple")).payload
    assert payload["eventCategory"] == "PERSONAL"
    assert payload["priority"] == "P1"
    assert payload["eventColor"] == "GRAPE"

    payload = _create(TaskInput(title="x", event_category="??", priority="whenever", event_color="octarine")).payload
    assert payload["eventCategory"] == "WORK"
    assert payload["priority"] == "P3"
    assert "eventColor" not in payload


def test_status_is_strict():
    payload = normalize(TaskInput(status="in progress"), None, UTC, TaskFlow.UPDATE, now=NOW).payload
    assert payload == {"status": "IN_PROGRESS"}
    with pytest.raises(InvalidInputError, match="Invalid status"):
        normalize(TaskInput(status="finished"), None, UTC, TaskFlow.UPDATE, now=NOW)


def test_create_requires_title():
    with pytest.raises(InvalidInputError, match="title"):
        _create(TaskInput(duration_minutes=30))
    with pytest.raises(InvalidInputError, match="Title"):
        _create(TaskInput(title="   "))


def test_default_category_beats_unrecognised_sub_type():
    fields = TaskInput(title="Knit scarf", event_sub_type="knitting")
    payload = _create(fields, AccountDefaults(category="PERSONAL")).payload
    assert payload["eventCategory"] == "PERSONAL"
    assert payload["eventSubType"] == "OTHER_PERSONAL"


def test_default_category_beats_default_sub_type():
    defaults = AccountDefaults(category="PERSONAL", event_sub_type="FOCUS")
    payload = _create(TaskInput(title="x"), defaults).payload
    assert payload["eventCategory"] == "PERSONAL"
    assert payload["eventSubType"] == "FOCUS"


def test_due_replaces_default_due():
    payload = _create(TaskInput(title="x", due="2026-01-09"), AccountDefaults(due_in_days=3), context=LA).payload
    assert payload["due"] == "2026-01-09T08:00:00.000Z"


def test_deadline_beats_due():
    payload = _create(TaskInput(title="x", deadline=2, due="2026-01-09"), context=LA).payload
    assert payload["due"] == "2026-01-07T12:00:00.000Z"


def test_due_beats_start_time_derivation():
    fields = TaskInput(title="x", start_time="2026-01-05T09:00:00", duration_minutes=90, due="2026-01-06T17:00:00")
    result = _create(fields, context=LA, flow=TaskFlow.CREATE_AT_TIME)
    assert result.payload["due"] == "2026-01-07T01:00:00.000Z"


def test_zero_chunk_default_is_ignored():
    defaults = AccountDefaults.from_dict({"timeChunksRequired": 0, "maxChunkSize": 0})
    fields = TaskInput(title="x", start_time="2026-01-05T09:00:00")
    result = _create(fields, defaults, context=LA, flow=TaskFlow.CREATE_AT_TIME)
    assert result.payload["timeChunksRequired"] == 1
    assert result.payload["maxChunkSize"] == 1
    assert result.payload["due"] == "2026-01-05T17:15:00.000Z"
