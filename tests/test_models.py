from reclaim_mcp.errors import ReclaimError
from reclaim_mcp.models import AccountDefaults, AccountInfo, Task, TaskStatus, filter_active_tasks


def test_task_serialization():
    raw = {
        "id": 42,
        "title": "Write report",
        "status": "COMPLETE",
        "timeChunksRequired": 8,
        "minChunkSize": 2,
        "maxChunkSize": 4,
        "due": "2026-01-05T16:00:00.000Z",
        "onDeck": True,
        "atRisk": False,
    }
    t = Task.from_dict(raw)
    assert t.id == 42
    assert t.status == TaskStatus.COMPLETE
    assert t.time_chunks_required == 8
    assert t.on_deck is True
    assert t.extra == {"atRisk": False}

    d = t.to_dict()
    assert d["status"] == "COMPLETE"
    assert d["atRisk"] is False
    assert d["maxChunkSize"] == 4
    assert Task.from_dict(d).to_dict() == d


def test_unknown_status_is_preserved():
    t = Task.from_dict({"id": 1, "title": "x", "status": "SOMETHING_NEW"})
    assert t.status is None
    assert t.to_dict()["status"] == "SOMETHING_NEW"


def test_filter_active_keeps_complete():
    tasks = [
        Task.from_dict({"id": 1, "title": "a", "status": "NEW"}),
        Task.from_dict({"id": 2, "title": "b", "status": "COMPLETE"}),
        Task.from_dict({"id": 3, "title": "c", "status": "ARCHIVED"}),
        Task.from_dict({"id": 4, "title": "d", "status": "CANCELLED"}),
        Task.from_dict({"id": 5, "title": "e", "status": "SCHEDULED", "deleted": True}),
    ]
    assert [t.id for t in filter_active_tasks(tasks)] == [1, 2]


def test_account_info_from_user():
    user = {
        "email": "me@example.com",
        "timezone": {"id": "Europe/Berlin"},
        "features": {
            "taskSettings": {
                "defaults": {
                    "timeChunksRequired": 4,
                    "minChunkSize": 2,
                    "maxChunkSize": 8,
                    "alwaysPrivate": True,
                    "priority": "P2",
                }
            }
        },
    }
    info = AccountInfo.from_user(user)
    assert info.time_zone == "Europe/Berlin"
    assert info.defaults.time_chunks_required == 4
    assert info.defaults.min_chunk_size == 2
    assert info.defaults.priority == "P2"
    assert info.defaults.always_private is True
    assert info.defaults.to_dict()["maxChunkSize"] == 8


def test_account_info_tolerates_other_shapes():
    info = AccountInfo.from_user({"settings": {"timezone": "Asia/Tokyo", "taskDefaults": {"dueInDays": "3"}}})
    assert info.time_zone == "Asia/Tokyo"
    assert info.defaults.due_in_days == 3

    empty = AccountInfo.from_user({})
    assert empty.time_zone is None
    assert empty.defaults.priority is None


def test_error_user_message():
    err = ReclaimError("API Call Failed (getTask(taskId=9)): Not Found", 404, {"title": "Not Found", "detail": "No task 9"})
    assert err.user_message() == "Error 404: API Call Failed (getTask(taskId=9)): Not Found - Not Found (No task 9)"
    assert ReclaimError("boom").user_message() == "Error: boom"


def test_non_positive_chunk_defaults_are_unset():
    d = AccountDefaults.from_dict({"timeChunksRequired": 0, "minChunkSize": -1, "maxChunkSize": "4", "dueInDays": 0})
    assert d.time_chunks_required is None
    assert d.min_chunk_size is None
    assert d.max_chunk_size == 4
    assert d.due_in_days == 0
