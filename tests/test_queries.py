from datetime import datetime, timedelta, timezone

import pytest
from filelock import FileLock

from workfocus.application.coordinator import StartOptions
from workfocus.core import CalendarEvent, ValidationError


def at(hour, minute=0):
    return datetime(2025, 1, 15, hour, minute, tzinfo=timezone.utc)


def test_current_reports_unreadable_state_without_moving_it(lifecycle):
    lifecycle.state_path.write_text("{not json", encoding="utf-8")

    with FileLock(str(lifecycle.store.lock_path)):
        payload = lifecycle.queries.current()

    assert payload["session"] is None
    assert payload["recovered"]["error"] == "StateCorruption"
    assert lifecycle.state_path.read_text(encoding="utf-8") == "{not json"
    assert list(lifecycle.state_path.parent.glob("*.bak")) == []


def test_current_reports_sync_age_per_source(lifecycle):
    lifecycle.coordinator.start(12345)
    lifecycle.clock.advance(timedelta(minutes=10))

    payload = lifecycle.queries.current()

    assert payload["sync_age_seconds"] == {"tracker": 600, "timer": 600, "calendar": None}
    assert payload["elapsed"] == "10m"


def test_calendar_events_are_tagged_with_their_work_item(lifecycle):
    lifecycle.calendar.events.append(CalendarEvent(at(9), at(9, 30), event_id="standup", subject="Standup"))
    lifecycle.coordinator.start(12345, StartOptions(schedule_focus=True))

    everything = lifecycle.queries.calendar_events(days=1)
    mine = lifecycle.queries.calendar_events(days=1, item_id=12345)

    assert everything["count"] == 2
    assert {e["event_id"]: e["work_item_id"] for e in everything["events"]} == {"standup": None, "evt-1": 12345}
    assert [e["event_id"] for e in mine["events"]] == ["evt-1"]
    assert everything["start"] == "2025-01-15T00:00:00+00:00"


def test_worklogs_sum_durations(lifecycle):
    lifecycle.timer.worklogs = [
        {"id": 1, "duration": 3600, "workItemId": 12345},
        {"id": 2, "duration": 900, "workItemId": 67890},
        {"id": 3, "duration": None},
    ]

    payload = lifecycle.queries.worklogs(days=3)

    assert payload["count"] == 3
    assert payload["total_seconds"] == 4500
    assert payload["total"] == "1h 15m"
    assert payload["start"] == "2025-01-12T08:00:00+00:00"


def test_listing_needs_a_positive_day_count(lifecycle):
    with pytest.raises(ValidationError):
        lifecycle.queries.worklogs(days=0)
    with pytest.raises(ValidationError):
        lifecycle.queries.calendar_events(days=0)
