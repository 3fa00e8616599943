from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from workfocus.application.coordinator import LifecycleSettings, TaskCoordinator
from workfocus.application.queries import TaskQueries
from workfocus.core import (
    CalendarEvent,
    FixedClock,
    ItemState,
    RemoteError,
    StopReason,
    TimerInfo,
    TypeSchema,
    WorkHours,
    WorkItem,
)
from workfocus.core.errors import REMOTE_REJECTED, REMOTE_SERVER
from workfocus.infrastructure.cache import CacheLayer
from workfocus.infrastructure.state_store import FileStateStore

# Wednesday
MORNING = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)


class DummyTimer:
    def __init__(self):
        self.calls = []
        self.running = None
        self.counter = 0
        self.fail_start = None
        self.fail_stop = 0
        self.elapsed = 1800
        self.worklogs = []

    def actions(self):
        return [c for c in self.calls if c[0] not in ("current", "worklogs")]

    def get_current(self):
        self.calls.append(("current",))
        return self.running

    def start(self, item_id, comment=None):
        self.calls.append(("start", item_id))
        if self.fail_start is not None:
            raise self.fail_start
        self.counter += 1
        self.running = TimerInfo(handle=f"t{self.counter}", item_id=item_id)
        return self.running

    def stop(self, reason=StopReason.COMPLETED):
        self.calls.append(("stop", reason))
        if self.fail_stop:
            self.fail_stop -= 1
            raise RemoteError("timer unavailable", "timer", REMOTE_SERVER, status=503)
        self.running = None
        return self.elapsed

    def log_manual(self, item_id, hours, comment=None):
        self.calls.append(("log_manual", item_id, round(hours, 2)))
        return {"id": 1}

    def list_worklogs(self, start, end):
        self.calls.append(("worklogs",))
        return list(self.worklogs)


class DummyTracker:
    def __init__(self):
        self.items = {
            12345: WorkItem(12345, "Fix login redirect", "Active", "Bug"),
            67890: WorkItem(67890, "Write release notes", "New", "Task"),
        }
        self.updates = []
        self.get_calls = 0

    def get_item(self, item_id):
        self.get_calls += 1
        if item_id not in self.items:
            raise RemoteError(f"work item {item_id} not found", "tracker", REMOTE_REJECTED, status=404)
        return self.items[item_id]

    def update_item_state(self, item_id, new_state):
        self.updates.append((item_id, new_state))
        self.items[item_id].state = new_state
        return self.items[item_id]

    def get_type_schema(self, item_type):
        states = [ItemState("New"), ItemState("Active"), ItemState("Blocked"), ItemState("Closed")]
        return TypeSchema(item_type, states, {})

    def query(self, filters):
        return [item for item in self.items.values() if not filters.get("state") or item.state == filters["state"]]


class DummyCalendar:
    def __init__(self, events=None):
        self.events = list(events or [])
        self.created = []
        self.list_calls = 0
        self.fail_create = None
        self.fail_delete = None
        self.deleted = []

    def list_events(self, start, end):
        self.list_calls += 1
        return [e for e in self.events if e.end > start and e.start < end]

    def create_event(self, start, end, subject, metadata):
        if self.fail_create is not None:
            raise self.fail_create
        event_id = f"evt-{len(self.created) + 1}"
        self.created.append((start, end, subject, metadata))
        self.events.append(CalendarEvent(start, end, event_id=event_id, subject=subject))
        return event_id

    def delete_event(self, event_id):
        if self.fail_delete is not None:
            raise self.fail_delete
        self.deleted.append(event_id)
        self.events = [e for e in self.events if e.event_id != event_id]


@pytest.fixture
def hours():
    return WorkHours.parse("08:30", "17:00")


@pytest.fixture
def lifecycle(tmp_path, hours):
    clock = FixedClock(MORNING, hours)
    store = FileStateStore(tmp_path / "state.json", clock)
    timer = DummyTimer()
    tracker = DummyTracker()
    calendar = DummyCalendar()
    coordinator = TaskCoordinator(store, tracker, timer, calendar, clock, settings=LifecycleSettings())
    store.on_expired = coordinator.stop_expired
    queries = TaskQueries(store, tracker, calendar, clock, CacheLayer(tmp_path / "cache"), timer=timer)
    return SimpleNamespace(
        clock=clock,
        store=store,
        timer=timer,
        tracker=tracker,
        calendar=calendar,
        coordinator=coordinator,
        queries=queries,
        state_path=tmp_path / "state.json",
    )
