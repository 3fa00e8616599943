"""Read-only views: none of these take the state lock or write state.

Item details and calendar listings come through the cache, so a reading
command may show data up to one TTL old while a mutation is in flight.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from workfocus.core import (
    CalendarEvent,
    ConfigError,
    NoSlotFound,
    ValidationError,
    WorkItem,
    format_duration,
    validate_item_id,
)
from workfocus.core.clock import local_date
from workfocus.core.session import SYNC_SOURCES, SyncCursor
from workfocus.core.timestamps import format_ts, parse_ts

from .coordinator import CACHE_CALENDAR, CACHE_ITEM, LifecycleSettings, lookahead_end
from .ports import Cache, CalendarClient, Clock, StateStore, TimerClient, TrackerClient
from .scheduler import find_gaps, find_slot


@dataclass
class Freshness:
    captured_at: Optional[float] = None
    from_cache: bool = False
    stale: bool = False

    @classmethod
    def of(cls, result: Any) -> "Freshness":
        return cls(
            captured_at=getattr(result, "captured_at", None),
            from_cache=bool(getattr(result, "from_cache", False)),
            stale=bool(getattr(result, "stale", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"captured_at": self.captured_at, "from_cache": self.from_cache, "stale": self.stale}


class TaskQueries:
    def __init__(
        self,
        store: StateStore,
        tracker: TrackerClient,
        calendar: CalendarClient,
        clock: Clock,
        cache: Cache,
        settings: Optional[LifecycleSettings] = None,
        timer: Optional[TimerClient] = None,
    ) -> None:
        self.store = store
        self.timer = timer
        self.tracker = tracker
        self.calendar = calendar
        self.clock = clock
        self.cache = cache
        self.settings = settings or LifecycleSettings()

    def current(self) -> Dict[str, Any]:
        # no lock here, so an unreadable file is reported but never moved
        state = self.store.load(recover=False)
        now = self.clock.now()
        session = state.session
        payload: Dict[str, Any] = {
            "session": session.to_dict() if session else None,
            "calendar_mappings": [m.to_dict() for m in state.calendar_mappings],
            "last_sync": state.sync.to_dict(),
            "sync_age_seconds": _sync_ages(state.sync, now),
        }
        if session is not None:
            elapsed = int(session.elapsed(now).total_seconds())
            payload["elapsed_seconds"] = elapsed
            payload["elapsed"] = format_duration(elapsed)
            payload["expired"] = session.is_expired(now)
            payload["paused"] = session.paused
        if state.recovered is not None:
            payload["recovered"] = state.recovered.to_dict()
        return payload

    def show_item(self, item_id: int) -> Dict[str, Any]:
        validate_item_id(item_id)
        result = self.cache.get_or_refresh(
            CACHE_ITEM, str(item_id), None, lambda: self.tracker.get_item(item_id).to_dict()
        )
        item = WorkItem.from_dict(result.value)
        return {"item": item.to_dict(), "cache": Freshness.of(result).to_dict()}

    def list_items(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        clean = {k: v for k, v in filters.items() if v not in (None, "", [], ())}
        key = "query:" + ",".join(f"{k}={clean[k]}" for k in sorted(clean))
        result = self.cache.get_or_refresh(
            CACHE_ITEM, key, None, lambda: [item.to_dict() for item in self.tracker.query(clean)]
        )
        items = [WorkItem.from_dict(raw) for raw in result.value or []]
        return {"items": [i.to_dict() for i in items], "count": len(items), "cache": Freshness.of(result).to_dict()}

    def preview_focus(self, item_id: int = 0) -> Dict[str, Any]:
        """Where the next Focus Block would go, without creating it."""
        now = self.clock.now()
        tz = self.clock.work_window(now.date()).tz
        window = self.clock.work_window(local_date(now, tz))
        horizon = lookahead_end(window, self.settings.slot_policy.max_lookahead_days)
        key = f"{format_ts(window.start)}/{format_ts(horizon)}"
        result = self.cache.get_or_refresh(
            CACHE_CALENDAR, key, None, lambda: [_event_to_dict(e) for e in self.calendar.list_events(window.start, horizon)]
        )
        events = [_event_from_dict(raw) for raw in result.value or []]
        slot = find_slot(
            events,
            window,
            self.settings.focus_duration,
            self.settings.granularity,
            now,
            item_id=item_id,
            policy=self.settings.slot_policy,
        )
        gaps = find_gaps(events, max(now, window.start), window.end) if now < window.end else []
        payload: Dict[str, Any] = {
            "window": {"start": format_ts(window.start), "end": format_ts(window.end)},
            "gaps": [{"start": format_ts(s), "end": format_ts(e)} for s, e in gaps],
            "events": len(events),
            "cache": Freshness.of(result).to_dict(),
        }
        if isinstance(slot, NoSlotFound):
            payload["slot"] = None
            payload["no_slot"] = slot.to_dict()
        else:
            payload["slot"] = slot.to_dict()
        return payload

    def calendar_events(self, days: int = 7, item_id: Optional[int] = None) -> Dict[str, Any]:
        """Calendar entries from the start of today, tagged with the work item they were booked for."""
        if days < 1:
            raise ValidationError(f"days must be at least 1, got {days}")
        now = self.clock.now()
        tz = self.clock.work_window(now.date()).tz
        start = self.clock.work_window(local_date(now, tz)).start.replace(hour=0, minute=0, second=0, microsecond=0)
        end = start + timedelta(days=days)
        key = f"{format_ts(start)}/{format_ts(end)}"
        result = self.cache.get_or_refresh(
            CACHE_CALENDAR, key, None, lambda: [_event_to_dict(e) for e in self.calendar.list_events(start, end)]
        )
        linked = {m.event_id: m.work_item_id for m in self.store.load(recover=False).calendar_mappings}
        events: List[Dict[str, Any]] = []
        for raw in result.value or []:
            event = dict(raw, work_item_id=linked.get(raw.get("event_id")))
            if item_id is None or event["work_item_id"] == item_id:
                events.append(event)
        return {
            "start": format_ts(start),
            "end": format_ts(end),
            "events": events,
            "count": len(events),
            "cache": Freshness.of(result).to_dict(),
        }

    def worklogs(self, days: int = 7) -> Dict[str, Any]:
        """Worklogs of the last few days, read live for reconciliation."""
        if self.timer is None:
            raise ConfigError("No timer client configured", key="timer")
        if days < 1:
            raise ValidationError(f"days must be at least 1, got {days}")
        end = self.clock.now()
        start = end - timedelta(days=days)
        logs = self.timer.list_worklogs(start, end)
        total = sum(_seconds(log.get("duration")) for log in logs)
        return {
            "start": format_ts(start),
            "end": format_ts(end),
            "worklogs": logs,
            "count": len(logs),
            "total_seconds": total,
            "total": format_duration(total),
        }


def _sync_ages(sync: SyncCursor, now: datetime) -> Dict[str, Optional[int]]:
    ages: Dict[str, Optional[int]] = {}
    for source in SYNC_SOURCES:
        last = sync.last(source)
        ages[source] = max(int((now - last).total_seconds()), 0) if last else None
    return ages


def _seconds(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _event_to_dict(event: CalendarEvent) -> Dict[str, Any]:
    return {
        "start": format_ts(event.start),
        "end": format_ts(event.end),
        "event_id": event.event_id,
        "subject": event.subject,
        "categories": list(event.categories),
    }


def _event_from_dict(data: Dict[str, Any]) -> CalendarEvent:
    return CalendarEvent(
        start=parse_ts(data["start"]),
        end=parse_ts(data["end"]),
        event_id=data.get("event_id"),
        subject=data.get("subject") or "",
        categories=tuple(data.get("categories") or ()),
    )


__all__ = ["TaskQueries", "Freshness"]
