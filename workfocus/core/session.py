"""Persisted record: the active TaskSession, sync cursors and calendar links.

The State is the only thing written to disk by the State Store. At most one
TaskSession exists at any time, simply because State holds an Optional one.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from .errors import SOURCE_CALENDAR, SOURCE_TIMER, SOURCE_TRACKER, StateCorruption, ValidationError
from .focus_block import FocusBlock
from .timestamps import format_ts, parse_optional_ts, parse_ts

STATE_VERSION = "1.0.0"
SYNC_SOURCES = (SOURCE_TRACKER, SOURCE_TIMER, SOURCE_CALENDAR)

# Key names used by 0.x state files.
_LEGACY_SYNC_KEYS = {"devops": SOURCE_TRACKER, "sevenpace": SOURCE_TIMER, "calendar": SOURCE_CALENDAR}


def validate_item_id(item_id: Any) -> int:
    if isinstance(item_id, bool) or not isinstance(item_id, int) or item_id < 1:
        raise ValidationError(f"Work item id must be an integer >= 1, got {item_id!r}", item=item_id)
    return item_id


@dataclass
class TaskSession:
    item_id: int
    title: str
    started_at: datetime
    expires_at: datetime
    timer_handle: Optional[str] = None
    focus_block: Optional[FocusBlock] = None
    paused_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        validate_item_id(self.item_id)
        if self.expires_at <= self.started_at:
            raise ValidationError(
                "Session expiry must be after its start",
                item=self.item_id,
                started_at=format_ts(self.started_at),
                expires_at=format_ts(self.expires_at),
            )

    @classmethod
    def begin(
        cls,
        item_id: int,
        title: str,
        now: datetime,
        expiry_hours: float,
        timer_handle: Optional[str] = None,
    ) -> "TaskSession":
        return cls(
            item_id=item_id,
            title=title,
            started_at=now,
            expires_at=now + timedelta(hours=expiry_hours),
            timer_handle=timer_handle,
        )

    @property
    def paused(self) -> bool:
        return self.paused_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    def elapsed(self, now: datetime) -> timedelta:
        return max(now - self.started_at, timedelta(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "title": self.title,
            "started_at": format_ts(self.started_at),
            "expires_at": format_ts(self.expires_at),
            "timer_handle": self.timer_handle,
            "focus_block": self.focus_block.to_dict() if self.focus_block else None,
            "paused_at": format_ts(self.paused_at) if self.paused_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskSession":
        data = _mapping(data, "session")
        block = data.get("focus_block")
        return cls(
            item_id=int(data["item_id"]),
            title=str(data.get("title", "")),
            started_at=parse_ts(data["started_at"]),
            expires_at=parse_ts(data["expires_at"]),
            timer_handle=data.get("timer_handle"),
            focus_block=FocusBlock.from_dict(_mapping(block, "session.focus_block")) if block else None,
            paused_at=parse_optional_ts(data.get("paused_at")),
        )


@dataclass
class SyncCursor:
    """Last successful contact per remote source."""

    stamps: Dict[str, datetime] = field(default_factory=dict)

    def touch(self, source: str, when: datetime) -> None:
        self.stamps[source] = when

    def last(self, source: str) -> Optional[datetime]:
        return self.stamps.get(source)

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {source: format_ts(self.stamps[source]) if source in self.stamps else None for source in SYNC_SOURCES}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SyncCursor":
        stamps: Dict[str, datetime] = {}
        for key, value in _mapping(data or {}, "last_sync").items():
            source = _LEGACY_SYNC_KEYS.get(key, key)
            if value:
                stamps[source] = parse_ts(value)
        return cls(stamps)


@dataclass
class CalendarMapping:
    work_item_id: int
    event_id: str
    created_at: datetime
    last_synced: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "work_item_id": self.work_item_id,
            "event_id": self.event_id,
            "created_at": format_ts(self.created_at),
            "last_synced": format_ts(self.last_synced) if self.last_synced else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalendarMapping":
        data = _mapping(data, "calendar mapping")
        return cls(
            work_item_id=int(data["work_item_id"]),
            event_id=str(data["event_id"]),
            created_at=parse_ts(data["created_at"]),
            last_synced=parse_optional_ts(data.get("last_synced")),
        )


@dataclass
class State:
    version: str = STATE_VERSION
    session: Optional[TaskSession] = None
    sync: SyncCursor = field(default_factory=SyncCursor)
    calendar_mappings: List[CalendarMapping] = field(default_factory=list)
    # Set by the store when the on-disk file had to be moved aside. Never persisted.
    recovered: Optional[StateCorruption] = field(default=None, compare=False, repr=False)

    def expire(self, now: datetime) -> Optional[TaskSession]:
        """Drop the session if it is past its expiry; return the dropped session."""
        if self.session is not None and self.session.is_expired(now):
            expired, self.session = self.session, None
            return expired
        return None

    def upsert_calendar_mapping(self, work_item_id: int, event_id: str, now: datetime) -> None:
        for mapping in self.calendar_mappings:
            if mapping.work_item_id == work_item_id:
                mapping.event_id = event_id
                mapping.last_synced = now
                return
        self.calendar_mappings.append(CalendarMapping(work_item_id, event_id, created_at=now))

    def calendar_event_for(self, work_item_id: int) -> Optional[str]:
        for mapping in self.calendar_mappings:
            if mapping.work_item_id == work_item_id:
                return mapping.event_id
        return None

    def remove_calendar_mapping(self, event_id: str) -> Optional[int]:
        """Forget the link to event_id; returns the work item it pointed at."""
        for mapping in self.calendar_mappings:
            if mapping.event_id == event_id:
                self.calendar_mappings.remove(mapping)
                return mapping.work_item_id
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "session": self.session.to_dict() if self.session else None,
            "last_sync": self.sync.to_dict(),
            "calendar_mappings": [m.to_dict() for m in self.calendar_mappings],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        data = _migrate(_mapping(data, "state root"))
        session = data.get("session")
        return cls(
            version=STATE_VERSION,
            session=TaskSession.from_dict(session) if session else None,
            sync=SyncCursor.from_dict(data.get("last_sync")),
            calendar_mappings=[CalendarMapping.from_dict(m) for m in data.get("calendar_mappings") or []],
        )


def _mapping(value: Any, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a mapping, got {type(value).__name__}")
    return value


def _migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    version = str(data.get("version") or "0")
    major = version.split(".")[0]
    if major not in ("0", "1"):
        raise ValueError(f"unsupported state version {version}")
    if "current_task" in data and "session" not in data:
        legacy = data.get("current_task")
        data = dict(data)
        data["session"] = (
            {
                "item_id": legacy["id"],
                "title": legacy.get("title", ""),
                "started_at": legacy["started_at"],
                "expires_at": legacy["expires_at"],
                "timer_handle": legacy.get("timer_id"),
            }
            if legacy
            else None
        )
    return data


__all__ = [
    "STATE_VERSION",
    "SYNC_SOURCES",
    "TaskSession",
    "SyncCursor",
    "CalendarMapping",
    "State",
    "validate_item_id",
]
