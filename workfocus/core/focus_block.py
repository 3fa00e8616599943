"""Focus Blocks and the calendar events they are placed between."""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .timestamps import format_ts, parse_ts

NO_SLOT_WINDOW_TOO_SHORT = "window_too_short"
NO_SLOT_LOOKAHEAD_EXHAUSTED = "lookahead_exhausted"


class BlockSource(str, Enum):
    PROPOSED = "proposed"
    COMMITTED = "committed"


@dataclass(frozen=True)
class CalendarEvent:
    """An existing calendar entry; only its [start, end) interval matters for scheduling."""

    start: datetime
    end: datetime
    event_id: Optional[str] = None
    subject: str = ""
    categories: Tuple[str, ...] = ()

    def overlaps(self, start: datetime, end: datetime) -> bool:
        # half-open intervals: a shared boundary is not an overlap
        return start < self.end and end > self.start


@dataclass(frozen=True)
class FocusBlock:
    start: datetime
    end: datetime
    item_id: int
    source: BlockSource = BlockSource.PROPOSED
    event_id: Optional[str] = None
    truncated: bool = False

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_committed(self) -> bool:
        return self.source is BlockSource.COMMITTED

    def commit(self, event_id: str) -> "FocusBlock":
        return replace(self, source=BlockSource.COMMITTED, event_id=event_id)

    def overlaps(self, event: CalendarEvent) -> bool:
        return event.overlaps(self.start, self.end)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start": format_ts(self.start),
            "end": format_ts(self.end),
            "item_id": self.item_id,
            "source": self.source.value,
            "event_id": self.event_id,
            "truncated": self.truncated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FocusBlock":
        return cls(
            start=parse_ts(data["start"]),
            end=parse_ts(data["end"]),
            item_id=int(data["item_id"]),
            source=BlockSource(data.get("source", BlockSource.PROPOSED.value)),
            event_id=data.get("event_id"),
            truncated=bool(data.get("truncated", False)),
        )


@dataclass(frozen=True)
class NoSlotFound:
    reason: str
    kind: str = NO_SLOT_LOOKAHEAD_EXHAUSTED
    searched_days: Tuple[date, ...] = field(default_factory=tuple)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "kind": self.kind,
            "searched_days": [d.isoformat() for d in self.searched_days],
        }


__all__ = [
    "BlockSource",
    "CalendarEvent",
    "FocusBlock",
    "NoSlotFound",
    "NO_SLOT_WINDOW_TOO_SHORT",
    "NO_SLOT_LOOKAHEAD_EXHAUSTED",
]
