"""Time-tracking records."""

from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Optional

from .timestamps import format_ts, parse_optional_ts


class StopReason(IntEnum):
    """Reason code passed through to the timer service when tracking stops."""

    COMPLETED = 0
    SWITCHED = 1
    BLOCKED = 2
    EXPIRED = 3
    DISCARDED = 4


@dataclass
class TimerInfo:
    handle: str
    item_id: int
    started_at: Optional[datetime] = None
    comment: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "TimerInfo":
        return cls(
            handle=str(payload["id"]),
            item_id=int(payload["workItemId"]),
            started_at=parse_optional_ts(payload.get("startedAt")),
            comment=payload.get("comment"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "handle": self.handle,
            "item_id": self.item_id,
            "started_at": format_ts(self.started_at) if self.started_at else None,
            "comment": self.comment,
        }


def format_duration(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes = rest // 60
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


__all__ = ["StopReason", "TimerInfo", "format_duration"]
