from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, TypeVar

from workfocus.core import (
    CalendarEvent,
    State,
    StopReason,
    TaskSession,
    TimerInfo,
    TypeSchema,
    WorkItem,
    WorkWindow,
)

R = TypeVar("R")


class TrackerClient(Protocol):
    def get_item(self, item_id: int) -> WorkItem:
        ...

    def update_item_state(self, item_id: int, new_state: str) -> WorkItem:
        ...

    def get_type_schema(self, item_type: str) -> TypeSchema:
        ...

    def query(self, filters: Dict[str, Any]) -> List[WorkItem]:
        ...


class TimerClient(Protocol):
    def start(self, item_id: int, comment: Optional[str] = None) -> TimerInfo:
        ...

    def stop(self, reason: StopReason = StopReason.COMPLETED) -> int:
        """Stop the running timer; returns the logged duration in seconds."""
        ...

    def get_current(self) -> Optional[TimerInfo]:
        ...

    def log_manual(self, item_id: int, hours: float, comment: Optional[str] = None) -> Dict[str, Any]:
        ...

    def list_worklogs(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        ...


class CalendarClient(Protocol):
    def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        ...

    def create_event(self, start: datetime, end: datetime, subject: str, metadata: Dict[str, Any]) -> str:
        ...

    def delete_event(self, event_id: str) -> None:
        ...


class SecretStore(Protocol):
    def get(self, key: str) -> str:
        ...

    def set(self, key: str, secret: str) -> None:
        ...


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def work_window(self, day: date) -> WorkWindow:
        ...


class MutationContext(Protocol):
    state: State
    now: datetime
    expired: Optional[TaskSession]
    dry_run: bool


class StateStore(Protocol):
    def load(self, recover: bool = True) -> State:
        ...

    def mutate_under_lock(self, fn: Callable[[Any], R], *, dry_run: bool = False) -> R:
        ...


class Cache(Protocol):
    def get_or_refresh(self, source: str, key: str, ttl: Optional[float], fetch_fn: Callable[[], Any]) -> Any:
        ...

    def put(self, source: str, key: str, value: Any) -> None:
        ...

    def invalidate(self, source: str, key: Optional[str] = None) -> None:
        ...
