from .clock import FixedClock, SystemClock, WorkHours, WorkWindow
from .errors import (
    AuthError,
    ConfigError,
    LockError,
    RemoteError,
    SchedulingConflict,
    StateCorruption,
    ValidationError,
    WorkfocusError,
    SOURCE_CALENDAR,
    SOURCE_TIMER,
    SOURCE_TRACKER,
)
from .focus_block import BlockSource, CalendarEvent, FocusBlock, NoSlotFound
from .session import CalendarMapping, State, SyncCursor, TaskSession, validate_item_id
from .timer import StopReason, TimerInfo, format_duration
from .work_item import ItemState, TypeSchema, WorkItem

__all__ = [
    # Time
    "FixedClock",
    "SystemClock",
    "WorkHours",
    "WorkWindow",
    # Errors
    "WorkfocusError",
    "LockError",
    "StateCorruption",
    "ConfigError",
    "AuthError",
    "RemoteError",
    "SchedulingConflict",
    "ValidationError",
    "SOURCE_CALENDAR",
    "SOURCE_TIMER",
    "SOURCE_TRACKER",
    # Scheduling
    "BlockSource",
    "CalendarEvent",
    "FocusBlock",
    "NoSlotFound",
    # State
    "CalendarMapping",
    "State",
    "SyncCursor",
    "TaskSession",
    "validate_item_id",
    # Remote records
    "StopReason",
    "TimerInfo",
    "format_duration",
    "ItemState",
    "TypeSchema",
    "WorkItem",
]
