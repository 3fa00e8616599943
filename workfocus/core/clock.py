"""Time source and work-hour windows.

All timestamps handled by workfocus are timezone-aware. Work hours are
expressed in the configured timezone; a WorkWindow is the concrete
[start, end) interval of one day.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError

WEEKDAYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
DEFAULT_WORKDAYS: Tuple[int, ...] = (0, 1, 2, 3, 4)


def parse_timezone(name: str) -> tzinfo:
    token = (name or "").strip()
    if not token or token.upper() in ("UTC", "Z"):
        return timezone.utc
    try:
        return ZoneInfo(token)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {name!r}", key="work_hours.timezone") from exc


def parse_clock_time(value: str, key: str = "") -> time:
    try:
        return datetime.strptime(str(value).strip(), "%H:%M").time()
    except ValueError as exc:
        raise ConfigError(f"Invalid time {value!r}, expected HH:MM", key=key or None) from exc


def parse_workdays(values: Iterable[str]) -> Tuple[int, ...]:
    days = []
    for raw in values:
        token = str(raw).strip().lower()[:3]
        if token not in WEEKDAYS:
            raise ConfigError(f"Unknown weekday: {raw!r}", key="work_hours.workdays")
        days.append(WEEKDAYS.index(token))
    if not days:
        raise ConfigError("At least one workday is required", key="work_hours.workdays")
    return tuple(sorted(set(days)))


@dataclass(frozen=True)
class WorkWindow:
    start: datetime
    end: datetime
    workdays: Tuple[int, ...] = DEFAULT_WORKDAYS

    @property
    def tz(self) -> tzinfo:
        return self.start.tzinfo or timezone.utc

    @property
    def day(self) -> date:
        return self.start.date()

    @property
    def length(self) -> timedelta:
        return self.end - self.start

    def is_workday(self) -> bool:
        return self.day.weekday() in self.workdays

    def for_date(self, day: date) -> "WorkWindow":
        """Same local hours on another calendar day (DST aware for zoneinfo zones)."""
        tz = self.tz
        return replace(
            self,
            start=datetime.combine(day, self.start.time(), tzinfo=tz),
            end=datetime.combine(day, self.end.time(), tzinfo=tz),
        )

    def next_workday(self) -> "WorkWindow":
        day = self.day + timedelta(days=1)
        while day.weekday() not in self.workdays:
            day += timedelta(days=1)
        return self.for_date(day)


@dataclass(frozen=True)
class WorkHours:
    start: time
    end: time
    tz: tzinfo = timezone.utc
    workdays: Tuple[int, ...] = DEFAULT_WORKDAYS

    @classmethod
    def parse(cls, start: str, end: str, tz_name: str = "UTC", workdays: Iterable[str] = WEEKDAYS[:5]) -> "WorkHours":
        hours = cls(
            start=parse_clock_time(start, "work_hours.start"),
            end=parse_clock_time(end, "work_hours.end"),
            tz=parse_timezone(tz_name),
            workdays=parse_workdays(workdays),
        )
        if hours.start >= hours.end:
            raise ConfigError(f"Work hours start {start} must be before end {end}", key="work_hours")
        return hours

    def window(self, day: date) -> WorkWindow:
        return WorkWindow(
            start=datetime.combine(day, self.start, tzinfo=self.tz),
            end=datetime.combine(day, self.end, tzinfo=self.tz),
            workdays=self.workdays,
        )


class SystemClock:
    def __init__(self, hours: WorkHours) -> None:
        self.hours = hours

    def now(self) -> datetime:
        return datetime.now(self.hours.tz)

    def work_window(self, day: date) -> WorkWindow:
        return self.hours.window(day)


class FixedClock(SystemClock):
    """Clock frozen at a given instant; advance() moves it forward."""

    def __init__(self, now: datetime, hours: WorkHours) -> None:
        super().__init__(hours)
        if now.tzinfo is None:
            raise ValueError("FixedClock requires a timezone-aware datetime")
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        self._now = self._now + delta
        return self._now


def local_date(moment: datetime, tz: tzinfo) -> date:
    return moment.astimezone(tz).date()


__all__ = [
    "WEEKDAYS",
    "WorkWindow",
    "WorkHours",
    "SystemClock",
    "FixedClock",
    "parse_timezone",
    "parse_clock_time",
    "parse_workdays",
    "local_date",
]
