"""Focus Block slot finding.

Everything here is a pure function of its arguments: no clock reads, no I/O.
Identical inputs always yield identical output, so a dry-run preview
matches what a real run would commit.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from workfocus.core import CalendarEvent, FocusBlock, NoSlotFound, WorkWindow
from workfocus.core.focus_block import NO_SLOT_LOOKAHEAD_EXHAUSTED, NO_SLOT_WINDOW_TOO_SHORT


@dataclass(frozen=True)
class SlotPolicy:
    max_lookahead_days: int = 5  # work days searched after the starting one
    allow_truncate: bool = False
    min_fraction: float = 0.5


SlotResult = Union[FocusBlock, NoSlotFound]


def round_up_to_interval(moment: datetime, minutes: int, tz: Optional[tzinfo] = None) -> datetime:
    """Next clock mark divisible by `minutes` (counted from local midnight); aligned values are kept."""
    if minutes <= 0:
        raise ValueError("interval must be positive")
    local = moment.astimezone(tz) if tz is not None else moment
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    step = timedelta(minutes=minutes)
    remainder = (local - midnight) % step
    if not remainder:
        return local
    return local + (step - remainder)


def find_gaps(
    events: Iterable[CalendarEvent], start: datetime, end: datetime
) -> List[Tuple[datetime, datetime]]:
    """Free intervals inside [start, end) not covered by any event."""
    busy = sorted(
        ((e.start, e.end) for e in events if e.end > start and e.start < end),
        key=lambda pair: pair,
    )
    gaps: List[Tuple[datetime, datetime]] = []
    current = start
    for event_start, event_end in busy:
        if current < event_start:
            gaps.append((current, event_start))
        current = max(current, event_end)
    if current < end:
        gaps.append((current, end))
    return gaps


def find_slot(
    existing_events: Iterable[CalendarEvent],
    work_window: WorkWindow,
    duration: timedelta,
    granularity: timedelta,
    now: datetime,
    *,
    item_id: int = 0,
    policy: Optional[SlotPolicy] = None,
) -> SlotResult:
    """Earliest granularity-aligned interval of `duration` that overlaps no event.

    The search starts at max(now, window start) on the window's day and rolls
    over to following work days (window start) up to the policy lookahead.
    With truncation enabled, the starting day may yield a shortened block
    of at least `min_fraction` of the duration.
    """
    policy = policy or SlotPolicy()
    if duration <= timedelta(0) or granularity <= timedelta(0):
        raise ValueError("duration and granularity must be positive")
    step_minutes = int(granularity.total_seconds() // 60)
    if step_minutes <= 0 or granularity != timedelta(minutes=step_minutes):
        raise ValueError("granularity must be a whole number of minutes")

    if duration > work_window.length:
        return NoSlotFound(
            reason=f"Focus Block of {_minutes(duration)}m exceeds the {_minutes(work_window.length)}m work window",
            kind=NO_SLOT_WINDOW_TOO_SHORT,
        )

    events = sorted(existing_events, key=lambda e: (e.start, e.end))
    window = work_window
    cursor = now
    if not window.is_workday():
        window = window.next_workday()
        cursor = window.start

    searched = []
    for attempt in range(policy.max_lookahead_days + 1):
        searched.append(window.day)
        day_events = [e for e in events if e.end > window.start and e.start < window.end]
        begin = max(cursor, window.start)
        for candidate in _candidates(window, begin, step_minutes, duration):
            end = candidate + duration
            if not any(event.overlaps(candidate, end) for event in day_events):
                return FocusBlock(start=candidate, end=end, item_id=item_id)
        if attempt == 0 and policy.allow_truncate:
            partial = _truncated_fit(day_events, window, begin, step_minutes, duration, policy.min_fraction, item_id)
            if partial is not None:
                return partial
        window = window.next_workday()
        cursor = window.start

    return NoSlotFound(
        reason=f"No free {_minutes(duration)}m slot within {len(searched)} work day(s)",
        kind=NO_SLOT_LOOKAHEAD_EXHAUSTED,
        searched_days=tuple(searched),
    )


def _candidates(window: WorkWindow, begin: datetime, step_minutes: int, duration: timedelta) -> Iterator[datetime]:
    step = timedelta(minutes=step_minutes)
    candidate = round_up_to_interval(begin, step_minutes, window.tz)
    while candidate + duration <= window.end:
        yield candidate
        candidate += step


def _truncated_fit(
    events: Sequence[CalendarEvent],
    window: WorkWindow,
    begin: datetime,
    step_minutes: int,
    duration: timedelta,
    min_fraction: float,
    item_id: int,
) -> Optional[FocusBlock]:
    minimum = duration * min_fraction
    step = timedelta(minutes=step_minutes)
    candidate = round_up_to_interval(begin, step_minutes, window.tz)
    while candidate + minimum <= window.end:
        if not any(e.start <= candidate < e.end for e in events):
            following = [e.start for e in events if e.start > candidate]
            free_end = min([window.end] + following)
            free_end = min(free_end, candidate + duration)
            if free_end - candidate >= minimum:
                return FocusBlock(start=candidate, end=free_end, item_id=item_id, truncated=True)
        candidate += step
    return None


def _minutes(delta: timedelta) -> int:
    return int(delta.total_seconds() // 60)


__all__ = ["SlotPolicy", "SlotResult", "find_slot", "find_gaps", "round_up_to_interval"]
