from datetime import date, datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from workfocus.application.scheduler import SlotPolicy, find_gaps, find_slot, round_up_to_interval
from workfocus.core import CalendarEvent, FocusBlock, NoSlotFound, WorkHours
from workfocus.core.focus_block import NO_SLOT_LOOKAHEAD_EXHAUSTED, NO_SLOT_WINDOW_TOO_SHORT

HOURS = WorkHours.parse("08:30", "17:00")
WED = date(2025, 1, 15)
FRI = date(2025, 1, 17)
SAT = date(2025, 1, 18)
MIN15 = timedelta(minutes=15)
MIN45 = timedelta(minutes=45)


def at(day, hh, mm=0):
    return datetime(day.year, day.month, day.day, hh, mm, tzinfo=timezone.utc)


def event(day, start, end):
    return CalendarEvent(at(day, *start), at(day, *end))


def test_first_fit_after_conflicting_event():
    window = HOURS.window(WED)
    events = [event(WED, (9, 0), (9, 30))]

    block = find_slot(events, window, MIN45, MIN15, at(WED, 8, 0), item_id=7)

    # 08:30-09:15 would overlap the 09:00 meeting
    assert block == FocusBlock(at(WED, 9, 30), at(WED, 10, 15), 7)


def test_short_block_fits_before_event():
    window = HOURS.window(WED)
    events = [event(WED, (9, 0), (9, 30))]

    block = find_slot(events, window, timedelta(minutes=30), MIN15, at(WED, 8, 0))

    assert (block.start, block.end) == (at(WED, 8, 30), at(WED, 9, 0))


def test_full_day_rolls_over_to_next_workday():
    window = HOURS.window(WED)
    events = [event(WED, (8, 30), (16, 45))]

    block = find_slot(events, window, MIN45, MIN15, at(WED, 8, 0))

    assert (block.start, block.end) == (at(WED + timedelta(days=1), 8, 30), at(WED + timedelta(days=1), 9, 15))


def test_friday_rolls_over_to_monday():
    window = HOURS.window(FRI)

    block = find_slot([], window, MIN45, MIN15, at(FRI, 16, 30))

    assert block.start == at(date(2025, 1, 20), 8, 30)


def test_weekend_start_moves_to_monday():
    block = find_slot([], HOURS.window(SAT), MIN45, MIN15, at(SAT, 10, 0))

    assert block.start == at(date(2025, 1, 20), 8, 30)


def test_abutting_event_does_not_block():
    window = HOURS.window(WED)
    events = [event(WED, (8, 0), (8, 30)), event(WED, (9, 15), (10, 0))]

    block = find_slot(events, window, MIN45, MIN15, at(WED, 8, 0))

    assert (block.start, block.end) == (at(WED, 8, 30), at(WED, 9, 15))


def test_empty_calendar_starts_at_next_mark_after_now():
    block = find_slot([], HOURS.window(WED), MIN45, MIN15, at(WED, 10, 7))

    assert block.start == at(WED, 10, 15)


def test_duration_longer_than_window_is_reported_not_searched():
    result = find_slot([], HOURS.window(WED), timedelta(hours=9), MIN15, at(WED, 8, 0))

    assert isinstance(result, NoSlotFound)
    assert result.kind == NO_SLOT_WINDOW_TOO_SHORT


def test_lookahead_is_bounded():
    busy = []
    day = WED
    for _ in range(10):
        busy.append(event(day, (8, 0), (17, 0)))
        day += timedelta(days=1)
    policy = SlotPolicy(max_lookahead_days=2)

    result = find_slot(busy, HOURS.window(WED), MIN45, MIN15, at(WED, 8, 0), policy=policy)

    assert isinstance(result, NoSlotFound)
    assert result.kind == NO_SLOT_LOOKAHEAD_EXHAUSTED
    assert result.searched_days == (WED, date(2025, 1, 16), FRI)


def test_truncate_policy_uses_remaining_window():
    events = [event(WED, (8, 30), (16, 30))]
    policy = SlotPolicy(allow_truncate=True, min_fraction=0.5)

    block = find_slot(events, HOURS.window(WED), timedelta(hours=1), MIN15, at(WED, 8, 0), policy=policy)

    assert (block.start, block.end) == (at(WED, 16, 30), at(WED, 17, 0))
    assert block.truncated is True


def test_truncate_respects_min_fraction():
    events = [event(WED, (8, 30), (16, 45))]
    policy = SlotPolicy(allow_truncate=True, min_fraction=0.5)

    block = find_slot(events, HOURS.window(WED), timedelta(hours=1), MIN15, at(WED, 8, 0), policy=policy)

    assert block.truncated is False
    assert block.start == at(date(2025, 1, 16), 8, 30)


def test_granularity_must_be_whole_minutes():
    with pytest.raises(ValueError):
        find_slot([], HOURS.window(WED), MIN45, timedelta(seconds=90), at(WED, 8, 0))


def test_round_up_to_interval():
    assert round_up_to_interval(at(WED, 10, 7), 15) == at(WED, 10, 15)
    assert round_up_to_interval(at(WED, 10, 15), 15) == at(WED, 10, 15)
    assert round_up_to_interval(at(WED, 10, 15) + timedelta(seconds=1), 15) == at(WED, 10, 30)
    assert round_up_to_interval(at(WED, 23, 50), 30) == at(WED + timedelta(days=1), 0, 0)


def test_find_gaps():
    events = [event(WED, (9, 0), (10, 0)), event(WED, (9, 30), (11, 0)), event(WED, (12, 0), (13, 0))]

    gaps = find_gaps(events, at(WED, 8, 30), at(WED, 17, 0))

    assert gaps == [
        (at(WED, 8, 30), at(WED, 9, 0)),
        (at(WED, 11, 0), at(WED, 12, 0)),
        (at(WED, 13, 0), at(WED, 17, 0)),
    ]


events_strategy = st.lists(
    st.tuples(st.integers(0, 4 * 24 * 60), st.integers(1, 300)),
    max_size=25,
)


def _events(raw):
    base = at(WED, 0, 0)
    return [CalendarEvent(base + timedelta(minutes=s), base + timedelta(minutes=s + length)) for s, length in raw]


@settings(max_examples=200, deadline=None)
@given(
    raw=events_strategy,
    duration=st.integers(5, 240),
    granularity=st.sampled_from([5, 10, 15, 30, 60]),
    now_offset=st.integers(0, 24 * 60 - 1),
)
def test_block_never_overlaps_input_events(raw, duration, granularity, now_offset):
    events = _events(raw)
    now = at(WED, 0, 0) + timedelta(minutes=now_offset)

    result = find_slot(events, HOURS.window(WED), timedelta(minutes=duration), timedelta(minutes=granularity), now)

    if isinstance(result, FocusBlock):
        assert all(not e.overlaps(result.start, result.end) for e in events)
        assert result.end - result.start == timedelta(minutes=duration)
        assert result.start >= now
        assert (result.start.hour * 60 + result.start.minute) % granularity == 0
        window = HOURS.window(result.start.date())
        assert window.start <= result.start and result.end <= window.end
    else:
        assert result.kind == NO_SLOT_LOOKAHEAD_EXHAUSTED


@settings(max_examples=50, deadline=None)
@given(raw=events_strategy, duration=st.integers(5, 240))
def test_find_slot_is_deterministic(raw, duration):
    events = _events(raw)
    args = (HOURS.window(WED), timedelta(minutes=duration), MIN15, at(WED, 9, 10))

    first = find_slot(events, *args)
    second = find_slot(list(reversed(events)), *args)

    assert first == second
    assert repr(first) == repr(second)
