"""Task Lifecycle Coordinator: start, switch, stop and check-in.

Each operation runs as one unit under the State Store lock. Steps against
the remote services are ordered, and each step has its own policy when it
fails: abort before anything is written, or carry on and report a partial
outcome. Remote writes are never retried; the timer is asked what is
running before anything is started or stopped.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from workfocus.core import (
    ConfigError,
    FocusBlock,
    NoSlotFound,
    SchedulingConflict,
    StopReason,
    TaskSession,
    TimerInfo,
    ValidationError,
    WorkfocusError,
    WorkItem,
    WorkWindow,
    format_duration,
    validate_item_id,
)
from workfocus.core.clock import local_date
from workfocus.core.errors import SOURCE_CALENDAR, SOURCE_TIMER, SOURCE_TRACKER
from workfocus.core.focus_block import NO_SLOT_WINDOW_TOO_SHORT
from workfocus.core.timestamps import format_ts

from .ports import Cache, CalendarClient, Clock, StateStore, TimerClient, TrackerClient
from .scheduler import SlotPolicy, find_slot

logger = logging.getLogger("workfocus.lifecycle")

T = TypeVar("T")

CACHE_ITEM = "item"
CACHE_CALENDAR = "calendar"


class Outcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    DRY_RUN = "dry_run"


class CheckinAction(str, Enum):
    CONTINUE = "continue"
    BLOCKED = "blocked"
    STOP = "stop"


@dataclass
class StartOptions:
    start_timer: bool = True
    schedule_focus: bool = False
    comment: Optional[str] = None
    dry_run: bool = False


@dataclass
class StopOptions:
    log_time: bool = True
    dry_run: bool = False


@dataclass
class CheckinOptions:
    mark_blocked: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class LifecycleSettings:
    expiry_hours: float = 24
    focus_duration: timedelta = timedelta(minutes=45)
    granularity: timedelta = timedelta(minutes=15)
    slot_policy: SlotPolicy = field(default_factory=SlotPolicy)
    subject_prefix: str = "Focus:"
    blocked_states: Tuple[str, ...] = ("Blocked", "On Hold")


@dataclass
class StepRecord:
    name: str
    status: str = "ok"
    detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"step": self.name, "status": self.status, **self.detail}


@dataclass
class LifecycleResult:
    operation: str
    outcome: Outcome = Outcome.SUCCESS
    session: Optional[TaskSession] = None
    previous: Optional[TaskSession] = None
    expired: Optional[Dict[str, Any]] = None
    logged_seconds: int = 0
    focus_block: Optional[FocusBlock] = None
    steps: List[StepRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    recovered: Optional[Dict[str, Any]] = None

    @property
    def dry_run(self) -> bool:
        return self.outcome is Outcome.DRY_RUN

    def record(self, name: str, status: str = "ok", **detail: Any) -> StepRecord:
        step = StepRecord(name, status, {k: v for k, v in detail.items() if v is not None})
        self.steps.append(step)
        return step

    def fail(self, name: str, exc: WorkfocusError) -> None:
        """A step failed but the operation carries on."""
        self.record(name, "failed", error=exc.to_dict())
        self.warnings.append(f"{name}: {exc.message}")
        if self.outcome is Outcome.SUCCESS:
            self.outcome = Outcome.PARTIAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "outcome": self.outcome.value,
            "session": self.session.to_dict() if self.session else None,
            "previous": self.previous.to_dict() if self.previous else None,
            "expired": self.expired,
            "logged_seconds": self.logged_seconds,
            "logged": format_duration(self.logged_seconds),
            "focus_block": self.focus_block.to_dict() if self.focus_block else None,
            "steps": [s.to_dict() for s in self.steps],
            "warnings": list(self.warnings),
            "recovered": self.recovered,
        }


class TaskCoordinator:
    def __init__(
        self,
        store: StateStore,
        tracker: TrackerClient,
        timer: TimerClient,
        calendar: CalendarClient,
        clock: Clock,
        cache: Optional[Cache] = None,
        settings: Optional[LifecycleSettings] = None,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.timer = timer
        self.calendar = calendar
        self.clock = clock
        self.cache = cache
        self.settings = settings or LifecycleSettings()

    # ------------------------------------------------------------------ operations

    def start(self, item_id: int, options: Optional[StartOptions] = None) -> LifecycleResult:
        options = options or StartOptions()
        validate_item_id(item_id)

        def body(ctx, result: LifecycleResult) -> None:
            session = ctx.state.session
            if session is not None and session.item_id != item_id:
                raise ValidationError(
                    f"Item {session.item_id} is active; use `switch {item_id}` to replace it",
                    item=item_id,
                    active=session.item_id,
                )
            if options.schedule_focus:
                self._check_focus_fits(ctx.now)
            item = self._fetch_item(ctx, item_id)
            self._begin(ctx, result, item, options)

        return self._run("start", options.dry_run, body)

    def switch(self, item_id: int, options: Optional[StartOptions] = None) -> LifecycleResult:
        options = options or StartOptions()
        validate_item_id(item_id)

        def body(ctx, result: LifecycleResult) -> None:
            previous = ctx.state.session
            if previous is None:
                raise ValidationError("No active task to switch from; use `start`", item=item_id)
            if previous.item_id == item_id:
                raise ValidationError(f"Item {item_id} is already the active task", item=item_id)
            if options.schedule_focus:
                self._check_focus_fits(ctx.now)
            item = self._fetch_item(ctx, item_id)
            try:
                result.logged_seconds = self._stop_timer(ctx, result, previous, StopReason.SWITCHED, log_time=True)
            except WorkfocusError as exc:
                logger.warning("Stopping timer for item %s during switch failed: %s", previous.item_id, exc)
                result.fail("timer.stop", exc)
            result.previous = previous
            ctx.state.session = None
            self._begin(ctx, result, item, options)

        return self._run("switch", options.dry_run, body)

    def stop(self, options: Optional[StopOptions] = None) -> LifecycleResult:
        options = options or StopOptions()

        def body(ctx, result: LifecycleResult) -> None:
            if ctx.state.session is None:
                if ctx.expired is not None:
                    result.record("session.clear", "skipped", reason="already expired")
                    return
                raise ValidationError("No active task to stop")
            self._stop(ctx, result, options.log_time)

        return self._run("stop", options.dry_run, body)

    def checkin(self, action: CheckinAction, options: Optional[CheckinOptions] = None) -> LifecycleResult:
        options = options or CheckinOptions()
        action = CheckinAction(action)

        def body(ctx, result: LifecycleResult) -> None:
            session = ctx.state.session
            if session is None:
                raise ValidationError("No active task to check in on")
            if session.focus_block is None:
                raise ValidationError(
                    f"Item {session.item_id} has no Focus Block to check in on", item=session.item_id
                )
            if action is CheckinAction.CONTINUE:
                self._continue(ctx, result, session)
            elif action is CheckinAction.BLOCKED:
                self._blocked(ctx, result, session, options.mark_blocked)
            else:
                self._stop(ctx, result, log_time=True)

        return self._run(f"checkin.{action.value}", options.dry_run, body)

    def log_time(
        self, item_id: int, hours: float, comment: Optional[str] = None, dry_run: bool = False
    ) -> LifecycleResult:
        """Manual worklog, independent of the active session."""
        validate_item_id(item_id)
        if hours <= 0:
            raise ValidationError(f"Hours must be positive, got {hours}", item=item_id)

        def body(ctx, result: LifecycleResult) -> None:
            seconds = int(round(hours * 3600))
            result.logged_seconds = seconds
            if ctx.dry_run:
                result.record("timer.log_manual", "planned", item=item_id, seconds=seconds)
                return
            worklog = self._call(
                ctx, SOURCE_TIMER, "timer.log_manual", lambda: self.timer.log_manual(item_id, hours, comment),
                item=item_id,
            )
            result.record("timer.log_manual", item=item_id, seconds=seconds, worklog_id=(worklog or {}).get("id"))

        return self._run("log-time", dry_run, body)

    def set_item_state(self, item_id: int, new_state: str, dry_run: bool = False) -> LifecycleResult:
        validate_item_id(item_id)

        def body(ctx, result: LifecycleResult) -> None:
            self._move_item(ctx, result, item_id, [new_state])

        return self._run("state", dry_run, body)

    def delete_focus_block(self, event_id: str, dry_run: bool = False) -> LifecycleResult:
        """Delete a calendar event and forget any mapping or session link to it."""
        if not event_id:
            raise ValidationError("Event id is required")

        def body(ctx, result: LifecycleResult) -> None:
            if ctx.dry_run:
                result.record("calendar.delete_event", "planned", event_id=event_id)
            else:
                self._call(ctx, SOURCE_CALENDAR, "calendar.delete_event", lambda: self.calendar.delete_event(event_id))
                result.record("calendar.delete_event", event_id=event_id)
                if self.cache is not None:
                    self.cache.invalidate(CACHE_CALENDAR)
            item_id = ctx.state.remove_calendar_mapping(event_id)
            if item_id is not None:
                result.record("calendar.mapping", "planned" if ctx.dry_run else "ok", item=item_id, removed=True)
            session = ctx.state.session
            if session is not None and session.focus_block is not None and session.focus_block.event_id == event_id:
                session.focus_block = None
                result.record("session.focus_block", "planned" if ctx.dry_run else "ok", cleared=True)

        return self._run("calendar.delete", dry_run, body)

    def stop_expired(self, session: TaskSession) -> Optional[Dict[str, Any]]:
        """Best-effort stop of the timer bound to an expired session."""
        current = self.timer.get_current()
        if not _is_bound(current, session):
            return {"stopped": False, "reason": "not running"}
        seconds = self.timer.stop(StopReason.EXPIRED)
        logger.info("Stopped timer of expired item %s after %s", session.item_id, format_duration(seconds))
        return {"stopped": True, "logged_seconds": seconds}

    # ------------------------------------------------------------------ steps

    def _run(self, operation: str, dry_run: bool, body: Callable[[Any, LifecycleResult], None]) -> LifecycleResult:
        def transform(ctx) -> LifecycleResult:
            result = LifecycleResult(operation, Outcome.DRY_RUN if dry_run else Outcome.SUCCESS)
            if ctx.recovered is not None:
                result.recovered = ctx.recovered.to_dict()
                result.warnings.append(ctx.recovered.message)
            if ctx.expired is not None:
                result.expired = {
                    "item_id": ctx.expired.item_id,
                    "expires_at": format_ts(ctx.expired.expires_at),
                    "timer_stop": ctx.expiry_stop,
                    "persisted": not dry_run,
                }
                result.warnings.append(f"Task {ctx.expired.item_id} expired and was cleared")
            body(ctx, result)
            result.session = ctx.state.session
            return result

        result = self.store.mutate_under_lock(transform, dry_run=dry_run)
        logger.info("%s finished: %s", operation, result.outcome.value)
        return result

    def _begin(self, ctx, result: LifecycleResult, item: WorkItem, options: StartOptions) -> None:
        existing = ctx.state.session
        if existing is not None and existing.item_id == item.id:
            handle = existing.timer_handle
            if options.start_timer:
                handle = self._ensure_timer(ctx, result, item.id, options.comment)
            # restarting the active item refreshes expiry, keeps its start
            session = TaskSession(
                item_id=item.id,
                title=item.title or existing.title,
                started_at=existing.started_at,
                expires_at=ctx.now + timedelta(hours=self.settings.expiry_hours),
                timer_handle=handle,
                focus_block=existing.focus_block,
            )
        else:
            handle = self._ensure_timer(ctx, result, item.id, options.comment) if options.start_timer else None
            session = TaskSession.begin(item.id, item.title, ctx.now, self.settings.expiry_hours, handle)
        ctx.state.session = session
        result.record("session.write", "planned" if ctx.dry_run else "ok", item=item.id)
        if options.schedule_focus:
            self._try_schedule(ctx, result, session)

    def _ensure_timer(self, ctx, result: LifecycleResult, item_id: int, comment: Optional[str]) -> Optional[str]:
        """Handle of a timer running for item_id; started only if none is running."""
        current = self._call(ctx, SOURCE_TIMER, "timer.current", self.timer.get_current)
        if current is not None and current.item_id == item_id:
            result.record("timer.start", "ok", handle=current.handle, adopted=True)
            return current.handle
        if current is not None:
            if ctx.dry_run:
                result.record("timer.stop_foreign", "planned", item=current.item_id)
            else:
                seconds = self._call(
                    ctx, SOURCE_TIMER, "timer.stop_foreign", lambda: self.timer.stop(StopReason.SWITCHED),
                    item=current.item_id,
                )
                logger.warning("Stopped a timer running for item %s before starting %s", current.item_id, item_id)
                result.record("timer.stop_foreign", item=current.item_id, logged_seconds=seconds)
        if ctx.dry_run:
            result.record("timer.start", "planned", item=item_id)
            return None
        info = self._call(ctx, SOURCE_TIMER, "timer.start", lambda: self.timer.start(item_id, comment), item=item_id)
        result.record("timer.start", handle=info.handle)
        return info.handle

    def _stop_timer(self, ctx, result: LifecycleResult, session: TaskSession, reason: StopReason, log_time: bool) -> int:
        """Stop the timer bound to session and return the seconds logged."""
        if not session.timer_handle:
            return self._log_untimed(ctx, result, session) if log_time else 0
        current = self._call(ctx, SOURCE_TIMER, "timer.current", self.timer.get_current, item=session.item_id)
        if not _is_bound(current, session):
            result.record("timer.stop", "skipped", reason="not running", item=session.item_id)
            return 0
        if ctx.dry_run:
            result.record("timer.stop", "planned", item=session.item_id)
            return 0
        reason = reason if log_time else StopReason.DISCARDED
        seconds = self._call(ctx, SOURCE_TIMER, "timer.stop", lambda: self.timer.stop(reason), item=session.item_id)
        result.record("timer.stop", item=session.item_id, reason=reason.name.lower(), logged_seconds=seconds)
        return seconds if log_time else 0

    def _log_untimed(self, ctx, result: LifecycleResult, session: TaskSession) -> int:
        # paused sessions were logged when they paused
        if session.paused:
            return 0
        seconds = int(session.elapsed(ctx.now).total_seconds())
        if seconds < 60:
            return 0
        if ctx.dry_run:
            result.record("timer.log_manual", "planned", item=session.item_id, seconds=seconds)
            return seconds
        self._call(
            ctx,
            SOURCE_TIMER,
            "timer.log_manual",
            lambda: self.timer.log_manual(session.item_id, seconds / 3600, f"workfocus: {session.title}"),
            item=session.item_id,
        )
        result.record("timer.log_manual", item=session.item_id, seconds=seconds)
        return seconds

    def _stop(self, ctx, result: LifecycleResult, log_time: bool) -> None:
        session = ctx.state.session
        result.logged_seconds = self._stop_timer(ctx, result, session, StopReason.COMPLETED, log_time)
        result.previous = session
        ctx.state.session = None
        result.record("session.clear", "planned" if ctx.dry_run else "ok", item=session.item_id)

    def _continue(self, ctx, result: LifecycleResult, session: TaskSession) -> None:
        if session.paused:
            session.timer_handle = self._ensure_timer(ctx, result, session.item_id, None)
            session.paused_at = None
        self._try_schedule(ctx, result, session)

    def _blocked(self, ctx, result: LifecycleResult, session: TaskSession, mark_blocked: bool) -> None:
        if not session.paused:
            result.logged_seconds = self._stop_timer(ctx, result, session, StopReason.BLOCKED, log_time=True)
            session.timer_handle = None
            session.paused_at = ctx.now
        else:
            result.record("timer.stop", "skipped", reason="already paused", item=session.item_id)
        if mark_blocked:
            try:
                self._mark_blocked(ctx, result, session.item_id)
            except WorkfocusError as exc:
                logger.warning("Marking item %s blocked failed: %s", session.item_id, exc)
                result.fail("tracker.update_state", exc)

    def _mark_blocked(self, ctx, result: LifecycleResult, item_id: int) -> None:
        self._move_item(ctx, result, item_id, self.settings.blocked_states)

    def _move_item(self, ctx, result: LifecycleResult, item_id: int, candidates: Sequence[str]) -> None:
        """Move the item to the first candidate state its type defines."""
        item = self._fetch_item(ctx, item_id)
        schema = self._call(
            ctx, SOURCE_TRACKER, "tracker.get_type_schema", lambda: self.tracker.get_type_schema(item.item_type),
            item=item_id,
        )
        target = schema.find_state(candidates)
        if target is None:
            raise ValidationError(
                f"Work item type {item.item_type!r} has no state {' / '.join(candidates)}; "
                f"valid states: {', '.join(schema.state_names)}",
                item=item_id,
                step="tracker.update_state",
                valid_states=schema.state_names,
            )
        if item.state == target:
            result.record("tracker.update_state", "skipped", reason=f"already {target}", state=target)
            return
        if not schema.can_transition(item.state, target):
            raise ValidationError(
                f"{item.item_type} cannot move from {item.state!r} to {target!r}",
                item=item_id,
                step="tracker.update_state",
            )
        if ctx.dry_run:
            result.record("tracker.update_state", "planned", item=item_id, state=target)
            return
        updated = self._call(
            ctx, SOURCE_TRACKER, "tracker.update_state", lambda: self.tracker.update_item_state(item_id, target),
            item=item_id,
        )
        if self.cache is not None:
            self.cache.put(CACHE_ITEM, str(item_id), updated.to_dict())
        result.record("tracker.update_state", item=item_id, state=updated.state or target)

    # ------------------------------------------------------------------ focus blocks

    def _today(self, now: datetime) -> WorkWindow:
        tz = self.clock.work_window(now.date()).tz
        return self.clock.work_window(local_date(now, tz))

    def _check_focus_fits(self, now: datetime) -> None:
        window = self._today(now)
        if self.settings.focus_duration > window.length:
            raise ConfigError(
                f"Focus Block of {format_duration(int(self.settings.focus_duration.total_seconds()))} "
                f"does not fit the {format_duration(int(window.length.total_seconds()))} work window",
                key="focus_blocks.duration_minutes",
            )

    def _try_schedule(self, ctx, result: LifecycleResult, session: TaskSession) -> None:
        try:
            block = self._schedule(ctx, result, session)
        except WorkfocusError as exc:
            logger.warning("Focus Block for item %s not created: %s", session.item_id, exc)
            result.fail("calendar.focus_block", exc)
            return
        session.focus_block = block
        result.focus_block = block

    def _schedule(self, ctx, result: LifecycleResult, session: TaskSession) -> FocusBlock:
        window = self._today(ctx.now)
        horizon = lookahead_end(window, self.settings.slot_policy.max_lookahead_days)
        events = self._call(
            ctx, SOURCE_CALENDAR, "calendar.list_events", lambda: self.calendar.list_events(window.start, horizon)
        )
        slot = find_slot(
            events,
            window,
            self.settings.focus_duration,
            self.settings.granularity,
            ctx.now,
            item_id=session.item_id,
            policy=self.settings.slot_policy,
        )
        if isinstance(slot, NoSlotFound):
            raise no_slot_error(slot, session.item_id)
        if ctx.dry_run:
            result.record("calendar.create_event", "planned", start=format_ts(slot.start), end=format_ts(slot.end))
            return slot
        subject = focus_subject(self.settings.subject_prefix, session.item_id, session.title)
        metadata = {"work_item_id": session.item_id, "title": session.title, "truncated": slot.truncated or None}
        event_id = self._call(
            ctx,
            SOURCE_CALENDAR,
            "calendar.create_event",
            lambda: self.calendar.create_event(slot.start, slot.end, subject, metadata),
            item=session.item_id,
        )
        ctx.state.upsert_calendar_mapping(session.item_id, event_id, ctx.now)
        result.record("calendar.create_event", event_id=event_id, start=format_ts(slot.start), end=format_ts(slot.end))
        return slot.commit(event_id)

    # ------------------------------------------------------------------ helpers

    def _fetch_item(self, ctx, item_id: int) -> WorkItem:
        # mutating paths read live and write the result through to the cache
        item = self._call(ctx, SOURCE_TRACKER, "tracker.get_item", lambda: self.tracker.get_item(item_id), item=item_id)
        if self.cache is not None:
            self.cache.put(CACHE_ITEM, str(item_id), item.to_dict())
        return item

    def _call(self, ctx, source: str, step: str, fn: Callable[[], T], item: Optional[int] = None) -> T:
        try:
            value = fn()
        except WorkfocusError as exc:
            exc.with_context(step=step, item=item)
            raise
        ctx.state.sync.touch(source, ctx.now)
        return value


def _is_bound(current: Optional[TimerInfo], session: TaskSession) -> bool:
    if current is None:
        return False
    return current.handle == session.timer_handle or current.item_id == session.item_id


def lookahead_end(window: WorkWindow, days: int) -> datetime:
    last = window if window.is_workday() else window.next_workday()
    for _ in range(days):
        last = last.next_workday()
    return last.end


def focus_subject(prefix: str, item_id: int, title: str) -> str:
    return f"{prefix} {item_id} - {title}".strip()


def no_slot_error(slot: NoSlotFound, item_id: int) -> WorkfocusError:
    if slot.kind == NO_SLOT_WINDOW_TOO_SHORT:
        return ConfigError(slot.reason, key="focus_blocks.duration_minutes", item=item_id)
    return SchedulingConflict(
        slot.reason,
        item=item_id,
        searched_days=[d.isoformat() for d in slot.searched_days],
    )


__all__ = [
    "TaskCoordinator",
    "LifecycleSettings",
    "LifecycleResult",
    "StepRecord",
    "Outcome",
    "StartOptions",
    "StopOptions",
    "CheckinAction",
    "CheckinOptions",
    "focus_subject",
    "lookahead_end",
    "no_slot_error",
]
