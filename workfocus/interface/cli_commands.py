"""Command handlers. Each returns the process exit code."""

import argparse
from typing import Any, Dict, Optional

from workfocus import config
from workfocus.application.coordinator import (
    CheckinAction,
    CheckinOptions,
    LifecycleResult,
    Outcome,
    StartOptions,
    StopOptions,
)
from workfocus.core import ValidationError, format_duration
from workfocus.infrastructure.secret_store import KNOWN_KEYS

from . import cli_interactive
from .cli_io import structured_response
from .runtime import Services, build_services, secret_store

STATUS = {Outcome.SUCCESS: "OK", Outcome.PARTIAL: "PARTIAL", Outcome.DRY_RUN: "DRY_RUN"}


def _services(need_tracker: bool = True) -> Services:
    settings = config.load_settings()
    if need_tracker:
        settings.tracker.require()
    return build_services(settings)


def _lifecycle_response(command: str, result: LifecycleResult, message: str) -> int:
    if result.warnings:
        message = f"{message} ({'; '.join(result.warnings)})"
    return structured_response(command, status=STATUS[result.outcome], message=message, payload=result.to_dict())


def _start_options(args: argparse.Namespace) -> StartOptions:
    return StartOptions(
        start_timer=not args.no_timer,
        schedule_focus=args.schedule_focus,
        comment=args.comment,
        dry_run=args.dry_run,
    )


def _describe_block(result: LifecycleResult) -> str:
    block = result.focus_block
    if block is None:
        return ""
    return f"; Focus Block {block.start:%a %H:%M}-{block.end:%H:%M}"


def cmd_start(args: argparse.Namespace) -> int:
    result = _services().coordinator.start(args.item_id, _start_options(args))
    session = result.session
    message = f"Working on #{session.item_id} {session.title}{_describe_block(result)}"
    return _lifecycle_response("start", result, message)


def cmd_switch(args: argparse.Namespace) -> int:
    result = _services().coordinator.switch(args.item_id, _start_options(args))
    previous = result.previous
    message = (
        f"Switched #{previous.item_id} -> #{args.item_id} "
        f"(logged {format_duration(result.logged_seconds)}){_describe_block(result)}"
    )
    return _lifecycle_response("switch", result, message)


def cmd_stop(args: argparse.Namespace) -> int:
    result = _services().coordinator.stop(StopOptions(log_time=not args.discard, dry_run=args.dry_run))
    if result.previous is None:
        message = "Task had already expired"
    else:
        message = f"Stopped #{result.previous.item_id}, logged {format_duration(result.logged_seconds)}"
    return _lifecycle_response("stop", result, message)


def cmd_current(args: argparse.Namespace) -> int:
    payload = _services(need_tracker=False).queries.current()
    session = payload.get("session")
    if not session:
        return structured_response("current", message="No active task", payload=payload)
    message = f"#{session['item_id']} {session['title']} ({payload['elapsed']})"
    if payload.get("expired"):
        message += " [expired]"
    elif payload.get("paused"):
        message += " [paused]"
    return structured_response("current", message=message, payload=payload)


def cmd_checkin(args: argparse.Namespace) -> int:
    services = _services()
    action: Optional[CheckinAction] = CheckinAction(args.action) if args.action else None
    if action is None:
        if not cli_interactive.is_interactive():
            raise ValidationError("checkin needs an action: continue, blocked or stop")
        action = cli_interactive.ask_checkin_action(services.queries.current())
        if action is None:
            raise ValidationError("checkin aborted")
    result = services.coordinator.checkin(action, CheckinOptions(mark_blocked=args.mark_blocked, dry_run=args.dry_run))
    messages = {
        CheckinAction.CONTINUE: f"Continuing{_describe_block(result)}",
        CheckinAction.BLOCKED: f"Paused as blocked, logged {format_duration(result.logged_seconds)}",
        CheckinAction.STOP: f"Stopped, logged {format_duration(result.logged_seconds)}",
    }
    return _lifecycle_response(f"checkin.{action.value}", result, messages[action])


def cmd_show(args: argparse.Namespace) -> int:
    payload = _services().queries.show_item(args.item_id)
    item = payload["item"]
    return structured_response("show", message=f"#{item['id']} [{item['state']}] {item['title']}", payload=payload)


def cmd_list(args: argparse.Namespace) -> int:
    filters: Dict[str, Any] = {
        "state": args.state,
        "assigned_to": args.assigned_to,
        "item_type": args.item_type,
        "tags": [t.strip() for t in (args.tags or "").split(",") if t.strip()],
        "limit": args.limit,
    }
    payload = _services().queries.list_items(filters)
    return structured_response("list", message=f"{payload['count']} item(s)", payload=payload)


def cmd_focus_preview(args: argparse.Namespace) -> int:
    payload = _services(need_tracker=False).queries.preview_focus(args.item)
    slot = payload.get("slot")
    if slot is None:
        return structured_response("focus.preview", status="NO_SLOT", message=payload["no_slot"]["reason"], payload=payload)
    return structured_response("focus.preview", message=f"Next slot {slot['start']} - {slot['end']}", payload=payload)


def cmd_log_time(args: argparse.Namespace) -> int:
    result = _services().coordinator.log_time(args.item_id, args.hours, args.comment, dry_run=args.dry_run)
    verb = "Would log" if result.dry_run else "Logged"
    message = f"{verb} {format_duration(result.logged_seconds)} to #{args.item_id}"
    return _lifecycle_response("log-time", result, message)


def cmd_worklogs(args: argparse.Namespace) -> int:
    payload = _services().queries.worklogs(args.days)
    message = f"{payload['count']} worklog(s), {payload['total']} in the last {args.days} day(s)"
    return structured_response("worklogs", message=message, payload=payload)


def cmd_state(args: argparse.Namespace) -> int:
    result = _services().coordinator.set_item_state(args.item_id, args.new_state, dry_run=args.dry_run)
    step = result.steps[-1] if result.steps else None
    state = step.detail.get("state", args.new_state) if step else args.new_state
    return _lifecycle_response("state", result, f"#{args.item_id} -> {state}")


def cmd_calendar_list(args: argparse.Namespace) -> int:
    payload = _services(need_tracker=False).queries.calendar_events(args.days, args.item)
    return structured_response("calendar.list", message=f"{payload['count']} event(s)", payload=payload)


def cmd_calendar_delete(args: argparse.Namespace) -> int:
    result = _services(need_tracker=False).coordinator.delete_focus_block(args.event_id, dry_run=args.dry_run)
    verb = "Would delete" if result.dry_run else "Deleted"
    return _lifecycle_response("calendar.delete", result, f"{verb} event {args.event_id}")


def cmd_auth_set(args: argparse.Namespace) -> int:
    if args.key not in KNOWN_KEYS:
        raise ValidationError(f"Unknown credential {args.key!r}; expected one of {', '.join(KNOWN_KEYS)}", key=args.key)
    secret_store().set(args.key, args.value)
    cleared = not (args.value or "").strip()
    return structured_response(
        "auth.set",
        message=f"{args.key} {'cleared' if cleared else 'saved'}",
        payload={"key": args.key, "value": None if cleared else "***"},
    )


def cmd_config_get(args: argparse.Namespace) -> int:
    value = config.get_value(args.key)
    return structured_response("config.get", message=f"{args.key} = {value!r}", payload={"key": args.key, "value": value})


def cmd_config_set(args: argparse.Namespace) -> int:
    config.set_value(args.key, args.value)
    value = config.get_value(args.key)
    return structured_response("config.set", message=f"{args.key} = {value!r}", payload={"key": args.key, "value": value})
