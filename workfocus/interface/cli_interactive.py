"""Prompt helpers for the interactive check-in."""

import sys
from typing import Any, Dict, Optional

from workfocus.application.coordinator import CheckinAction

CHOICES = {
    "c": CheckinAction.CONTINUE,
    "continue": CheckinAction.CONTINUE,
    "b": CheckinAction.BLOCKED,
    "blocked": CheckinAction.BLOCKED,
    "s": CheckinAction.STOP,
    "stop": CheckinAction.STOP,
}


def is_interactive() -> bool:
    """Check that both stdin and stdout are TTYs."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def prompt(question: str, default: str = "") -> Optional[str]:
    """Single line of input; None when the user aborts."""
    if default:
        question = f"{question} [{default}]"
    try:
        response = input(f"{question}: ").strip()
    except (EOFError, KeyboardInterrupt):
        print(file=sys.stderr)
        return None
    return response if response else default


def ask_checkin_action(current: Dict[str, Any]) -> Optional[CheckinAction]:
    """Ask continue / blocked / stop for the active task; None if aborted."""
    session = current.get("session") or {}
    elapsed = current.get("elapsed") or "0m"
    print(f"Focus Block finished for #{session.get('item_id')} {session.get('title', '')} ({elapsed})", file=sys.stderr)
    while True:
        answer = prompt("continue / blocked / stop", "continue")
        if answer is None:
            return None
        action = CHOICES.get(answer.lower())
        if action is not None:
            return action
        print("  please answer c, b or s", file=sys.stderr)


__all__ = ["is_interactive", "prompt", "ask_checkin_action"]
