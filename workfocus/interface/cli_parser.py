"""Argument parser for the workfocus CLI."""

import argparse
import sys
from typing import Any

from workfocus.core.errors import EXIT_INVALID


class CliParser(argparse.ArgumentParser):
    """Usage errors exit with the invalid-arguments code."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(EXIT_INVALID, f"{self.prog}: error: {message}\n")


def _add_start_args(sp: argparse.ArgumentParser) -> None:
    sp.add_argument("item_id", type=int, help="work item id")
    sp.add_argument("--comment", "-m", help="comment attached to the timer")
    sp.add_argument("--no-timer", action="store_true", help="do not start the time tracker")
    sp.add_argument("--schedule-focus", "-f", action="store_true", help="book the next Focus Block in the calendar")
    sp.add_argument("--dry-run", action="store_true", help="report what would happen, change nothing")


def build_parser(commands: Any) -> argparse.ArgumentParser:
    parser = CliParser(
        prog="workfocus",
        description="workfocus: one current task across tracker, timer and calendar",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging on stderr")
    parser.add_argument("--version", action="store_true", help="print version and exit")
    sub = parser.add_subparsers(dest="command", parser_class=CliParser)

    sp = sub.add_parser("start", help="Start working on an item")
    _add_start_args(sp)
    sp.set_defaults(func=commands.cmd_start)

    sw = sub.add_parser("switch", help="Stop the active item and start another")
    _add_start_args(sw)
    sw.set_defaults(func=commands.cmd_switch)

    st = sub.add_parser("stop", help="Stop the active item")
    st.add_argument("--discard", action="store_true", help="stop without logging time")
    st.add_argument("--dry-run", action="store_true")
    st.set_defaults(func=commands.cmd_stop)

    cur = sub.add_parser("current", help="Show the active item")
    cur.set_defaults(func=commands.cmd_current)

    ck = sub.add_parser("checkin", help="Answer a finished Focus Block")
    ck.add_argument("action", nargs="?", choices=["continue", "blocked", "stop"])
    ck.add_argument("--mark-blocked", action="store_true", help="move the work item to a blocked state")
    ck.add_argument("--dry-run", action="store_true")
    ck.set_defaults(func=commands.cmd_checkin)

    sh = sub.add_parser("show", help="Show a work item (cached)")
    sh.add_argument("item_id", type=int)
    sh.set_defaults(func=commands.cmd_show)

    ls = sub.add_parser("list", help="List work items (cached)")
    ls.add_argument("--state")
    ls.add_argument("--assigned-to", help="display name, or @Me")
    ls.add_argument("--type", dest="item_type")
    ls.add_argument("--tags", help="comma-separated tags")
    ls.add_argument("--limit", type=int, default=50)
    ls.set_defaults(func=commands.cmd_list)

    lt = sub.add_parser("log-time", help="Log time to an item without a running timer")
    lt.add_argument("item_id", type=int)
    lt.add_argument("hours", type=float, help="decimal hours, e.g. 1.5")
    lt.add_argument("--comment", "-m")
    lt.add_argument("--dry-run", action="store_true")
    lt.set_defaults(func=commands.cmd_log_time)

    wl = sub.add_parser("worklogs", help="Recent worklogs")
    wl.add_argument("--days", type=int, default=7)
    wl.set_defaults(func=commands.cmd_worklogs)

    stt = sub.add_parser("state", help="Move a work item to another state")
    stt.add_argument("item_id", type=int)
    stt.add_argument("new_state")
    stt.add_argument("--dry-run", action="store_true")
    stt.set_defaults(func=commands.cmd_state)

    cal = sub.add_parser("calendar", help="Calendar entries and Focus Blocks")
    calsub = cal.add_subparsers(dest="calendar_command", parser_class=CliParser)
    clist = calsub.add_parser("list", help="Events from today on (cached)")
    clist.add_argument("--days", type=int, default=7)
    clist.add_argument("--item", type=int, help="only events booked for this work item")
    clist.set_defaults(func=commands.cmd_calendar_list)
    cdel = calsub.add_parser("delete", help="Delete an event and forget its Focus Block link")
    cdel.add_argument("event_id")
    cdel.add_argument("--dry-run", action="store_true")
    cdel.set_defaults(func=commands.cmd_calendar_delete)

    fp = sub.add_parser("focus", help="Focus Block helpers")
    fsub = fp.add_subparsers(dest="focus_command", parser_class=CliParser)
    fprev = fsub.add_parser("preview", help="Where the next Focus Block would go")
    fprev.add_argument("--item", type=int, default=0)
    fprev.set_defaults(func=commands.cmd_focus_preview)

    ap = sub.add_parser("auth", help="Credentials")
    asub = ap.add_subparsers(dest="auth_command", parser_class=CliParser)
    aset = asub.add_parser("set", help="Store a credential (empty value clears it)")
    aset.add_argument("key", help="tracker.pat | timer.token | calendar.token")
    aset.add_argument("value", nargs="?", default="")
    aset.set_defaults(func=commands.cmd_auth_set)

    cp = sub.add_parser("config", help="Read or change configuration")
    csub = cp.add_subparsers(dest="config_command", parser_class=CliParser)
    cget = csub.add_parser("get", help="Print a dotted key")
    cget.add_argument("key")
    cget.set_defaults(func=commands.cmd_config_get)
    cset = csub.add_parser("set", help="Set a dotted key (YAML value; empty clears)")
    cset.add_argument("key")
    cset.add_argument("value", nargs="?", default="")
    cset.set_defaults(func=commands.cmd_config_set)

    return parser


__all__ = ["build_parser", "CliParser"]
