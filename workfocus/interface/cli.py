import logging
import sys
from typing import List, Optional

from workfocus import __version__
from workfocus.core import WorkfocusError

from . import cli_commands
from .cli_io import structured_error
from .cli_parser import build_parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )


def command_name(args) -> str:
    parts = [args.command]
    for attr in ("focus_command", "calendar_command", "auth_command", "config_command"):
        if getattr(args, attr, None):
            parts.append(getattr(args, attr))
    return ".".join(parts)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser(cli_commands)
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 1
    configure_logging(args.verbose)
    command = command_name(args)
    try:
        return func(args)
    except WorkfocusError as exc:
        logging.getLogger("workfocus").debug("%s failed", command, exc_info=True)
        return structured_error(command, exc)


if __name__ == "__main__":
    sys.exit(main())
