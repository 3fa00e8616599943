"""Error taxonomy shared by every layer.

Each error carries the process exit code it maps to and a small context dict
(source, item, step) so callers can report where things went wrong.
"""

from typing import Any, Dict, Optional

EXIT_OK = 0
EXIT_GENERAL = 1
EXIT_CONFIG = 2
EXIT_AUTH = 3
EXIT_REMOTE = 4
EXIT_INVALID = 5
EXIT_IO = 6

SOURCE_TRACKER = "tracker"
SOURCE_TIMER = "timer"
SOURCE_CALENDAR = "calendar"

REMOTE_NETWORK = "network"
REMOTE_TIMEOUT = "timeout"
REMOTE_REJECTED = "rejected"
REMOTE_SERVER = "server"
REMOTE_DECODE = "decode"


class WorkfocusError(Exception):
    exit_code = EXIT_GENERAL

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def with_context(self, **context: Any) -> "WorkfocusError":
        for key, value in context.items():
            if value is not None:
                self.context.setdefault(key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, **self.context}


class LockError(WorkfocusError):
    """State lock could not be acquired. Remove a stale lock file by hand."""

    exit_code = EXIT_IO


class StateCorruption(WorkfocusError):
    """Persisted state was unreadable; it was moved aside and replaced by an empty state."""

    exit_code = EXIT_IO

    def __init__(self, message: str, backup_path: Optional[str] = None, **context: Any) -> None:
        super().__init__(message, backup_path=backup_path, **context)
        self.backup_path = backup_path


class ConfigError(WorkfocusError):
    exit_code = EXIT_CONFIG


class AuthError(WorkfocusError):
    exit_code = EXIT_AUTH

    def __init__(self, message: str, source: Optional[str] = None, **context: Any) -> None:
        super().__init__(message, source=source, **context)
        self.source = source


class RemoteError(WorkfocusError):
    exit_code = EXIT_REMOTE

    def __init__(
        self,
        message: str,
        source: str,
        kind: str = REMOTE_REJECTED,
        status: Optional[int] = None,
        **context: Any,
    ) -> None:
        super().__init__(message, source=source, kind=kind, status=status, **context)
        self.source = source
        self.kind = kind
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.kind in (REMOTE_NETWORK, REMOTE_TIMEOUT, REMOTE_SERVER)


class SchedulingConflict(WorkfocusError):
    exit_code = EXIT_GENERAL


class ValidationError(WorkfocusError):
    exit_code = EXIT_INVALID


__all__ = [
    "EXIT_OK",
    "EXIT_GENERAL",
    "EXIT_CONFIG",
    "EXIT_AUTH",
    "EXIT_REMOTE",
    "EXIT_INVALID",
    "EXIT_IO",
    "SOURCE_TRACKER",
    "SOURCE_TIMER",
    "SOURCE_CALENDAR",
    "REMOTE_NETWORK",
    "REMOTE_TIMEOUT",
    "REMOTE_REJECTED",
    "REMOTE_SERVER",
    "REMOTE_DECODE",
    "WorkfocusError",
    "LockError",
    "StateCorruption",
    "ConfigError",
    "AuthError",
    "RemoteError",
    "SchedulingConflict",
    "ValidationError",
]
