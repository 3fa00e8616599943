import json
from datetime import datetime, timezone
from typing import Dict, Optional

from workfocus.core import WorkfocusError
from workfocus.core.errors import EXIT_OK


def iso_timestamp() -> str:
    """UTC timestamp for structured CLI output."""
    return datetime.now(timezone.utc).isoformat()


def structured_response(
    command: str,
    *,
    status: str = "OK",
    message: str = "",
    payload: Optional[Dict] = None,
    summary: Optional[str] = None,
    exit_code: int = EXIT_OK,
) -> int:
    """One JSON document on stdout per invocation; returns the exit code."""
    body: Dict[str, object] = {
        "command": command,
        "status": status,
        "message": message,
        "timestamp": iso_timestamp(),
        "payload": payload or {},
    }
    if summary:
        body["summary"] = summary
    print(json.dumps(body, ensure_ascii=False, indent=2, default=str))
    return exit_code


def structured_error(command: str, exc: WorkfocusError, *, status: str = "ERROR") -> int:
    """Error document whose exit code follows the error class."""
    return structured_response(
        command,
        status=status,
        message=exc.message,
        payload=exc.to_dict(),
        exit_code=exc.exit_code,
    )


__all__ = ["iso_timestamp", "structured_response", "structured_error"]
