from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from workfocus.core import StopReason, TimerInfo, ValidationError, validate_item_id
from workfocus.core.errors import REMOTE_DECODE, SOURCE_TIMER, RemoteError
from workfocus.core.timestamps import format_ts
from .http import RestClient
from .rate_limiter import RateLimiter
from .tracker_client import basic_auth_header

TRACKING = "_apis/api/tracking/client"


class PaceTimerClient:
    """7pace Timetracker client: live tracking plus manual worklogs."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 30,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        rest: Optional[RestClient] = None,
    ) -> None:
        self.clock = clock
        self.rest = rest or RestClient(
            SOURCE_TIMER,
            base_url,
            session,
            lambda: basic_auth_header(token_provider()),
            rate_limiter=rate_limiter,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    def start(self, item_id: int, comment: Optional[str] = None) -> TimerInfo:
        validate_item_id(item_id)
        payload = self.rest.post(f"{TRACKING}/startTracking", json={"workItemId": item_id, "comment": comment})
        return _timer(payload)

    def stop(self, reason: StopReason = StopReason.COMPLETED) -> int:
        payload = self.rest.post(f"{TRACKING}/stopTracking/{int(reason)}") or {}
        try:
            return int(payload.get("duration") or 0)
        except (TypeError, ValueError) as exc:
            raise RemoteError(f"timer stop returned bad duration: {payload!r}", SOURCE_TIMER, REMOTE_DECODE) from exc

    def get_current(self) -> Optional[TimerInfo]:
        payload = self.rest.get(f"{TRACKING}/current")
        if not payload:
            return None
        return _timer(payload)

    def log_manual(self, item_id: int, hours: float, comment: Optional[str] = None) -> Dict[str, Any]:
        validate_item_id(item_id)
        if hours <= 0:
            raise ValidationError(f"Hours must be positive, got {hours}", item=item_id)
        body = {
            "workItemId": item_id,
            "duration": int(round(hours * 3600)),
            "timestamp": format_ts(self.clock()),
            "comment": comment,
        }
        return self.rest.post("_apis/worklogs", json=body) or {}

    def list_worklogs(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        payload = self.rest.get("_apis/worklogs", params={"startDate": format_ts(start), "endDate": format_ts(end)})
        if isinstance(payload, dict):
            payload = payload.get("value") or []
        return list(payload or [])


def _timer(payload: Any) -> TimerInfo:
    try:
        return TimerInfo.from_api(payload)
    except (KeyError, TypeError, ValueError) as exc:
        raise RemoteError(f"timer returned an unexpected payload: {payload!r}", SOURCE_TIMER, REMOTE_DECODE) from exc


__all__ = ["PaceTimerClient"]
