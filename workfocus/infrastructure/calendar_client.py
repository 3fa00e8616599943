import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import requests

from workfocus.core import CalendarEvent
from workfocus.core.errors import REMOTE_DECODE, SOURCE_CALENDAR, RemoteError
from workfocus.core.timestamps import parse_ts
from .http import RestClient
from .rate_limiter import RateLimiter

GRAPH_TIME = "%Y-%m-%dT%H:%M:%S"
_OFFSET = re.compile(r"(Z|[+-]\d{2}:?\d{2})$")


def graph_datetime(moment: datetime) -> Dict[str, str]:
    return {"dateTime": moment.astimezone(timezone.utc).strftime(GRAPH_TIME), "timeZone": "UTC"}


def parse_graph_datetime(value: Dict[str, Any]) -> datetime:
    """Graph dateTimeTimeZone pair. UTC is requested, but IANA zones are honoured."""
    text = str(value["dateTime"])
    zone = (value.get("timeZone") or "UTC").strip()
    if zone.upper() in ("UTC", "Z"):
        return parse_ts(text)
    try:
        tz = ZoneInfo(zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"unsupported timeZone {zone!r}") from exc
    moment = parse_ts(text)
    if _OFFSET.search(text):
        return moment
    return moment.replace(tzinfo=tz)


class GraphCalendarClient:
    """Microsoft Graph calendar client for the signed-in user."""

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], str],
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        category: str = "Focus Block",
        timeout: float = 30,
        max_attempts: int = 3,
        rest: Optional[RestClient] = None,
    ) -> None:
        self.category = category
        self.rest = rest or RestClient(
            SOURCE_CALENDAR,
            base_url,
            session,
            lambda: {"Authorization": f"Bearer {token_provider()}", "Prefer": 'outlook.timezone="UTC"'},
            rate_limiter=rate_limiter,
            timeout=timeout,
            max_attempts=max_attempts,
        )

    def list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        params: Optional[Dict[str, Any]] = {
            "startDateTime": start.astimezone(timezone.utc).isoformat(),
            "endDateTime": end.astimezone(timezone.utc).isoformat(),
            "$select": "id,subject,start,end,categories,showAs,isCancelled",
            "$top": 100,
        }
        path = "me/calendarView"
        events: List[CalendarEvent] = []
        while path:
            payload = self.rest.get(path, params=params) or {}
            for raw in payload.get("value") or []:
                if raw.get("isCancelled") or raw.get("showAs") == "free":
                    continue
                events.append(_event(raw))
            path = payload.get("@odata.nextLink") or ""
            params = None
        events.sort(key=lambda e: (e.start, e.end))
        return events

    def create_event(self, start: datetime, end: datetime, subject: str, metadata: Dict[str, Any]) -> str:
        lines = [f"{key}: {value}" for key, value in metadata.items() if value is not None]
        body = {
            "subject": subject,
            "start": graph_datetime(start),
            "end": graph_datetime(end),
            "categories": [self.category],
            "showAs": "busy",
            "body": {"contentType": "text", "content": "\n".join(lines)},
        }
        payload = self.rest.post("me/events", json=body) or {}
        event_id = payload.get("id")
        if not event_id:
            raise RemoteError("calendar did not return an event id", SOURCE_CALENDAR, REMOTE_DECODE)
        return str(event_id)

    def delete_event(self, event_id: str) -> None:
        self.rest.request("DELETE", f"me/events/{event_id}")


def _event(raw: Dict[str, Any]) -> CalendarEvent:
    try:
        return CalendarEvent(
            start=parse_graph_datetime(raw["start"]),
            end=parse_graph_datetime(raw["end"]),
            event_id=raw.get("id"),
            subject=raw.get("subject") or "",
            categories=tuple(raw.get("categories") or ()),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise RemoteError(f"calendar returned an unreadable event: {exc}", SOURCE_CALENDAR, REMOTE_DECODE) from exc


__all__ = ["GraphCalendarClient", "graph_datetime", "parse_graph_datetime"]
