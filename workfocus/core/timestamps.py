import re
from datetime import datetime, timezone
from typing import Optional

# Graph returns seven fractional digits ("09:00:00.0000000"); datetime accepts six.
_LONG_FRACTION = re.compile(r"(\.\d{6})\d+")


def format_ts(value: datetime) -> str:
    return value.isoformat()


def parse_ts(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    text = _LONG_FRACTION.sub(r"\1", str(value).strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_optional_ts(value: Optional[str]) -> Optional[datetime]:
    return parse_ts(value) if value else None
