import logging
import time
from email.utils import parsedate_to_datetime
from threading import Lock
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger("workfocus.http")


class RateLimiter:
    """Thread-safe limiter fed by Retry-After and X-RateLimit-* response headers."""

    def __init__(self, clock: Callable[[], float] = time.time, sleep: Callable[[float], None] = time.sleep) -> None:
        self._lock = Lock()
        self._next_ts = 0.0
        self.clock = clock
        self.sleep = sleep
        self.last_remaining: Optional[int] = None
        self.last_reset_epoch: Optional[float] = None
        self.last_wait: float = 0.0

    def acquire(self) -> None:
        while True:
            with self._lock:
                wait = self._next_ts - self.clock()
            if wait <= 0:
                return
            self.sleep(min(wait, 2.0))

    def update(self, headers: Mapping[str, Any]) -> None:
        remaining = _header(headers, "X-RateLimit-Remaining")
        reset = _header(headers, "X-RateLimit-Reset")
        retry_after = _header(headers, "Retry-After")
        with self._lock:
            now = self.clock()
            if retry_after:
                delay = _retry_after_seconds(retry_after, now)
                if delay is not None:
                    self._next_ts = max(self._next_ts, now + delay)
            if remaining is not None:
                try:
                    self.last_remaining = int(float(remaining))
                except ValueError:
                    self.last_remaining = None
                if self.last_remaining is not None and self.last_remaining <= 1:
                    reset_ts = _float(reset)
                    if reset_ts is not None and reset_ts > now:
                        self._next_ts = max(self._next_ts, reset_ts)
                        self.last_reset_epoch = reset_ts
                    else:
                        self._next_ts = max(self._next_ts, now + 60)
            if reset and self.last_reset_epoch is None:
                self.last_reset_epoch = _float(reset)
            self.last_wait = max(0.0, self._next_ts - now)
            if self.last_wait:
                logger.info("Rate limited; next request in %.1fs", self.last_wait)


def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return None if value is None else str(value)


def _float(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _retry_after_seconds(value: str, now: float) -> Optional[float]:
    seconds = _float(value)
    if seconds is not None:
        return max(0.0, seconds)
    try:
        return max(0.0, parsedate_to_datetime(value).timestamp() - now)
    except (TypeError, ValueError):
        return None


__all__ = ["RateLimiter"]
