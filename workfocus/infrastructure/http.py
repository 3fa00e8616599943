import logging
import random
import time
from typing import Any, Callable, Dict, Optional

import requests

from workfocus.core import AuthError, RemoteError
from workfocus.core.errors import REMOTE_DECODE, REMOTE_NETWORK, REMOTE_REJECTED, REMOTE_SERVER, REMOTE_TIMEOUT
from .rate_limiter import RateLimiter

logger = logging.getLogger("workfocus.http")

BASE_DELAY = 0.1


class RestClient:
    """JSON-over-HTTP transport shared by the service clients.

    Only requests flagged read_only are retried; a write that may have reached
    the server is never replayed.
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        session: Optional[requests.Session],
        auth_header_provider: Callable[[], Dict[str, str]],
        rate_limiter: Optional[RateLimiter] = None,
        timeout: float = 30,
        max_attempts: int = 3,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.auth_header_provider = auth_header_provider
        self.rate_limiter = rate_limiter or RateLimiter()
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.sleep = sleep

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        read_only: bool = False,
    ) -> Any:
        merged = {"Accept": "application/json", **self.auth_header_provider(), **(headers or {})}
        url = self.url(path)
        attempts = self.max_attempts if read_only else 1
        attempt = 0
        delay = BASE_DELAY
        while True:
            attempt += 1
            try:
                return self._send(method, url, json=json, params=params, headers=merged)
            except RemoteError as exc:
                if not exc.retryable or attempt >= attempts:
                    raise
                logger.info("%s %s failed (%s), retry %s/%s", method, url, exc.message, attempt, attempts - 1)
                self.sleep(delay + random.uniform(0, delay))
                delay *= 2

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params, read_only=True)

    def post(self, path: str, json: Any = None, *, read_only: bool = False, **kwargs: Any) -> Any:
        return self.request("POST", path, json=json, read_only=read_only, **kwargs)

    def _send(self, method: str, url: str, **kwargs: Any) -> Any:
        self.rate_limiter.acquire()
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as exc:
            raise RemoteError(f"{self.source} request timed out: {exc}", self.source, REMOTE_TIMEOUT) from exc
        except requests.RequestException as exc:
            raise RemoteError(f"{self.source} network error: {exc}", self.source, REMOTE_NETWORK) from exc
        self.rate_limiter.update(response.headers)
        status = response.status_code
        if status in (401, 403):
            raise AuthError(f"{self.source} rejected credentials (HTTP {status})", source=self.source, status=status)
        if status == 429 or status >= 500:
            raise RemoteError(
                f"{self.source} unavailable: HTTP {status}", self.source, REMOTE_SERVER, status=status
            )
        if status >= 400:
            raise RemoteError(
                f"{self.source} error: HTTP {status} {_excerpt(response.text)}",
                self.source,
                REMOTE_REJECTED,
                status=status,
            )
        if status == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteError(
                f"{self.source} returned invalid JSON: {_excerpt(response.text)}",
                self.source,
                REMOTE_DECODE,
                status=status,
            ) from exc


def _excerpt(text: Optional[str], limit: int = 200) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit] + "..."


__all__ = ["RestClient"]
