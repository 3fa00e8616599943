"""Per-source, time-boxed cache for read-mostly remote data.

One JSON file per source under the cache directory. Entries are replaced
wholesale and never edited in place. Reads do not take the state lock, so a
reader may see a value a concurrent mutation is about to replace; that is
accepted. Files are last-write-wins.
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional

from workfocus.core import WorkfocusError
from .atomic import write_atomic_text

logger = logging.getLogger("workfocus.cache")

SOURCE_ITEM = "item"
SOURCE_TIMER = "timer"
SOURCE_CALENDAR = "calendar"
SOURCE_SCHEMA = "schema"

DEFAULT_TTLS: Dict[str, float] = {
    SOURCE_ITEM: 300,
    SOURCE_TIMER: 30,
    SOURCE_CALENDAR: 300,
    SOURCE_SCHEMA: 86400,
}


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    captured_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.captured_at

    def is_fresh(self, now: float, ttl: Optional[float] = None) -> bool:
        return self.age(now) <= (self.ttl if ttl is None else ttl)


@dataclass(frozen=True)
class CacheResult:
    value: Any
    captured_at: float
    from_cache: bool = False
    stale: bool = False
    error: Optional[WorkfocusError] = None


class CacheLayer:
    """Credential-aware cache: a change of identity drops what was stored under the old one."""

    def __init__(
        self,
        cache_dir: Path,
        ttls: Optional[Dict[str, float]] = None,
        identity_getter: Optional[Callable[[], Optional[str]]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.ttls = {**DEFAULT_TTLS, **(ttls or {})}
        self.identity_getter = identity_getter
        self.clock = clock
        self._data: Dict[str, Dict[str, CacheEntry]] = {}
        self._lock = Lock()

    def _path(self, source: str) -> Path:
        return self.cache_dir / f"{source}.json"

    def _identity_digest(self) -> str:
        identity = self.identity_getter() if self.identity_getter else ""
        return hashlib.sha1(identity.encode()).hexdigest() if identity else ""

    def _entries(self, source: str) -> Dict[str, CacheEntry]:
        with self._lock:
            if source in self._data:
                return self._data[source]
        entries: Dict[str, CacheEntry] = {}
        path = self._path(source)
        if path.exists():
            try:
                raw = json.loads(path.read_text(encoding="utf-8")) or {}
            except (OSError, ValueError) as exc:
                logger.debug("Ignoring unreadable cache file %s: %s", path, exc)
                raw = {}
            if not isinstance(raw, dict):
                raw = {}
            stored_digest = (raw.get("__meta__") or {}).get("identity") or ""
            current_digest = self._identity_digest()
            if stored_digest and current_digest and stored_digest != current_digest:
                path.unlink(missing_ok=True)
                raw = {}
            for key, item in (raw.get("entries") or {}).items():
                try:
                    entries[key] = CacheEntry(
                        value=item["value"],
                        captured_at=float(item["ts"]),
                        ttl=float(item.get("ttl", self.ttls.get(source, 300))),
                    )
                except (KeyError, TypeError, ValueError):
                    continue
        with self._lock:
            return self._data.setdefault(source, entries)

    def get(self, source: str, key: str) -> Optional[CacheEntry]:
        return self._entries(source).get(key)

    def put(self, source: str, key: str, value: Any, ttl: Optional[float] = None) -> CacheEntry:
        entries = self._entries(source)
        entry = CacheEntry(value=value, captured_at=self.clock(), ttl=self.ttls.get(source, 300) if ttl is None else ttl)
        with self._lock:
            entries[key] = entry
        self._persist(source)
        return entry

    def invalidate(self, source: str, key: Optional[str] = None) -> None:
        entries = self._entries(source)
        with self._lock:
            if key is None:
                entries.clear()
            else:
                entries.pop(key, None)
        self._persist(source)

    def get_or_refresh(
        self,
        source: str,
        key: str,
        ttl: Optional[float],
        fetch_fn: Callable[[], Any],
    ) -> CacheResult:
        """Cached value if younger than ttl, else fetch and store.

        A failed fetch falls back to the previous value marked stale; with
        nothing cached the error propagates.
        """
        limit = self.ttls.get(source, 300) if ttl is None else ttl
        entry = self.get(source, key)
        now = self.clock()
        if entry is not None and entry.is_fresh(now, limit):
            return CacheResult(value=entry.value, captured_at=entry.captured_at, from_cache=True)
        try:
            value = fetch_fn()
        except WorkfocusError as exc:
            if entry is None:
                raise
            logger.warning(
                "Refreshing %s/%s failed (%s); serving cached value %.0fs old",
                source,
                key,
                exc.message,
                entry.age(now),
            )
            return CacheResult(
                value=entry.value,
                captured_at=entry.captured_at,
                from_cache=True,
                stale=True,
                error=exc,
            )
        stored = self.put(source, key, value, ttl=limit)
        return CacheResult(value=value, captured_at=stored.captured_at)

    def _persist(self, source: str) -> None:
        with self._lock:
            entries = dict(self._data.get(source) or {})
        path = self._path(source)
        if not entries:
            path.unlink(missing_ok=True)
            return
        data = {
            "__meta__": {"identity": self._identity_digest(), "ts": self.clock()},
            "entries": {k: {"value": e.value, "ts": e.captured_at, "ttl": e.ttl} for k, e in entries.items()},
        }
        try:
            write_atomic_text(path, json.dumps(data, ensure_ascii=False))
        except OSError as exc:
            logger.warning("Could not write cache file %s: %s", path, exc)


__all__ = [
    "CacheEntry",
    "CacheLayer",
    "CacheResult",
    "DEFAULT_TTLS",
    "SOURCE_ITEM",
    "SOURCE_TIMER",
    "SOURCE_CALENDAR",
    "SOURCE_SCHEMA",
]
