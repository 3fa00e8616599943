from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from workfocus.core import ConfigError, WorkHours
from workfocus.core.clock import WEEKDAYS


def workfocus_home() -> Path:
    env_home = os.environ.get("WORKFOCUS_HOME")
    if env_home:
        return Path(env_home).expanduser()
    return Path.home() / ".workfocus"


def config_path() -> Path:
    env_path = os.environ.get("WORKFOCUS_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return workfocus_home() / "config.yaml"


def _load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    target = path or config_path()
    if not target.exists():
        return {}
    try:
        data = yaml.safe_load(target.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config {target}: {exc}", path=str(target)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {target} must be a mapping", path=str(target))
    return data


def _save_config(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    target = path or config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")


def get_value(key: str, path: Optional[Path] = None) -> Any:
    node: Any = _load_config(path)
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def _parse_value(text: str) -> Any:
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError:
        return text
    # YAML 1.1 reads "17:00" as the base-60 integer 1020
    if isinstance(parsed, int) and not isinstance(parsed, bool) and ":" in text:
        return text
    return parsed


def set_value(key: str, value: Any, path: Optional[Path] = None) -> None:
    """Set a dotted key; the result must still validate."""
    data = _load_config(path)
    node = data
    parts = key.split(".")
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    if value is None or value == "":
        node.pop(parts[-1], None)
    else:
        node[parts[-1]] = _parse_value(value) if isinstance(value, str) else value
    Settings.from_dict(data)
    _save_config(data, path)


@dataclass
class TrackerSettings:
    organization: str = ""
    project: str = ""
    base_url: str = ""
    api_version: str = "7.0"
    blocked_states: List[str] = field(default_factory=lambda: ["Blocked", "On Hold"])

    @property
    def url(self) -> str:
        return (self.base_url or f"https://dev.azure.com/{self.organization}").rstrip("/")

    def require(self) -> None:
        if not self.organization or not self.project:
            raise ConfigError(
                "tracker.organization and tracker.project must be set (workfocus config set tracker.organization ...)",
                key="tracker",
            )


@dataclass
class TimerSettings:
    base_url: str = ""

    def url(self, organization: str) -> str:
        return (self.base_url or f"https://api.timehub.7pace.com/{organization}").rstrip("/")


@dataclass
class CalendarSettings:
    base_url: str = "https://graph.microsoft.com/v1.0"
    category: str = "Focus Block"


@dataclass
class FocusSettings:
    duration_minutes: int = 45
    interval_minutes: int = 15
    max_lookahead_days: int = 5
    allow_truncate: bool = False
    min_fraction: float = 0.5
    subject_prefix: str = "Focus:"

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def granularity(self) -> timedelta:
        return timedelta(minutes=self.interval_minutes)


@dataclass
class StateSettings:
    task_expiry_hours: float = 24
    state_dir: Optional[Path] = None
    lock_timeout: Optional[float] = None

    @property
    def directory(self) -> Path:
        return self.state_dir or workfocus_home()

    @property
    def state_path(self) -> Path:
        return self.directory / "state.json"

    @property
    def lock_path(self) -> Path:
        return self.directory / "state.lock"


@dataclass
class CacheSettings:
    dir: Optional[Path] = None
    ttl_seconds: Dict[str, float] = field(default_factory=dict)

    @property
    def directory(self) -> Path:
        return self.dir or (workfocus_home() / "cache")


@dataclass
class HttpSettings:
    timeout: float = 30
    max_attempts: int = 3


@dataclass
class Settings:
    tracker: TrackerSettings = field(default_factory=TrackerSettings)
    timer: TimerSettings = field(default_factory=TimerSettings)
    calendar: CalendarSettings = field(default_factory=CalendarSettings)
    work_hours: WorkHours = field(default_factory=lambda: WorkHours.parse("08:30", "17:00"))
    focus: FocusSettings = field(default_factory=FocusSettings)
    state: StateSettings = field(default_factory=StateSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    http: HttpSettings = field(default_factory=HttpSettings)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        tracker = _section(data, "tracker")
        timer = _section(data, "timer")
        calendar = _section(data, "calendar")
        hours = _section(data, "work_hours")
        focus = _section(data, "focus_blocks")
        state = _section(data, "state")
        cache = _section(data, "cache")
        http = _section(data, "http")

        settings = cls(
            tracker=TrackerSettings(
                organization=str(tracker.get("organization") or ""),
                project=str(tracker.get("project") or ""),
                base_url=str(tracker.get("base_url") or ""),
                api_version=str(tracker.get("api_version") or "7.0"),
                blocked_states=_str_list(tracker.get("blocked_states"), ["Blocked", "On Hold"], "tracker.blocked_states"),
            ),
            timer=TimerSettings(base_url=str(timer.get("base_url") or "")),
            calendar=CalendarSettings(
                base_url=str(calendar.get("base_url") or CalendarSettings.base_url),
                category=str(calendar.get("category") or CalendarSettings.category),
            ),
            work_hours=WorkHours.parse(
                _clock_text(hours.get("start", "08:30")),
                _clock_text(hours.get("end", "17:00")),
                str(hours.get("timezone", "UTC")),
                _str_list(hours.get("workdays"), list(WEEKDAYS[:5]), "work_hours.workdays"),
            ),
            focus=FocusSettings(
                duration_minutes=_number(focus, "duration_minutes", 45, int, "focus_blocks"),
                interval_minutes=_number(focus, "interval_minutes", 15, int, "focus_blocks"),
                max_lookahead_days=_number(focus, "max_lookahead_days", 5, int, "focus_blocks", allow_zero=True),
                allow_truncate=bool(focus.get("allow_truncate", False)),
                min_fraction=_number(focus, "min_fraction", 0.5, float, "focus_blocks"),
                subject_prefix=str(focus.get("subject_prefix", "Focus:")),
            ),
            state=StateSettings(
                task_expiry_hours=_number(state, "task_expiry_hours", 24, float, "state"),
                state_dir=Path(state["state_dir"]).expanduser() if state.get("state_dir") else None,
                lock_timeout=_number(state, "lock_timeout", None, float, "state", allow_zero=True),
            ),
            cache=CacheSettings(
                dir=Path(cache["dir"]).expanduser() if cache.get("dir") else None,
                ttl_seconds={
                    str(k): _number(cache.get("ttl_seconds") or {}, k, 0, float, "cache.ttl_seconds", allow_zero=True)
                    for k in (cache.get("ttl_seconds") or {})
                },
            ),
            http=HttpSettings(
                timeout=_number(http, "timeout", 30, float, "http"),
                max_attempts=_number(http, "max_attempts", 3, int, "http"),
            ),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        focus = self.focus
        if (24 * 60) % focus.interval_minutes:
            raise ConfigError(
                f"focus_blocks.interval_minutes={focus.interval_minutes} must divide a day evenly",
                key="focus_blocks.interval_minutes",
            )
        if not 0 < focus.min_fraction <= 1:
            raise ConfigError("focus_blocks.min_fraction must be in (0, 1]", key="focus_blocks.min_fraction")


def load_settings(path: Optional[Path] = None) -> Settings:
    return Settings.from_dict(_load_config(path))


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping", key=name)
    return value


def _clock_text(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return f"{value // 60:02d}:{value % 60:02d}"
    return str(value)


def _str_list(value: Any, default: List[str], key: str) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        value = [v for v in value.split(",")]
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"{key} must be a list", key=key)
    return [str(v).strip() for v in value if str(v).strip()]


def _number(section: Dict[str, Any], name: str, default: Any, kind: type, prefix: str, allow_zero: bool = False) -> Any:
    raw = section.get(name, default)
    if raw is None:
        return None
    key = f"{prefix}.{name}"
    if isinstance(raw, bool):
        raise ConfigError(f"{key} must be a number", key=key)
    try:
        value = kind(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}", key=key) from exc
    if value < 0 or (value == 0 and not allow_zero):
        raise ConfigError(f"{key} must be positive, got {raw!r}", key=key)
    return value


__all__ = [
    "Settings",
    "TrackerSettings",
    "TimerSettings",
    "CalendarSettings",
    "FocusSettings",
    "StateSettings",
    "CacheSettings",
    "HttpSettings",
    "load_settings",
    "get_value",
    "set_value",
    "config_path",
    "workfocus_home",
]
