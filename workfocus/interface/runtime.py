"""Builds the concrete services behind the CLI from Settings."""

import hashlib
from dataclasses import dataclass
from typing import Optional

import requests

from workfocus.application.coordinator import LifecycleSettings, TaskCoordinator
from workfocus.application.queries import TaskQueries
from workfocus.application.scheduler import SlotPolicy
from workfocus.config import Settings, workfocus_home
from workfocus.core import SystemClock
from workfocus.infrastructure.cache import CacheLayer
from workfocus.infrastructure.calendar_client import GraphCalendarClient
from workfocus.infrastructure.rate_limiter import RateLimiter
from workfocus.infrastructure.secret_store import FileSecretStore
from workfocus.infrastructure.state_store import FileStateStore
from workfocus.infrastructure.timer_client import PaceTimerClient
from workfocus.infrastructure.tracker_client import DevOpsTrackerClient


@dataclass
class Services:
    settings: Settings
    secrets: FileSecretStore
    clock: SystemClock
    store: FileStateStore
    cache: CacheLayer
    coordinator: TaskCoordinator
    queries: TaskQueries


def lifecycle_settings(settings: Settings) -> LifecycleSettings:
    focus = settings.focus
    return LifecycleSettings(
        expiry_hours=settings.state.task_expiry_hours,
        focus_duration=focus.duration,
        granularity=focus.granularity,
        slot_policy=SlotPolicy(
            max_lookahead_days=focus.max_lookahead_days,
            allow_truncate=focus.allow_truncate,
            min_fraction=focus.min_fraction,
        ),
        subject_prefix=focus.subject_prefix,
        blocked_states=tuple(settings.tracker.blocked_states),
    )


def secret_store() -> FileSecretStore:
    return FileSecretStore(workfocus_home() / "credentials.yaml")


def build_services(settings: Settings, session: Optional[requests.Session] = None) -> Services:
    secrets = secret_store()
    clock = SystemClock(settings.work_hours)
    http = session or requests.Session()
    timeout = settings.http.timeout
    attempts = settings.http.max_attempts

    def timer_token() -> str:
        return secrets.find("timer.token") or secrets.get("tracker.pat")

    tracker = DevOpsTrackerClient(
        settings.tracker.url,
        settings.tracker.project,
        lambda: secrets.get("tracker.pat"),
        session=http,
        rate_limiter=RateLimiter(),
        api_version=settings.tracker.api_version,
        timeout=timeout,
        max_attempts=attempts,
    )
    timer = PaceTimerClient(
        settings.timer.url(settings.tracker.organization),
        timer_token,
        session=http,
        rate_limiter=RateLimiter(),
        timeout=timeout,
        max_attempts=attempts,
    )
    calendar = GraphCalendarClient(
        settings.calendar.base_url,
        lambda: secrets.get("calendar.token"),
        session=http,
        rate_limiter=RateLimiter(),
        category=settings.calendar.category,
        timeout=timeout,
        max_attempts=attempts,
    )

    def identity() -> str:
        # organization plus a digest of the PAT: a new account or token drops old entries
        pat = secrets.find("tracker.pat") or ""
        return f"{settings.tracker.organization}:{hashlib.sha256(pat.encode()).hexdigest()}" if pat else ""

    cache = CacheLayer(settings.cache.directory, ttls=settings.cache.ttl_seconds, identity_getter=identity)
    store = FileStateStore(
        settings.state.state_path,
        clock,
        lock_path=settings.state.lock_path,
        lock_timeout=settings.state.lock_timeout,
    )
    policy = lifecycle_settings(settings)
    coordinator = TaskCoordinator(store, tracker, timer, calendar, clock, cache=cache, settings=policy)
    store.on_expired = coordinator.stop_expired
    queries = TaskQueries(store, tracker, calendar, clock, cache, settings=policy, timer=timer)
    return Services(settings, secrets, clock, store, cache, coordinator, queries)


__all__ = ["Services", "build_services", "lifecycle_settings", "secret_store"]
