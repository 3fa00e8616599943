"""File-backed State Store guarded by a cross-process lock.

Layout: one JSON state file plus a sibling lock file. Every mutation runs
under an exclusive, blocking filelock; the lock is held for the whole
operation, remote calls included. A second process waits its turn.
"""

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from filelock import FileLock, Timeout

from workfocus.core import LockError, State, StateCorruption, TaskSession, WorkfocusError
from workfocus.application.ports import Clock
from .atomic import write_atomic_text

logger = logging.getLogger("workfocus.state")

R = TypeVar("R")
ExpiryHook = Callable[[TaskSession], Optional[Dict[str, Any]]]


@dataclass
class LockedState:
    """What a transformation sees while the lock is held."""

    state: State
    now: datetime
    dry_run: bool = False
    expired: Optional[TaskSession] = None
    expiry_stop: Optional[Dict[str, Any]] = None
    notes: list = field(default_factory=list)

    @property
    def recovered(self) -> Optional[StateCorruption]:
        return self.state.recovered


class FileStateStore:
    def __init__(
        self,
        state_path: Path,
        clock: Clock,
        lock_path: Optional[Path] = None,
        lock_timeout: Optional[float] = None,
        on_expired: Optional[ExpiryHook] = None,
    ) -> None:
        self.state_path = Path(state_path)
        self.lock_path = Path(lock_path) if lock_path else self.state_path.with_suffix(".lock")
        self.clock = clock
        self.lock_timeout = lock_timeout
        self.on_expired = on_expired

    def load(self, recover: bool = True) -> State:
        """Current state; empty when missing; emptied when unreadable.

        With recover, an unreadable file is moved aside. Callers that do not
        hold the lock pass recover=False: the file is left in place and the
        problem is only reported on the returned state.
        """
        if not self.state_path.exists():
            return State()
        try:
            raw = self.state_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return self._recover(exc) if recover else self._unreadable(exc)
        if not raw.strip():
            return State()
        try:
            return State.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError, WorkfocusError) as exc:
            return self._recover(exc) if recover else self._unreadable(exc)

    def save(self, state: State) -> None:
        payload = json.dumps(state.to_dict(), indent=2, ensure_ascii=False) + "\n"
        try:
            write_atomic_text(self.state_path, payload)
        except OSError as exc:
            raise WorkfocusError(f"Could not write state file {self.state_path}: {exc}", path=str(self.state_path)) from exc

    def mutate_under_lock(self, fn: Callable[[LockedState], R], *, dry_run: bool = False) -> R:
        """Run fn against freshly loaded state; persist only if fn returns normally.

        Expired sessions are cleared (and persisted) before fn runs. In dry-run
        mode nothing is written and the expiry is only reported.
        """
        with self._locked():
            ctx = LockedState(state=self.load(), now=self.clock.now(), dry_run=dry_run)
            expired = ctx.state.expire(ctx.now)
            if expired is not None:
                ctx.expired = expired
                logger.info("Session for item %s expired at %s; clearing", expired.item_id, expired.expires_at)
                if not dry_run:
                    self.save(ctx.state)
                    ctx.expiry_stop = self._stop_expired(expired)
            result = fn(ctx)
            if not dry_run:
                self.save(ctx.state)
            return result

    def _stop_expired(self, session: TaskSession) -> Optional[Dict[str, Any]]:
        if not session.timer_handle or self.on_expired is None:
            return None
        try:
            return self.on_expired(session)
        except WorkfocusError as exc:
            logger.warning("Best-effort stop of expired timer %s failed: %s", session.timer_handle, exc)
            return {"stopped": False, "error": exc.to_dict()}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            lock = FileLock(str(self.lock_path), timeout=-1 if self.lock_timeout is None else self.lock_timeout)
            lock.acquire()
        except Timeout as exc:
            raise LockError(
                f"Timed out after {self.lock_timeout}s waiting for {self.lock_path}. "
                "If no other workfocus process is running, remove the lock file by hand.",
                lock=str(self.lock_path),
            ) from exc
        except OSError as exc:
            raise LockError(f"Cannot acquire state lock {self.lock_path}: {exc}", lock=str(self.lock_path)) from exc
        try:
            yield
        finally:
            lock.release()

    def _recover(self, exc: Exception) -> State:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        backup = self.state_path.with_name(f"{self.state_path.name}.corrupt-{stamp}.bak")
        try:
            os.replace(str(self.state_path), str(backup))
        except OSError as move_exc:
            raise StateCorruption(
                f"State file {self.state_path} is unreadable and could not be moved aside: {move_exc}",
                path=str(self.state_path),
            ) from exc
        logger.warning("State file %s is unreadable (%s); moved to %s and starting empty", self.state_path, exc, backup)
        state = State()
        state.recovered = StateCorruption(f"State file was unreadable: {exc}", backup_path=str(backup))
        return state

    def _unreadable(self, exc: Exception) -> State:
        logger.warning("State file %s is unreadable (%s); left in place", self.state_path, exc)
        state = State()
        state.recovered = StateCorruption(f"State file is unreadable: {exc}", path=str(self.state_path))
        return state


__all__ = ["FileStateStore", "LockedState"]
