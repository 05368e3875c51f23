"""Process-wide backoff gate for login and protected calls.

delay(n) = min(base * 2**(n-1), cap); a larger caller-suggested minimum wins.
State lives in memory only and starts clean on every process start.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .logger import Logger

log = Logger.bind(__name__)

DEFAULT_BASE = 5 * 60.0
DEFAULT_CAP = 6 * 60 * 60.0
MAX_FAILURES = 10

# suggested minimum delays (seconds) per failure kind
CAPTCHA_DELAY = 60 * 60.0
SUSPICIOUS_DELAY = 60 * 60.0
REJECTED_DELAY = 15 * 60.0
ERROR_DELAY = 10 * 60.0


@dataclass(frozen=True)
class BackoffState:
    failures: int = 0
    resume_not_before: float = 0.0
    last_reason: str = ''


class BackoffController:

    def __init__(self, base: float = DEFAULT_BASE, cap: float = DEFAULT_CAP,
                 clock: Callable[[], float] = time.time):
        self.base = base
        self.cap = cap
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BackoffState()

    def delay_for(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        return min(self.base * (2 ** (failures - 1)), self.cap)

    def may_proceed(self) -> bool:
        return self._clock() >= self._state.resume_not_before

    def remaining(self) -> float:
        return max(0.0, self._state.resume_not_before - self._clock())

    def snapshot(self) -> BackoffState:
        return self._state

    def record_failure(self, reason: str, suggested_delay: Optional[float] = None) -> float:
        """Count a failure and push the resume time out. Returns the delay applied."""
        with self._lock:
            state = self._state
            failures = min(state.failures + 1, MAX_FAILURES)
            delay = max(self.delay_for(failures), suggested_delay or 0.0)
            resume = max(state.resume_not_before, self._clock() + delay)
            self._state = BackoffState(failures=failures, resume_not_before=resume, last_reason=reason or 'unknown')
        log.warn(f"[Backoff] {reason}. Next try in ~{int(-(-delay // 60))} min (failures={failures}).")
        return delay

    def release(self, reason: str = '') -> None:
        """Open the gate now. The failure count is kept, so the next failure still escalates."""
        with self._lock:
            state = self._state
            now = self._clock()
            if state.resume_not_before <= now:
                return
            self._state = BackoffState(failures=state.failures, resume_not_before=now, last_reason=state.last_reason)
        log.info(f"[Backoff] lifted early ({reason or 'manual'}), failures={state.failures}")

    def record_success(self) -> None:
        with self._lock:
            had_failures = self._state.failures
            self._state = BackoffState()
        if had_failures:
            log.info(f"[Backoff] cleared after {had_failures} failure(s)")


_default_lock = threading.Lock()
_default: Optional[BackoffController] = None


def get_backoff(base: float = DEFAULT_BASE, cap: float = DEFAULT_CAP) -> BackoffController:
    """Shared controller for every client in this process.

    ``base`` and ``cap`` only apply to the first call, which creates it.
    """
    global _default
    with _default_lock:
        if _default is None:
            _default = BackoffController(base=base, cap=cap)
        return _default


def reset_backoff() -> None:
    global _default
    with _default_lock:
        _default = None


__all__ = [
    "BackoffController",
    "BackoffState",
    "get_backoff",
    "reset_backoff",
    "CAPTCHA_DELAY",
    "SUSPICIOUS_DELAY",
    "REJECTED_DELAY",
    "ERROR_DELAY",
]
