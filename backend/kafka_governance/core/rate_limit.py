from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from threading import Lock
import time


@dataclass(frozen=True)
class LockoutDecision:
    locked: bool
    retry_after_seconds: int


class FailedLoginLimiter:
    """
    Locks a key out once it collects max_failures failed logins inside the window.
    A successful login clears the key.
    """

    def __init__(self, *, max_failures: int, window_seconds: int):
        self._max_failures = max(1, int(max_failures))
        self._window_seconds = max(1, int(window_seconds))
        self._failures: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def _prune(self, key: str, now: float) -> deque[float]:
        failures = self._failures[key]
        cutoff = now - self._window_seconds
        while failures and failures[0] <= cutoff:
            failures.popleft()
        return failures

    def check(self, key: str) -> LockoutDecision:
        now = time.monotonic()
        with self._lock:
            failures = self._prune(key, now)
            if len(failures) < self._max_failures:
                return LockoutDecision(locked=False, retry_after_seconds=0)
            retry_after = max(1, int(self._window_seconds - (now - failures[0])))
            return LockoutDecision(locked=True, retry_after_seconds=retry_after)

    def record_failure(self, key: str) -> None:
        now = time.monotonic()
        with self._lock:
            self._prune(key, now).append(now)

    def clear(self, key: str) -> None:
        with self._lock:
            self._failures.pop(key, None)
