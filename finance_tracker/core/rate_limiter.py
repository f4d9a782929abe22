"""
Fixed-window call counter per operation key.

Windows reset on first use after they expire rather than sliding; external
LLM quotas only need approximate fairness. Counters live in memory, so a
process restart resets every quota.
"""
import threading
import time
from dataclasses import dataclass

DEFAULT_WINDOW_SECONDS = 60.0

PDF_PROCESSING = "PDF_PROCESSING"
PDF_PROCESSING_CHECK = "PDF_PROCESSING_CHECK"

RATE_LIMITS = {
    PDF_PROCESSING: 30,
    PDF_PROCESSING_CHECK: 30,
    "GENERAL_INSIGHTS": 20,
    "CUSTOM_QUESTIONS": 15,
    "GOAL_ADVICE": 25,
}


@dataclass
class _Window:
    count: int
    started_at: float


class RateLimiter:
    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def can_proceed(self, key: str, limit: int, window_seconds: float = DEFAULT_WINDOW_SECONDS, cost: int = 1) -> bool:
        """
        Consume `cost` units of `key` if the current window allows it.

        Returns False without touching the counter when the units would
        exceed `limit`.
        """
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now - window.started_at > window_seconds:
                window = _Window(count=0, started_at=now)
                self._windows[key] = window

            if window.count + cost > limit:
                return False
            window.count += cost
            return True

    def get_remaining_quota(self, key: str, limit: int, window_seconds: float | None = None) -> int:
        # Without window_seconds an expired window still reports its old count
        # until the next can_proceed() resets it.
        with self._lock:
            window = self._windows.get(key)
            if window is None:
                return limit
            if window_seconds is not None and self._clock() - window.started_at > window_seconds:
                return limit
            return max(0, limit - window.count)

    def reset(self, key: str) -> None:
        with self._lock:
            window = self._windows.get(key)
            if window is not None:
                window.count = 0
                window.started_at = self._clock()
