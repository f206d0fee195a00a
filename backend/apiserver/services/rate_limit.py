"""In-memory sliding-window rate limiter keyed by API key.

Every admitted request leaves a timestamp under its key; a request is
admitted while fewer than ``limit`` timestamps fall inside the trailing
window. State lives in process memory and is shared by all requests, so the
whole prune/decide/append sequence runs under one lock.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

WINDOW_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of a single check, including the values reported to clients."""

    allowed: bool
    limit: int
    remaining: int
    reset: int  # unix seconds

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset),
        }


class SlidingWindowRateLimiter:
    def __init__(
        self,
        default_limit: int = 120,
        *,
        window_seconds: float = WINDOW_SECONDS,
        sweep_interval_seconds: float | None = 300.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if default_limit < 1:
            raise ValueError("default_limit must be at least 1")
        self._default_limit = default_limit
        self._window = float(window_seconds)
        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # key -> admission timestamps, oldest first
        self._requests: dict[str, deque[float]] = {}
        self._last_sweep = clock()

    @property
    def default_limit(self) -> int:
        return self._default_limit

    def check(self, key: str, limit: int | None = None) -> RateLimitDecision:
        """Admit or reject one request for ``key``.

        ``limit`` is the caller's per-minute quota; ``None`` falls back to the
        default. Rejected attempts leave the stored window unchanged.
        """

        quota = limit if limit is not None else self._default_limit
        with self._lock:
            now = self._clock()
            window_start = now - self._window
            # window_start + window, i.e. "now" in whole unix seconds
            reset = int(now)

            timestamps = self._requests.get(key)
            if timestamps is None:
                timestamps = deque()
            _prune(timestamps, window_start)

            if len(timestamps) >= quota:
                if timestamps:
                    self._requests[key] = timestamps
                self._maybe_sweep(now)
                return RateLimitDecision(allowed=False, limit=quota, remaining=0, reset=reset)

            timestamps.append(now)
            self._requests[key] = timestamps
            self._maybe_sweep(now)
            return RateLimitDecision(
                allowed=True,
                limit=quota,
                remaining=max(0, quota - len(timestamps)),
                reset=reset,
            )

    def usage(self, key: str) -> int:
        """Number of admissions for ``key`` still inside the window."""

        with self._lock:
            timestamps = self._requests.get(key)
            if not timestamps:
                return 0
            _prune(timestamps, self._clock() - self._window)
            return len(timestamps)

    def sweep(self) -> int:
        """Drop keys with no admissions left in the window; return how many."""

        with self._lock:
            return self._sweep(self._clock())

    def reset(self, key: str | None = None) -> None:
        with self._lock:
            if key is None:
                self._requests.clear()
            else:
                self._requests.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._requests)

    def _maybe_sweep(self, now: float) -> None:
        if self._sweep_interval is None:
            return
        if now - self._last_sweep >= self._sweep_interval:
            self._sweep(now)

    def _sweep(self, now: float) -> int:
        window_start = now - self._window
        stale = []
        for key, timestamps in self._requests.items():
            _prune(timestamps, window_start)
            if not timestamps:
                stale.append(key)
        for key in stale:
            del self._requests[key]
        self._last_sweep = now
        return len(stale)


def _prune(timestamps: deque[float], window_start: float) -> None:
    # A timestamp counts only while strictly newer than the window start.
    while timestamps and timestamps[0] <= window_start:
        timestamps.popleft()


__all__ = ["RateLimitDecision", "SlidingWindowRateLimiter", "WINDOW_SECONDS"]
