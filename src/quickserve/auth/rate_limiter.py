"""In-memory fixed window rate limiter for customer-facing routes."""

from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock


@dataclass
class RateWindow:
    count: int
    window_start: float


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    retry_after: int


class FixedWindowRateLimiter:
    """Per-key request counter over fixed windows.

    The whole read-check-increment for a key runs under one lock, so two
    concurrent requests can never both see the pre-increment count.
    Single-instance only; owned by the app state and injected into the guard.
    """

    def __init__(self, window_seconds: int = 60, max_requests: int = 100) -> None:
        if window_seconds <= 0 or max_requests <= 0:
            raise ValueError("window_seconds and max_requests must be positive")
        self._window = window_seconds
        self._max_requests = max_requests
        self._windows: dict[str, RateWindow] = {}
        self._lock = Lock()

    @property
    def window_seconds(self) -> int:
        return self._window

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def hit(self, key: str) -> RateDecision:
        """Count one request for *key* and decide whether it may proceed.

        Args:
            key: Rate limit key, typically the caller's network address.

        Returns:
            RateDecision. When denied, ``retry_after`` is the number of
            whole seconds until the current window ends (at least 1).
        """
        now = time.monotonic()

        with self._lock:
            self._purge_stale(now)

            window = self._windows.get(key)
            if window is None or now - window.window_start > self._window:
                window = RateWindow(count=1, window_start=now)
                self._windows[key] = window
            else:
                window.count += 1

            if window.count > self._max_requests:
                remaining = self._window - (now - window.window_start)
                return RateDecision(
                    allowed=False,
                    count=window.count,
                    retry_after=max(int(remaining) + 1, 1),
                )
            return RateDecision(allowed=True, count=window.count, retry_after=0)

    def _purge_stale(self, now: float) -> int:
        # Caller holds the lock.
        stale = [
            key
            for key, window in self._windows.items()
            if now - window.window_start > self._window
        ]
        for key in stale:
            del self._windows[key]
        return len(stale)

    def purge(self) -> int:
        """Drop every expired window. Returns the number of keys removed."""
        with self._lock:
            return self._purge_stale(time.monotonic())

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)
