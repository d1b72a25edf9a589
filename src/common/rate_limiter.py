from __future__ import annotations

import threading
import time
from collections import deque
from typing import Callable, Deque, Optional


class RateLimitError(RuntimeError):
    """Raised when a permit is not available in time."""


class SlidingWindowRateLimiter:
    """
    Thread-safe limiter allowing at most `max_calls` permits per `per_seconds`.

    - `acquire(timeout=None)` waits for a permit; with a timeout it raises
      `RateLimitError` once the deadline passes. `timeout=0` never waits.

    Single process only; there is no shared state across Lambda instances.
    """

    def __init__(
        self,
        max_calls: int,
        per_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_calls <= 0:
            raise ValueError("max_calls must be > 0")
        if per_seconds <= 0:
            raise ValueError("per_seconds must be > 0")
        self._max_calls = max_calls
        self._window = per_seconds
        self._stamps: Deque[float] = deque()
        self._lock = threading.Lock()
        self._clock = clock
        self._sleep = sleep

    def _wait_time(self, now: float) -> float:
        cutoff = now - self._window
        while self._stamps and self._stamps[0] <= cutoff:
            self._stamps.popleft()
        if len(self._stamps) < self._max_calls:
            return 0.0
        return self._stamps[0] + self._window - now

    def acquire(self, *, timeout: Optional[float] = None) -> None:
        deadline = None if timeout is None else self._clock() + timeout
        while True:
            with self._lock:
                now = self._clock()
                wait = self._wait_time(now)
                if wait <= 0:
                    self._stamps.append(now)
                    return
            if deadline is not None and now + wait > deadline:
                raise RateLimitError("rate limit exceeded; no permit within timeout")
            self._sleep(min(wait, 1.0))
