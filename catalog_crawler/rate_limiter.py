from __future__ import annotations

import threading
import time
from typing import Callable


class RateLimiter:
    """Thread-safe politeness throttle based on queries per second (QPS).

    Calling acquire() blocks the current thread until the next request
    is allowed. Independent of the server's own 429 signalling."""

    def __init__(self, qps: float, sleep: Callable[[float], None] = time.sleep) -> None:
        self._interval = 1.0 / qps if qps > 0 else 0.0
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_allowed = 0.0

    @property
    def enabled(self) -> bool:
        return self._interval > 0

    def acquire(self) -> None:
        """Block until the next request is permitted under the QPS limit."""
        if self._interval <= 0:
            return
        with self._lock:
            now = time.monotonic()
            if now < self._next_allowed:
                self._sleep(self._next_allowed - now)
                now = self._next_allowed
            self._next_allowed = now + self._interval
