from __future__ import annotations

import random
from typing import Optional


class BackoffStrategy:
    """Backoff with jitter for retrying server and transport errors.

    Computes sleep duration as base * factor^(attempt-1) plus random jitter,
    capped at a configurable maximum. A factor of 1 gives a fixed delay."""

    def __init__(
        self,
        base_seconds: float = 0.5,
        max_seconds: float = 10.0,
        factor: float = 2.0,
        jitter_ratio: float = 0.1,
    ) -> None:
        if base_seconds < 0 or max_seconds < 0:
            raise ValueError("backoff durations must be non-negative")
        if factor < 1:
            raise ValueError("backoff factor must be >= 1")
        self._base = base_seconds
        self._max = max_seconds
        self._factor = factor
        self._jitter = jitter_ratio

    @classmethod
    def fixed(cls, seconds: float) -> "BackoffStrategy":
        return cls(base_seconds=seconds, max_seconds=seconds, factor=1.0, jitter_ratio=0.0)

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Calculate the backoff sleep duration in seconds for a given retry attempt."""
        exp = min(self._max, self._base * (self._factor ** max(attempt - 1, 0)))
        jitter = random.uniform(0, exp * self._jitter) if self._jitter > 0 else 0.0
        return exp + jitter
