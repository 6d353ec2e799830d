from __future__ import annotations

import csv
import json
import time
from collections import deque
from dataclasses import asdict, fields
from threading import Lock
from typing import Deque, Dict, Iterable, List, Optional

from .models import FetchAttempt, FetchStats


class MetricsCollector:
    """Thread-safe collector for fetch attempts.

    Records one FetchAttempt per HTTP round trip and produces aggregated
    FetchStats, either over the whole run or a sliding time window."""

    def __init__(self, maxlen: int = 10000) -> None:
        self._lock = Lock()
        self._events: Deque[tuple[float, FetchAttempt]] = deque(maxlen=maxlen)

    def record_attempt(self, attempt: FetchAttempt) -> None:
        """Record a fetch attempt with the current timestamp."""
        with self._lock:
            self._events.append((time.time(), attempt))

    def snapshot(self, window_secs: Optional[int] = None) -> FetchStats:
        """Return aggregated stats, limited to the last window_secs seconds if given."""
        now = time.time()
        with self._lock:
            if window_secs is None:
                events: List[FetchAttempt] = [e for _, e in self._events]
            else:
                cutoff = now - window_secs
                events = [e for ts, e in self._events if ts >= cutoff]
        total = len(events)

        def count(outcome: str) -> int:
            return sum(1 for e in events if e.outcome == outcome)

        return FetchStats(
            window_secs=window_secs,
            total_attempts=total,
            success_count=count("success"),
            rate_limited_count=count("rate_limited"),
            server_error_count=count("server_error"),
            client_error_count=count("client_error"),
            transport_error_count=count("transport_error"),
            total_wait_seconds=sum(e.waited_seconds for e in events),
            avg_latency_ms=(sum(e.latency_ms for e in events) / total) if total else 0.0,
            timestamp=now,
        )

    def export_json(self) -> List[Dict]:
        """Export all recorded attempts as a list of dictionaries."""
        with self._lock:
            return [{"timestamp": ts, **asdict(e)} for ts, e in self._events]

    def export_csv_rows(self) -> Iterable[Dict]:
        """Yield recorded attempts as flat dictionaries suitable for CSV export."""
        with self._lock:
            rows = [{"timestamp": ts, **asdict(e)} for ts, e in self._events]
        yield from rows

    def save(self, path: str) -> None:
        """Write every recorded attempt to path, as CSV when it ends in .csv and JSON otherwise."""
        if path.endswith(".csv"):
            rows = list(self.export_csv_rows())
            fieldnames = ["timestamp"] + [f.name for f in fields(FetchAttempt)]
            with open(path, "w", encoding="utf-8", newline="") as f:
                writer = csv.DictWriter(f, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(rows)
        else:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(self.export_json(), f, ensure_ascii=False, indent=2)
