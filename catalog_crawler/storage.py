from __future__ import annotations

import json
import logging
import queue
import sys
import threading
import time
from abc import ABC, abstractmethod
from typing import IO, List, Optional

from .errors import SinkError
from .models import Record

logger = logging.getLogger(__name__)


def _to_line(record: Record) -> str:
    if isinstance(record, str):
        return record
    return json.dumps(record, ensure_ascii=False)


class Sink(ABC):
    """Abstract base class for record sinks.

    accept() is called once per extracted record and signals failure with
    SinkError. close() flushes and releases resources."""

    @abstractmethod
    def accept(self, record: Record) -> None:
        """Persist a single record."""

    def close(self) -> None:
        """Flush pending writes and release resources."""

    def __enter__(self) -> "Sink":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class TextFileSink(Sink):
    """One record per line. mode="w" truncates, so reruns overwrite."""

    def __init__(self, path: str, mode: str = "w") -> None:
        if mode not in ("w", "a"):
            raise ValueError("mode must be 'w' or 'a'")
        self._path = path
        self._lock = threading.Lock()
        try:
            self._file: Optional[IO[str]] = open(path, mode, encoding="utf-8")
        except OSError as exc:
            raise SinkError(f"cannot open {path}: {exc}") from exc

    def accept(self, record: Record) -> None:
        with self._lock:
            if self._file is None:
                raise SinkError(f"{self._path} is closed")
            try:
                self._file.write(_to_line(record) + "\n")
                self._file.flush()
            except OSError as exc:
                raise SinkError(f"write to {self._path} failed: {exc}") from exc

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None


class JsonlSink(Sink):
    """Stores records as JSON Lines (.jsonl) using a background writer thread."""

    def __init__(self, path: str, join_timeout: float = 30.0) -> None:
        self._path = path
        self._join_timeout = join_timeout
        self._queue: queue.Queue[Optional[Record]] = queue.Queue()
        self._error: Optional[BaseException] = None
        self._closed = False
        self._thread = threading.Thread(target=self._writer, daemon=True)
        self._thread.start()

    def accept(self, record: Record) -> None:
        """Enqueue a record for background writing."""
        if self._error is not None:
            raise SinkError(f"writer for {self._path} failed: {self._error}")
        if self._closed:
            raise SinkError(f"{self._path} is closed")
        self._queue.put(record)

    def close(self) -> None:
        """Signal the writer thread to flush and stop."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(None)
        self._thread.join(timeout=self._join_timeout)
        if self._thread.is_alive():
            raise SinkError(f"writer for {self._path} did not finish within {self._join_timeout:.0f}s")
        if self._error is not None:
            raise SinkError(f"writer for {self._path} failed: {self._error}")

    def _writer(self) -> None:
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                while True:
                    item = self._queue.get()
                    if item is None:
                        break
                    line = {"timestamp": time.time(), "record": item}
                    f.write(json.dumps(line, ensure_ascii=False) + "\n")
                    f.flush()
        except (OSError, TypeError, ValueError) as exc:
            logger.error("JSONL writer for %s stopped: %s", self._path, exc)
            self._error = exc


class StdoutSink(Sink):
    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self._stream = stream

    def accept(self, record: Record) -> None:
        try:
            print(_to_line(record), file=self._stream or sys.stdout)
        except OSError as exc:
            raise SinkError(f"write to stdout failed: {exc}") from exc


class ListSink(Sink):
    """Keeps records in memory, mostly for programmatic use."""

    def __init__(self) -> None:
        self.records: List[Record] = []
        self._lock = threading.Lock()

    def accept(self, record: Record) -> None:
        with self._lock:
            self.records.append(record)


class TeeSink(Sink):
    """Forwards each record to several sinks."""

    def __init__(self, *sinks: Sink) -> None:
        self._sinks = sinks

    def accept(self, record: Record) -> None:
        errors = []
        for sink in self._sinks:
            try:
                sink.accept(record)
            except SinkError as exc:
                errors.append(str(exc))
        if errors:
            raise SinkError("; ".join(errors))

    def close(self) -> None:
        errors = []
        for sink in self._sinks:
            try:
                sink.close()
            except SinkError as exc:
                errors.append(str(exc))
        if errors:
            raise SinkError("; ".join(errors))
