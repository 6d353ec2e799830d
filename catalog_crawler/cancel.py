from __future__ import annotations

import threading

from .errors import CrawlCancelled


class CancelToken:
    """Cancellation signal shared by the driver and the fetch client.

    sleep() waits on an Event, so cancel() wakes every sleeper at once."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CrawlCancelled("crawl cancelled")

    def sleep(self, seconds: float) -> None:
        """Sleep for seconds, raising CrawlCancelled if cancelled meanwhile."""
        if self._event.wait(max(0.0, seconds)):
            raise CrawlCancelled("crawl cancelled while waiting")
