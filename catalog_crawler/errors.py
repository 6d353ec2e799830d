from __future__ import annotations

from typing import Optional


class CrawlerError(Exception):
    """Base class for every error raised by the crawler."""


class TransportError(CrawlerError):
    """Network-level failure: connection reset, timeout, DNS failure."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class RateLimitPolicyError(CrawlerError):
    """A 429 response carried no usable reset header."""


class FetchError(CrawlerError):
    """Terminal failure for a single logical fetch."""

    def __init__(
        self,
        url: str,
        reason: str,
        status: Optional[int] = None,
        attempts: int = 0,
    ) -> None:
        detail = f"{reason} (status={status})" if status is not None else reason
        super().__init__(f"{url}: {detail} after {attempts} attempt(s)")
        self.url = url
        self.reason = reason
        self.status = status
        self.attempts = attempts


class ExtractionError(CrawlerError):
    """The payload did not have the shape the extractor expects."""


class SinkError(CrawlerError):
    """The sink could not persist a record."""


class CrawlCancelled(CrawlerError):
    """The crawl was cancelled while waiting."""
