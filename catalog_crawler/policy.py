from __future__ import annotations

import math
from typing import Mapping, Optional, Sequence

from .errors import RateLimitPolicyError
from .models import ClientError, RateLimited, ResponseOutcome, ServerError, Success, TransportFailure

DEFAULT_RESET_HEADERS = ("x-ratelimit-reset-after", "retry-after")


class RateLimitPolicy:
    """Maps a raw HTTP status and its headers onto a ResponseOutcome.

    2xx is success, 429 is rate limited (the wait is read from the first
    reset header present), 5xx is a retryable server error and everything
    else is a terminal client error."""

    def __init__(self, reset_headers: Sequence[str] = DEFAULT_RESET_HEADERS) -> None:
        if not reset_headers:
            raise ValueError("at least one reset header name is required")
        self._reset_headers = tuple(h.lower() for h in reset_headers)

    def classify(self, status: int, headers: Mapping[str, str], body: bytes = b"") -> ResponseOutcome:
        """Classify one HTTP round trip.

        Raises RateLimitPolicyError for a 429 whose reset header is missing
        or unparsable."""
        if 200 <= status < 300:
            return Success(body=body, status=status)
        if status == 429:
            return RateLimited(retry_after_seconds=self.retry_after(headers))
        if 500 <= status < 600:
            return ServerError(status=status)
        return ClientError(status=status)

    def retry_after(self, headers: Mapping[str, str]) -> float:
        """Return the number of seconds the server asked us to wait."""
        lowered = {str(k).lower(): v for k, v in headers.items()}
        raw: Optional[str] = None
        name = None
        for name in self._reset_headers:
            if name in lowered:
                raw = lowered[name]
                break
        if raw is None:
            raise RateLimitPolicyError(
                f"429 response without any of the headers {', '.join(self._reset_headers)}"
            )
        try:
            seconds = float(str(raw).strip())
        except ValueError:
            raise RateLimitPolicyError(f"unparsable {name} header: {raw!r}") from None
        if not math.isfinite(seconds) or seconds < 0:
            raise RateLimitPolicyError(f"invalid {name} header: {raw!r}")
        return seconds

    @staticmethod
    def transport_failure(exc: BaseException) -> TransportFailure:
        return TransportFailure(cause=exc)
