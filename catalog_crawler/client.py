from __future__ import annotations

import logging
import time
from typing import Callable, Iterable, Mapping, Optional
from urllib.parse import urlsplit

from .auth import AuthSupplier
from .backoff import BackoffStrategy
from .cancel import CancelToken
from .errors import FetchError, RateLimitPolicyError, TransportError
from .metrics import MetricsCollector
from .models import (
    ClientError,
    ContentKind,
    FetchAttempt,
    Payload,
    RateLimited,
    Request,
    ResponseOutcome,
    Success,
    TransportFailure,
)
from .policy import RateLimitPolicy
from .rate_limiter import RateLimiter
from .transport import Transport

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Mozilla/5.0"


class FetchClient:
    """Performs one logical GET per call, retrying until a terminal outcome.

    Rate-limited responses are retried after exactly the wait the server
    asked for, without limit unless max_rate_limit_retries or
    max_rate_limit_wait is set. Server and transport errors are retried
    with backoff up to max_attempts. Client errors are never retried.
    """

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RateLimitPolicy] = None,
        backoff: Optional[BackoffStrategy] = None,
        max_attempts: int = 3,
        timeout: float = 20.0,
        max_rate_limit_retries: Optional[int] = None,
        max_rate_limit_wait: Optional[float] = None,
        default_rate_limit_wait: Optional[float] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: Optional[Mapping[str, str]] = None,
        auth: Optional[AuthSupplier] = None,
        auth_header: str = "Authorization",
        allowed_domains: Iterable[str] = (),
        rate_limiter: Optional[RateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
        cancel_token: Optional[CancelToken] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._transport = transport
        self._policy = policy or RateLimitPolicy()
        self._backoff = backoff or BackoffStrategy()
        self._max_attempts = max_attempts
        self._timeout = timeout
        self._max_rate_limit_retries = max_rate_limit_retries
        self._max_rate_limit_wait = max_rate_limit_wait
        self._default_rate_limit_wait = default_rate_limit_wait
        self._user_agent = user_agent
        self._headers = dict(headers or {})
        self._auth = auth
        self._auth_header = auth_header
        self._allowed_domains = frozenset(d.lower() for d in allowed_domains)
        self._rate_limiter = rate_limiter
        self._metrics = metrics
        self._cancel = cancel_token or CancelToken()
        self._sleep = sleep or self._cancel.sleep

    def build_request(self, url: str) -> Request:
        """Build a GET request carrying the user agent and the auth header, if any."""
        headers = {"User-Agent": self._user_agent}
        headers.update(self._headers)
        if self._auth is not None:
            headers[self._auth_header] = self._auth()
        return Request(url=url, headers=headers)

    def fetch(self, request: Request) -> Payload:
        """Fetch request, returning the decoded payload or raising FetchError."""
        if not request.url:
            raise ValueError("request.url is required")
        self._check_domain(request.url)

        attempt = 0
        failures = 0
        rate_limit_hits = 0
        rate_limit_waited = 0.0
        total_waited = 0.0
        while True:
            self._cancel.raise_if_cancelled()
            attempt += 1
            if self._rate_limiter is not None:
                self._rate_limiter.acquire()

            start = time.monotonic()
            status: Optional[int] = None
            content_type: Optional[str] = None
            try:
                raw = self._transport.send(request, timeout=self._timeout)
            except TransportError as exc:
                outcome: ResponseOutcome = self._policy.transport_failure(exc.cause or exc)
            else:
                status = raw.status
                content_type = raw.headers.get("content-type")
                try:
                    outcome = self._policy.classify(raw.status, raw.headers, raw.body)
                except RateLimitPolicyError as exc:
                    if self._default_rate_limit_wait is None:
                        self._record(request, attempt, "rate_limited", status, start)
                        raise FetchError(request.url, str(exc), status=status, attempts=attempt) from exc
                    logger.warning("%s; using default wait of %.2fs", exc, self._default_rate_limit_wait)
                    outcome = RateLimited(retry_after_seconds=self._default_rate_limit_wait)

            if isinstance(outcome, Success):
                self._record(request, attempt, outcome.kind, status, start)
                return Payload(
                    url=request.url,
                    body=outcome.body,
                    status=outcome.status,
                    content_type=content_type,
                    kind=ContentKind.from_content_type(content_type),
                    attempts=attempt,
                    waited_seconds=total_waited,
                )

            if isinstance(outcome, ClientError):
                self._record(request, attempt, outcome.kind, status, start)
                raise FetchError(request.url, "client error", status=status, attempts=attempt)

            if isinstance(outcome, RateLimited):
                rate_limit_hits += 1
                wait = outcome.retry_after_seconds
                if self._max_rate_limit_retries is not None and rate_limit_hits > self._max_rate_limit_retries:
                    self._record(request, attempt, outcome.kind, status, start)
                    raise FetchError(
                        request.url,
                        f"rate limited more than {self._max_rate_limit_retries} times",
                        status=status,
                        attempts=attempt,
                    )
                if self._max_rate_limit_wait is not None and rate_limit_waited + wait > self._max_rate_limit_wait:
                    self._record(request, attempt, outcome.kind, status, start)
                    raise FetchError(
                        request.url,
                        f"rate limit wait would exceed {self._max_rate_limit_wait:.2f}s",
                        status=status,
                        attempts=attempt,
                    )
                self._record(request, attempt, outcome.kind, status, start, waited=wait)
                logger.info("Rate limit hit on %s. Sleeping for %.2f seconds...", request.url, wait)
                self._sleep(wait)
                rate_limit_waited += wait
                total_waited += wait
                continue

            # ServerError or TransportFailure
            failures += 1
            if isinstance(outcome, TransportFailure):
                reason = f"transport error: {outcome.cause}"
            else:
                reason = "server error"
            if failures >= self._max_attempts:
                self._record(request, attempt, outcome.kind, status, start)
                raise FetchError(request.url, reason, status=status, attempts=attempt)
            delay = self._backoff.get_sleep(failures, outcome.kind)
            self._record(request, attempt, outcome.kind, status, start, waited=delay)
            logger.warning(
                "%s on %s (attempt %d/%d), retrying in %.2fs",
                reason,
                request.url,
                failures,
                self._max_attempts,
                delay,
            )
            self._sleep(delay)
            total_waited += delay

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> "FetchClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _check_domain(self, url: str) -> None:
        if not self._allowed_domains:
            return
        host = (urlsplit(url).hostname or "").lower()
        if host not in self._allowed_domains:
            raise FetchError(url, f"domain {host or '?'} is not allowed", attempts=0)

    def _record(
        self,
        request: Request,
        attempt: int,
        outcome: str,
        status: Optional[int],
        start: float,
        waited: float = 0.0,
    ) -> None:
        if self._metrics is None:
            return
        self._metrics.record_attempt(
            FetchAttempt(
                url=request.url,
                attempt=attempt,
                outcome=outcome,
                status_code=status,
                latency_ms=int((time.monotonic() - start) * 1000),
                waited_seconds=waited,
            )
        )
