from __future__ import annotations

import argparse
import logging
import signal
from typing import List, Optional

from .auth import env_credential
from .backoff import BackoffStrategy
from .cancel import CancelToken
from .client import FetchClient
from .config import OUTPUT_FORMATS, CrawlConfig
from .driver import PaginationDriver
from .errors import CrawlerError
from .metrics import MetricsCollector
from .models import CrawlSummary
from .rate_limiter import RateLimiter
from .sites import SiteFactory
from .storage import JsonlSink, Sink, StdoutSink, TeeSink, TextFileSink
from .transport import Transport, create_transport

logger = logging.getLogger("catalog_crawler")


def _open_sink(config: CrawlConfig) -> Sink:
    if config.output_format == "jsonl":
        sink: Sink = JsonlSink(config.output)
    else:
        sink = TextFileSink(config.output)
    if config.echo:
        return TeeSink(sink, StdoutSink())
    return sink


def run_crawl(
    config: CrawlConfig,
    factory: Optional[SiteFactory] = None,
    transport: Optional[Transport] = None,
    cancel_token: Optional[CancelToken] = None,
    metrics: Optional[MetricsCollector] = None,
) -> CrawlSummary:
    config.validate()
    profile = (factory or SiteFactory()).create(config.site)
    cancel = cancel_token or CancelToken()
    metrics = metrics or MetricsCollector()

    auth_env = config.auth_env or profile.auth_env
    rate_limiter = RateLimiter(qps=config.qps, sleep=cancel.sleep) if config.qps > 0 else None

    client = FetchClient(
        transport or create_transport(config.impersonate),
        backoff=BackoffStrategy(),
        max_attempts=config.max_attempts,
        timeout=config.timeout,
        max_rate_limit_retries=config.max_rate_limit_retries,
        max_rate_limit_wait=config.max_rate_limit_wait,
        default_rate_limit_wait=config.default_rate_limit_wait,
        user_agent=config.user_agent,
        auth=env_credential(auth_env) if auth_env else None,
        auth_header=profile.auth_header,
        allowed_domains=profile.allowed_domains,
        rate_limiter=rate_limiter,
        metrics=metrics,
        cancel_token=cancel,
    )
    with client, _open_sink(config) as sink:
        profile = profile.prepare(client)
        start = profile.start if config.start is None else config.start
        max_pages = profile.max_pages if config.max_pages is None else config.max_pages
        if profile.bounded:
            if int(start) < int(profile.start):
                raise ValueError(f"start must be >= {profile.start} for {profile.name}")
            remaining = profile.max_pages - (int(start) - int(profile.start))
            max_pages = max(0, min(max_pages, remaining))

        driver = PaginationDriver(
            client,
            profile.url_template,
            concurrency=config.concurrency,
            stop_after_empty_pages=config.stop_after_empty_pages,
            cancel_token=cancel,
        )
        summary = driver.run(start, max_pages, profile.extractor, sink)

    stats = metrics.snapshot()
    if config.metrics_out:
        try:
            metrics.save(config.metrics_out)
        except OSError as exc:
            logger.error("Cannot write metrics to %s: %s", config.metrics_out, exc)
        else:
            logger.info("Wrote %d fetch attempts to %s", stats.total_attempts, config.metrics_out)
    print(
        f"\nDONE: pages_visited={summary.pages_visited} records_emitted={summary.records_emitted} "
        f"pages_failed={summary.pages_failed} records_dropped={summary.records_dropped}"
        + (" (cancelled)" if summary.cancelled else "")
    )
    print(
        f"requests={stats.total_attempts} rate_limited={stats.rate_limited_count} "
        f"server_errors={stats.server_error_count} transport_errors={stats.transport_error_count} "
        f"waited_s={stats.total_wait_seconds:.2f} avg_latency_ms={stats.avg_latency_ms:.0f}"
    )
    return summary


def build_parser(factory: Optional[SiteFactory] = None) -> argparse.ArgumentParser:
    factory = factory or SiteFactory()
    parser = argparse.ArgumentParser(description="Crawl a paginated catalog into a local file")
    parser.add_argument("site", choices=factory.names(), help="Target site profile")

    parser.add_argument("--output", default="records.txt", help="Output file path")
    parser.add_argument("--format", dest="output_format", choices=OUTPUT_FORMATS, default="text", help="Output format")
    parser.add_argument("--no-echo", dest="echo", action="store_false", help="Do not print records to stdout")
    parser.add_argument("--metrics-out", default=None, help="Write per-request metrics here (.csv or JSON)")

    parser.add_argument("--start", type=int, default=None, help="First page cursor (site default if omitted)")
    parser.add_argument("--pages", dest="max_pages", type=int, default=None, help="Max number of pages to visit")
    parser.add_argument("--concurrency", type=int, default=1, help="Pages fetched in parallel")
    parser.add_argument("--stop-after-empty", dest="stop_after_empty_pages", type=int, default=None,
                        help="Stop after this many consecutive pages without records")

    parser.add_argument("--timeout", type=float, default=20.0, help="Per-request timeout in seconds")
    parser.add_argument("--user-agent", default="Mozilla/5.0", help="User-Agent header")
    parser.add_argument("--impersonate", default=None, help="Use curl_cffi with this browser fingerprint (e.g. chrome120)")
    parser.add_argument("--auth-env", default=None, help="Environment variable holding the API credential")

    parser.add_argument("--qps", type=float, default=0.0, help="Politeness QPS limit (0 disables)")
    parser.add_argument("--max-attempts", type=int, default=3, help="Attempts for server and transport errors")
    parser.add_argument("--max-rate-limit-retries", type=int, default=None, help="Cap on 429 retries (unbounded if omitted)")
    parser.add_argument("--max-rate-limit-wait", type=float, default=None, help="Cap on cumulative 429 wait in seconds")
    parser.add_argument("--default-rate-limit-wait", type=float, default=None,
                        help="Wait used when a 429 carries no usable reset header")

    parser.add_argument("--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR"))
    return parser


def config_from_args(args: argparse.Namespace) -> CrawlConfig:
    return CrawlConfig(
        site=args.site,
        output=args.output,
        output_format=args.output_format,
        start=args.start,
        max_pages=args.max_pages,
        timeout=args.timeout,
        user_agent=args.user_agent,
        concurrency=args.concurrency,
        qps=args.qps,
        max_attempts=args.max_attempts,
        max_rate_limit_retries=args.max_rate_limit_retries,
        max_rate_limit_wait=args.max_rate_limit_wait,
        default_rate_limit_wait=args.default_rate_limit_wait,
        stop_after_empty_pages=args.stop_after_empty_pages,
        impersonate=args.impersonate,
        auth_env=args.auth_env,
        echo=args.echo,
        metrics_out=args.metrics_out,
    )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = config_from_args(args).validate()
    except ValueError as exc:
        parser.error(str(exc))

    cancel = CancelToken()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.cancel())
    try:
        summary = run_crawl(config, cancel_token=cancel)
    except (CrawlerError, ValueError) as exc:
        logger.error("Crawl aborted: %s", exc)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)
    return 130 if summary.cancelled else 0
