"""Paginated catalog crawler.

Fetches listing pages or API pages one cursor at a time, retries through
rate limiting and transient failures, extracts records and writes them to
a sink.

Key modules:
    client          -- FetchClient: one logical GET with the retry loop
    policy          -- RateLimitPolicy: status/header classification
    driver          -- PaginationDriver: cursor traversal and summary
    paginators      -- PageNumbers, ContinuationTokens cursor strategies
    extractors      -- HtmlExtractor, JsonExtractor
    storage         -- Sink and TextFileSink, JsonlSink, StdoutSink, ...
    sites           -- per-site profiles and SiteFactory
    transport       -- requests and curl_cffi transports
    backoff         -- BackoffStrategy for server/transport retries
    rate_limiter    -- RateLimiter for QPS throttling
    cancel          -- CancelToken with interruptible sleep
    metrics         -- MetricsCollector for fetch attempts
    models          -- Request, outcomes, Payload, CrawlSummary dataclasses
    errors          -- exception taxonomy
    config          -- CrawlConfig run parameters
    cli             -- command line entry point
"""
