from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Deque, Optional

from .cancel import CancelToken
from .client import FetchClient
from .errors import CrawlCancelled, ExtractionError, FetchError, SinkError
from .extractors import PageExtractor
from .models import CrawlSummary, PageCursor, PageResult, Record
from .paginators import PageNumbers, Paginator
from .storage import Sink

logger = logging.getLogger(__name__)

UrlTemplate = Callable[[PageCursor], str]


def _is_empty(record: Record) -> bool:
    if record is None:
        return True
    if isinstance(record, str):
        return not record.strip()
    if isinstance(record, (bytes, dict, list, tuple)):
        return not record
    return False


class PaginationDriver:
    """Walks a cursor range, fetching, extracting and sinking one page at a time.

    A page that fails to fetch or extract is counted and skipped; the crawl
    only ends early on cancellation, an exhausted paginator, or (optionally)
    a run of empty pages.

    With concurrency > 1 pages are fetched on a bounded thread pool, but
    records still reach the sink from the calling thread, in cursor order.
    """

    def __init__(
        self,
        client: FetchClient,
        url_template: UrlTemplate,
        paginator: Optional[Paginator] = None,
        concurrency: int = 1,
        stop_after_empty_pages: Optional[int] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if stop_after_empty_pages is not None and stop_after_empty_pages < 1:
            raise ValueError("stop_after_empty_pages must be >= 1")
        self._client = client
        self._url_template = url_template
        self._paginator = paginator or PageNumbers()
        self._concurrency = concurrency
        self._stop_after_empty = stop_after_empty_pages
        self._cancel = cancel_token or CancelToken()

        if concurrency > 1 and not self._paginator.independent:
            raise ValueError(f"{type(self._paginator).__name__} cannot be fetched concurrently")

    def run(self, start: PageCursor, max_pages: int, extractor: PageExtractor, sink: Sink) -> CrawlSummary:
        """Crawl up to max_pages pages starting at start and return the summary."""
        if max_pages < 0:
            raise ValueError("max_pages must be >= 0")
        summary = CrawlSummary()
        if max_pages == 0:
            return summary

        if self._concurrency > 1:
            self._run_concurrent(start, max_pages, extractor, sink, summary)
        else:
            self._run_sequential(start, max_pages, extractor, sink, summary)

        logger.info(
            "Crawl finished: pages_visited=%d records_emitted=%d pages_failed=%d records_dropped=%d cancelled=%s",
            summary.pages_visited,
            summary.records_emitted,
            summary.pages_failed,
            summary.records_dropped,
            summary.cancelled,
        )
        return summary

    def _run_sequential(
        self,
        start: PageCursor,
        max_pages: int,
        extractor: PageExtractor,
        sink: Sink,
        summary: CrawlSummary,
    ) -> None:
        cursor: Optional[PageCursor] = start
        streak = 0
        for _ in range(max_pages):
            if self._cancel.cancelled:
                summary.cancelled = True
                break
            page = self._fetch_page(cursor, extractor)
            streak = self._emit(page, sink, summary, streak)
            if page.cancelled or self._exhausted(streak):
                break
            cursor = self._paginator.advance(cursor, page.payload)
            if cursor is None:
                logger.info("No cursor after %s, stopping", page.cursor)
                break

    def _run_concurrent(
        self,
        start: PageCursor,
        max_pages: int,
        extractor: PageExtractor,
        sink: Sink,
        summary: CrawlSummary,
    ) -> None:
        pending: Deque[Future] = deque()
        streak = 0
        stopped = False
        cursor: Optional[PageCursor] = start
        with ThreadPoolExecutor(max_workers=self._concurrency, thread_name_prefix="page") as pool:
            for _ in range(max_pages):
                if cursor is None:
                    break
                if self._cancel.cancelled:
                    summary.cancelled = True
                    break
                pending.append(pool.submit(self._fetch_page, cursor, extractor))
                cursor = self._paginator.advance(cursor, None)
                if len(pending) >= self._concurrency:
                    streak = self._emit(pending.popleft().result(), sink, summary, streak)
                    if self._exhausted(streak):
                        stopped = True
                        break

            while pending:
                future = pending.popleft()
                if stopped:
                    future.cancel()
                    continue
                streak = self._emit(future.result(), sink, summary, streak)
                stopped = self._exhausted(streak)

    def _fetch_page(self, cursor: PageCursor, extractor: PageExtractor) -> PageResult:
        url = self._url_template(cursor)
        page = PageResult(cursor=cursor, url=url)
        logger.info("Visiting: %s", url)
        try:
            payload = self._client.fetch(self._client.build_request(url))
        except FetchError as exc:
            logger.warning("Page %s failed: %s", cursor, exc)
            page.error = str(exc)
            return page
        except CrawlCancelled:
            page.cancelled = True
            return page

        page.payload = payload
        try:
            page.records = list(extractor(payload.body, payload.kind))
        except ExtractionError as exc:
            logger.warning("Could not extract records from page %s: %s", cursor, exc)
            page.error = f"extraction failed: {exc}"
        return page

    def _emit(self, page: PageResult, sink: Sink, summary: CrawlSummary, streak: int) -> int:
        """Hand a page's records to the sink and return the updated empty-page streak."""
        if page.cancelled:
            summary.cancelled = True
            return streak
        summary.pages_visited += 1
        if page.failed:
            summary.pages_failed += 1
            return 0

        emitted = 0
        non_empty = 0
        for record in page.records:
            if _is_empty(record):
                continue
            non_empty += 1
            try:
                sink.accept(record)
            except SinkError as exc:
                logger.error("Sink rejected record from page %s: %s", page.cursor, exc)
                summary.records_dropped += 1
                continue
            emitted += 1
        summary.records_emitted += emitted
        return streak + 1 if non_empty == 0 else 0

    def _exhausted(self, streak: int) -> bool:
        if self._stop_after_empty is not None and streak >= self._stop_after_empty:
            logger.info("Stopping after %d consecutive empty pages", streak)
            return True
        return False
