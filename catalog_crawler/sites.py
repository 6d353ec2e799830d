from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Callable, Dict, Optional, Tuple

from .client import FetchClient
from .errors import ExtractionError
from .extractors import HtmlExtractor, JsonExtractor, PageExtractor, has_video_extension, strip_leading_digits
from .models import PageCursor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SiteProfile:
    """Everything that differs between target sites: where pages live and how to read them."""

    name: str
    url_template: Callable[[PageCursor], str]
    extractor: PageExtractor
    allowed_domains: Tuple[str, ...] = ()
    start: PageCursor = 1
    max_pages: int = 10
    # max_pages is a hard bound on the cursor range, not just a default
    bounded: bool = False
    auth_env: Optional[str] = None
    auth_header: str = "Authorization"

    def prepare(self, client: FetchClient) -> "SiteProfile":
        """Resolve anything that needs network access before the crawl starts."""
        return self


JIMAKU_SEARCH_URL = "https://jimaku.cc/api/entries/search?anime=true"
JIMAKU_FILES_URL = "https://jimaku.cc/api/entries/{entry_id}/files"


@dataclass(frozen=True)
class JimakuProfile(SiteProfile):
    """Subtitle file names from the Jimaku API.

    The entry list comes from a search request; the crawl then visits one
    files endpoint per entry, using the entry's position as the cursor."""

    search_url: str = JIMAKU_SEARCH_URL
    entry_ids: Tuple[int, ...] = field(default=())

    def prepare(self, client: FetchClient) -> SiteProfile:
        payload = client.fetch(client.build_request(self.search_url))
        entries = JsonExtractor(fields=("id", "name"))(payload.body, payload.kind)
        ids = []
        for entry in entries:
            if entry["id"] is None:
                raise ExtractionError(f"search entry without id: {entry!r}")
            ids.append(int(entry["id"]))
        logger.info("Jimaku search returned %d entries", len(ids))
        entry_ids = tuple(ids)
        return replace(
            self,
            entry_ids=entry_ids,
            start=0,
            max_pages=len(entry_ids),
            bounded=True,
            url_template=partial(_jimaku_files_url, entry_ids),
        )


def _jimaku_files_url(entry_ids: Tuple[int, ...], cursor: PageCursor) -> str:
    index = int(cursor)
    if not 0 <= index < len(entry_ids):
        raise ValueError(f"entry index {index} outside 0..{len(entry_ids) - 1}")
    return JIMAKU_FILES_URL.format(entry_id=entry_ids[index])


def _unprepared(cursor: PageCursor) -> str:
    raise RuntimeError("call prepare() before crawling this site")


def nyaa_land() -> SiteProfile:
    return SiteProfile(
        name="nyaa-land",
        url_template=lambda page: f"https://nyaa.land/?f=0&c=1_0&q=&p={page}",
        extractor=HtmlExtractor(
            row_selector="table tbody tr",
            field_selector="td:nth-child(2) a[href^='/view']",
            cleaners=(strip_leading_digits,),
        ),
        allowed_domains=("nyaa.land",),
        max_pages=10,
    )


def tokyo_tosho() -> SiteProfile:
    return SiteProfile(
        name="tokyo-tosho",
        url_template=lambda page: f"https://www.tokyo-tosho.net/?cat=1&page={page}",
        extractor=HtmlExtractor(row_selector="td.desc-top a", keep=has_video_extension),
        allowed_domains=("www.tokyo-tosho.net", "tokyo-tosho.net"),
        max_pages=300,
    )


def jimaku() -> SiteProfile:
    return JimakuProfile(
        name="jimaku",
        url_template=_unprepared,
        extractor=JsonExtractor(field="name"),
        allowed_domains=("jimaku.cc",),
        start=0,
        max_pages=0,
        auth_env="JIMAKU_API_KEY",
    )


class SiteFactory:
    """Creates site profiles by name."""

    def __init__(self) -> None:
        self._builders: Dict[str, Callable[[], SiteProfile]] = {
            "nyaa-land": nyaa_land,
            "tokyo-tosho": tokyo_tosho,
            "jimaku": jimaku,
        }

    def register(self, name: str, builder: Callable[[], SiteProfile]) -> None:
        self._builders[name] = builder

    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._builders))

    def create(self, name: str) -> SiteProfile:
        try:
            builder = self._builders[name]
        except KeyError:
            raise ValueError(f"Unknown site: {name}") from None
        return builder()
