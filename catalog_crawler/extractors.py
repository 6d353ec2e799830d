"""Page extractors: turn a fetched payload into records.

An extractor is any callable ``(payload: bytes, kind: ContentKind) -> list``.
It must be free of side effects and signal a payload it cannot handle by
raising :class:`ExtractionError`.
"""
from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence

from bs4 import BeautifulSoup

from .errors import ExtractionError
from .models import ContentKind, Record

VIDEO_EXTENSIONS = (".mkv", ".mp4", ".avi", ".mov", ".wmv", ".flv", ".webm", ".mpg", ".mpeg")

_LEADING_DIGITS = re.compile(r"^\d+")


def strip_leading_digits(text: str) -> str:
    """Drop digits glued to the front of a title (comment counters on listing rows)."""
    return _LEADING_DIGITS.sub("", text).strip()


def has_video_extension(text: str) -> bool:
    lower = text.lower()
    return any(ext in lower for ext in VIDEO_EXTENSIONS)


class PageExtractor(ABC):
    @abstractmethod
    def __call__(self, payload: bytes, kind: ContentKind) -> List[Record]:
        ...


class HtmlExtractor(PageExtractor):
    """CSS-selector extractor for listing pages.

    Every element matching row_selector yields one text record. With a
    field_selector the text of all matching children is concatenated, the
    same way a jQuery-style ``.text()`` on a multi-element selection reads.
    """

    def __init__(
        self,
        row_selector: str,
        field_selector: Optional[str] = None,
        cleaners: Sequence[Callable[[str], str]] = (),
        keep: Optional[Callable[[str], bool]] = None,
        parser: str = "html.parser",
    ) -> None:
        self._row_selector = row_selector
        self._field_selector = field_selector
        self._cleaners = tuple(cleaners)
        self._keep = keep
        self._parser = parser

    def __call__(self, payload: bytes, kind: ContentKind) -> List[Record]:
        if kind is ContentKind.JSON:
            raise ExtractionError("expected an HTML document, got a JSON payload")
        soup = BeautifulSoup(payload, self._parser)
        records: List[Record] = []
        for row in soup.select(self._row_selector):
            if self._field_selector:
                text = "".join(el.get_text() for el in row.select(self._field_selector))
            else:
                text = row.get_text()
            text = text.strip()
            for clean in self._cleaners:
                text = clean(text)
            if not text:
                continue
            if self._keep is not None and not self._keep(text):
                continue
            records.append(text)
        return records


class JsonExtractor(PageExtractor):
    """Extractor for JSON API bodies.

    items_path walks nested object keys down to the list of items. Each
    item is returned whole, as a single field, or as a dict of fields.
    """

    def __init__(
        self,
        items_path: Sequence[str] = (),
        field: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> None:
        if field and fields:
            raise ValueError("pass either field or fields, not both")
        self._items_path = tuple(items_path)
        self._field = field
        self._fields = tuple(fields) if fields else None

    def __call__(self, payload: bytes, kind: ContentKind) -> List[Record]:
        try:
            data: Any = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ExtractionError(f"invalid JSON payload: {exc}") from exc

        for key in self._items_path:
            if not isinstance(data, dict) or key not in data:
                raise ExtractionError(f"missing key {key!r} in JSON payload")
            data = data[key]
        if not isinstance(data, list):
            raise ExtractionError(f"expected a JSON array, got {type(data).__name__}")

        if self._field is None and self._fields is None:
            return list(data)
        records: List[Record] = []
        for item in data:
            if not isinstance(item, dict):
                raise ExtractionError(f"expected JSON objects in array, got {type(item).__name__}")
            if self._field is not None:
                records.append(item.get(self._field))
            else:
                records.append({name: item.get(name) for name in self._fields})
        return records
