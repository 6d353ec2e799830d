from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import PageCursor, Payload


class Paginator(ABC):
    """Advances a PageCursor. Owned by the driver."""

    # True when advance() does not need the previous page's payload,
    # which is what lets pages be fetched ahead of time.
    independent: bool = False

    @abstractmethod
    def advance(self, cursor: PageCursor, payload: Optional[Payload]) -> Optional[PageCursor]:
        """Return the cursor after cursor, or None when traversal must end."""


class PageNumbers(Paginator):
    independent = True

    def __init__(self, step: int = 1) -> None:
        if step < 1:
            raise ValueError("step must be >= 1")
        self._step = step

    def advance(self, cursor: PageCursor, payload: Optional[Payload]) -> Optional[PageCursor]:
        return int(cursor) + self._step


class ContinuationTokens(Paginator):
    """Cursor tokens read from each page's payload.

    A failed page has no payload, so the traversal stops there."""

    def __init__(self, next_token: Callable[[Payload], Optional[str]]) -> None:
        self._next_token = next_token

    def advance(self, cursor: PageCursor, payload: Optional[Payload]) -> Optional[PageCursor]:
        if payload is None:
            return None
        token = self._next_token(payload)
        return token or None
