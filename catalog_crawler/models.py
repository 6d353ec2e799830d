from __future__ import annotations

import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Union

PageCursor = Union[int, str]
Record = Any


class ContentKind(enum.Enum):
    HTML = "html"
    JSON = "json"

    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "ContentKind":
        """Guess the payload kind from a Content-Type header value."""
        if content_type and "json" in content_type.lower():
            return cls.JSON
        return cls.HTML


@dataclass(frozen=True)
class Request:
    url: str
    headers: Mapping[str, str] = field(default_factory=dict)
    method: str = field(default="GET", init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))


@dataclass(frozen=True)
class Success:
    body: bytes
    status: int
    kind: str = field(default="success", init=False)


@dataclass(frozen=True)
class RateLimited:
    retry_after_seconds: float
    kind: str = field(default="rate_limited", init=False)


@dataclass(frozen=True)
class ServerError:
    status: int
    kind: str = field(default="server_error", init=False)


@dataclass(frozen=True)
class ClientError:
    status: int
    kind: str = field(default="client_error", init=False)


@dataclass(frozen=True)
class TransportFailure:
    cause: BaseException
    kind: str = field(default="transport_error", init=False)


ResponseOutcome = Union[Success, RateLimited, ServerError, ClientError, TransportFailure]


@dataclass(frozen=True)
class RawResponse:
    status: int
    headers: Mapping[str, str]
    body: bytes


@dataclass(frozen=True)
class Payload:
    url: str
    body: bytes
    status: int
    content_type: Optional[str]
    kind: ContentKind
    attempts: int = 1
    waited_seconds: float = 0.0


@dataclass(frozen=True)
class FetchAttempt:
    url: str
    attempt: int
    outcome: str
    status_code: Optional[int]
    latency_ms: int
    waited_seconds: float = 0.0


@dataclass
class PageResult:
    cursor: PageCursor
    url: str
    records: List[Record] = field(default_factory=list)
    error: Optional[str] = None
    payload: Optional[Payload] = None
    cancelled: bool = False

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class CrawlSummary:
    pages_visited: int = 0
    records_emitted: int = 0
    pages_failed: int = 0
    records_dropped: int = 0
    cancelled: bool = False


@dataclass(frozen=True)
class FetchStats:
    window_secs: Optional[int]
    total_attempts: int
    success_count: int
    rate_limited_count: int
    server_error_count: int
    client_error_count: int
    transport_error_count: int
    total_wait_seconds: float
    avg_latency_ms: float
    timestamp: float
