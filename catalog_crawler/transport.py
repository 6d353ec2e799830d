from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests
from curl_cffi import CurlError
from curl_cffi import requests as curl_requests

from .errors import TransportError
from .models import RawResponse, Request

logger = logging.getLogger(__name__)


class Transport(ABC):
    """One HTTP round trip. Network failures surface as TransportError."""

    @abstractmethod
    def send(self, request: Request, timeout: float) -> RawResponse:
        ...

    def close(self) -> None:
        """Release pooled connections."""

    def __enter__(self) -> "Transport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class RequestsTransport(Transport):
    """Plain HTTP transport on a pooled requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None) -> None:
        self._session = session or requests.Session()

    def send(self, request: Request, timeout: float) -> RawResponse:
        try:
            resp = self._session.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                timeout=timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", cause=exc) from exc
        return RawResponse(
            status=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.content,
        )

    def close(self) -> None:
        self._session.close()


class CurlTransport(Transport):
    """Browser-impersonating transport built on curl_cffi.

    Some catalog sites reject non-browser TLS fingerprints; impersonation
    makes the handshake look like the named browser."""

    def __init__(self, impersonate: str = "chrome120", session: Optional[curl_requests.Session] = None) -> None:
        self._impersonate = impersonate
        self._session = session or curl_requests.Session()

    def send(self, request: Request, timeout: float) -> RawResponse:
        try:
            resp = self._session.request(
                method=request.method,
                url=request.url,
                headers=dict(request.headers),
                impersonate=self._impersonate,
                timeout=timeout,
            )
        except CurlError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}", cause=exc) from exc
        return RawResponse(
            status=resp.status_code,
            headers={k.lower(): v for k, v in resp.headers.items()},
            body=resp.content,
        )

    def close(self) -> None:
        self._session.close()


def create_transport(impersonate: Optional[str] = None) -> Transport:
    if impersonate:
        logger.debug("Using curl_cffi transport impersonating %s", impersonate)
        return CurlTransport(impersonate=impersonate)
    return RequestsTransport()
