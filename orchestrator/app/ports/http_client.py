"""HTTP client port: contract for JSON requests to the external processor.

Domain code depends on this port; infrastructure (httpx) implements it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable


class HttpClientError(Exception):
    """Base for transport failures (connection refused, DNS, protocol errors)."""


class HttpClientTimeoutError(HttpClientError):
    """Raised when the request times out."""


@runtime_checkable
class HttpResponse(Protocol):
    """Minimal read-only view of an HTTP response."""

    @property
    def headers(self) -> Mapping[str, str]: ...

    @property
    def text(self) -> str: ...

    @property
    def status_code(self) -> int: ...

    @property
    def url(self) -> str: ...

    def json(self) -> Any: ...


@dataclass(frozen=True)
class RequestTimeout:
    """Connect and read timeouts in seconds."""

    connect_seconds: float
    read_seconds: float


@runtime_checkable
class AbstractHttpClient(Protocol):
    """Port: perform requests. Non-2xx responses are returned, not raised."""

    async def get(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse: ...

    async def post(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse: ...

    async def close(self) -> None:
        """Release resources (e.g. connection pool). No-op allowed if nothing to close."""
        ...
