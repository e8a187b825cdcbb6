"""httpx-backed implementation of the processor HTTP port."""
from __future__ import annotations

from typing import Any

import httpx

from orchestrator.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)


class _ResponseView:
    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._response.headers)

    @property
    def text(self) -> str:
        return self._response.text

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def url(self) -> str:
        return str(self._response.url)

    def json(self) -> Any:
        return self._response.json()


def _as_httpx_timeout(timeout: RequestTimeout) -> httpx.Timeout:
    # write shares the read budget; pool waits count as connecting
    return httpx.Timeout(
        connect=timeout.connect_seconds,
        read=timeout.read_seconds,
        write=timeout.read_seconds,
        pool=timeout.connect_seconds,
    )


class HttpxHttpClient(AbstractHttpClient):
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _send(
        self,
        method: str,
        url: str,
        timeout: RequestTimeout,
        headers: dict[str, str] | None,
        json: dict[str, Any] | None = None,
    ) -> HttpResponse:
        try:
            response = await self._client.request(
                method,
                url,
                json=json,
                headers=headers or {},
                timeout=_as_httpx_timeout(timeout),
            )
        except httpx.TimeoutException as exc:
            raise HttpClientTimeoutError(f"{method} {url} timed out") from exc
        except httpx.HTTPError as exc:
            raise HttpClientError(f"{method} {url} failed: {exc}") from exc
        return _ResponseView(response)

    async def get(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        return await self._send("GET", url, timeout, headers)

    async def post(
        self,
        url: str,
        *,
        timeout: RequestTimeout,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> HttpResponse:
        return await self._send("POST", url, timeout, headers, json=json)

    async def close(self) -> None:
        await self._client.aclose()
