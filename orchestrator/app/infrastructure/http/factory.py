"""HTTP client factory: builds AbstractHttpClient from settings (no provider logic in composition)."""
from __future__ import annotations

import httpx

from orchestrator.app.config.settings import Settings
from orchestrator.app.infrastructure.http.httpx_client import HttpxHttpClient
from orchestrator.app.ports.http_client import AbstractHttpClient


def create_http_client(settings: Settings) -> AbstractHttpClient:
    """Build an HTTP client from settings. Timeouts are applied per-request by the adapter."""
    async_client = httpx.AsyncClient(follow_redirects=False)
    return HttpxHttpClient(async_client)
