"""External HDR processor client.

Uses the HTTP port (AbstractHttpClient); the concrete client is built in the composition
root. The shared secret is passed in at construction and sent on every request.

Error mapping:
  - transport failures, timeouts, 429, 5xx and unreadable bodies -> UpstreamTransientError
  - any other non-2xx (the service rejected the request)          -> UpstreamFailureError

No retries happen here; retry policy belongs to the job lifecycle manager.
"""
from __future__ import annotations

from typing import Any, Sequence

from loguru import logger

from orchestrator.app.constants import JobStatus
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.domain.errors import UpstreamFailureError, UpstreamTransientError
from orchestrator.app.domain.models import RemoteJob, RemoteJobStatus
from orchestrator.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)

API_KEY_HEADER = "X-API-Key"

REMOTE_STATUS_MAP: dict[str, JobStatus] = {
    "pending": JobStatus.QUEUED,
    "uploading": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "processing": JobStatus.PROCESSING,
    "aligning": JobStatus.PROCESSING,
    "segmenting": JobStatus.PROCESSING,
    "fusing": JobStatus.PROCESSING,
    "exporting": JobStatus.PROCESSING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "cancelled": JobStatus.CANCELLED,
    "canceled": JobStatus.CANCELLED,
}


def _is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def map_remote_status(raw: Any) -> JobStatus:
    status = REMOTE_STATUS_MAP.get(str(raw or "").strip().lower())
    if status is None:
        raise UpstreamTransientError(f"unrecognized remote status: {raw!r}")
    return status


class ExternalProcessorClient:
    """create / status / cancel calls against the processor's ``/jobs`` API."""

    def __init__(
        self,
        client: AbstractHttpClient,
        *,
        base_url: str,
        api_key: str,
        connect_timeout_seconds: float,
        read_timeout_seconds: float,
    ) -> None:
        if not api_key:
            raise ValueError("processor api key must not be empty")
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._headers = {API_KEY_HEADER: api_key, "Accept": "application/json"}
        self._timeout = RequestTimeout(
            connect_seconds=connect_timeout_seconds,
            read_seconds=read_timeout_seconds,
        )

    async def create_job(self, listing_id: str, media_refs: Sequence[str], rush: bool) -> RemoteJob:
        """Start a remote job. Not idempotent: every call creates a new remote job."""
        payload = {"listing_id": listing_id, "input_keys": list(media_refs), "rush": bool(rush)}
        response = await self._send("POST", f"{self._base_url}/jobs", json=payload)
        body = self._json_body(response, action="create_job")

        external_job_id = body.get("job_id") or body.get("id")
        if not external_job_id:
            raise UpstreamTransientError("create_job response missing job_id", listing_id=listing_id)
        status = map_remote_status(body.get("status") or "queued")
        if status == JobStatus.FAILED:
            raise UpstreamFailureError(
                str(body.get("error") or body.get("error_message") or "remote rejected job"),
                listing_id=listing_id,
            )
        eta = body.get("eta_seconds")
        return RemoteJob(
            external_job_id=str(external_job_id),
            status=status,
            eta_seconds=int(eta) if eta is not None else None,
        )

    async def get_status(self, external_job_id: str) -> RemoteJobStatus:
        response = await self._send("GET", f"{self._base_url}/jobs/{external_job_id}/status")
        body = self._json_body(response, action="get_status")

        metrics = body.get("metrics")
        if metrics is not None and not isinstance(metrics, dict):
            metrics = None
        output_ref = body.get("output_ref") or body.get("output_key")
        error_message = body.get("error_message") or body.get("error")
        return RemoteJobStatus(
            status=map_remote_status(body.get("status")),
            output_ref=str(output_ref) if output_ref else None,
            metrics=metrics,
            error_message=str(error_message) if error_message else None,
        )

    async def cancel_job(self, external_job_id: str) -> bool:
        response = await self._send("POST", f"{self._base_url}/jobs/{external_job_id}/cancel")
        self._raise_for_status(response, action="cancel_job")
        return True

    async def _send(self, method: str, url: str, *, json: dict[str, Any] | None = None) -> HttpResponse:
        try:
            if method == "GET":
                return await self._client.get(url, timeout=self._timeout, headers=self._headers)
            return await self._client.post(url, timeout=self._timeout, json=json, headers=self._headers)
        except HttpClientTimeoutError as exc:
            raise UpstreamTransientError(f"processor timeout: {exc}") from exc
        except HttpClientError as exc:
            raise UpstreamTransientError(f"processor unreachable: {exc}") from exc

    def _raise_for_status(self, response: HttpResponse, *, action: str) -> None:
        code = response.status_code
        if 200 <= code < 300:
            return
        detail = (response.text or "")[:500]
        logger.bind(service_name=SERVICE_NAME, event="processor_http_error", action=action, status_code=code).warning(detail)
        if _is_transient_status(code):
            raise UpstreamTransientError(f"processor {action} returned {code}")
        raise UpstreamFailureError(f"processor {action} rejected with {code}: {detail}")

    def _json_body(self, response: HttpResponse, *, action: str) -> dict[str, Any]:
        self._raise_for_status(response, action=action)
        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamTransientError(f"processor {action} returned invalid json") from exc
        if not isinstance(body, dict):
            raise UpstreamTransientError(f"processor {action} returned unexpected payload")
        return body
