"""Port: what the lifecycle manager needs from the external processor."""
from __future__ import annotations

from typing import Protocol, Sequence

from orchestrator.app.domain.models import RemoteJob, RemoteJobStatus


class ProcessorClient(Protocol):
    async def create_job(self, listing_id: str, media_refs: Sequence[str], rush: bool) -> RemoteJob: ...

    async def get_status(self, external_job_id: str) -> RemoteJobStatus: ...

    async def cancel_job(self, external_job_id: str) -> bool: ...
