"""Port: ProcessingJob persistence. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Any, Collection, Protocol

from orchestrator.app.constants import JobStatus
from orchestrator.app.domain.models import ProcessingJob


class JobRepository(Protocol):
    async def insert(self, job: ProcessingJob) -> None: ...

    async def get(self, job_id: str) -> ProcessingJob | None: ...

    async def list_by_status(self, statuses: Collection[JobStatus], *, limit: int) -> list[ProcessingJob]:
        """Oldest-updated first. A limit of 0 or less returns every match."""
        ...

    async def list_by_listing(
        self,
        listing_id: str,
        *,
        statuses: Collection[JobStatus] | None = None,
    ) -> list[ProcessingJob]:
        """Newest-created first."""
        ...

    async def update_if_status(
        self,
        job_id: str,
        expected: Collection[JobStatus],
        changes: dict[str, Any],
    ) -> ProcessingJob | None:
        """Apply ``changes`` only if the job's status is still in ``expected``.

        Returns the updated job, or None when the job is missing or its status moved.
        """
        ...
