"""Port: append-only audit log of JobEvents."""
from __future__ import annotations

from typing import Protocol

from orchestrator.app.domain.models import JobEvent


class EventLog(Protocol):
    async def append(self, event: JobEvent) -> None: ...

    async def list_for_listing(self, listing_id: str, *, limit: int = 100) -> list[JobEvent]:
        """Newest first."""
        ...
