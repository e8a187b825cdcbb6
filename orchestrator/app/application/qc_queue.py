from __future__ import annotations

from datetime import datetime
from typing import Callable

from orchestrator.app.constants import QC_LISTING_STATUSES
from orchestrator.app.domain.models import QCQueueEntry, utcnow
from orchestrator.app.domain.qc_priority import build_qc_queue
from orchestrator.app.ports.listing_repository import ListingRepository


class QCQueueService:
    """Read-only view over listings waiting for QC. Nothing is persisted."""

    def __init__(self, listings: ListingRepository, *, clock: Callable[[], datetime] = utcnow) -> None:
        self._listings = listings
        self._clock = clock

    async def get_queue(self, now: datetime | None = None) -> list[QCQueueEntry]:
        listings = await self._listings.list_by_ops_status(QC_LISTING_STATUSES)
        return build_qc_queue(listings, now or self._clock())
