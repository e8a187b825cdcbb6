from datetime import datetime

from pydantic import BaseModel

from orchestrator.app.constants import ListingStatus
from orchestrator.app.domain.models import QCQueueEntry


class QCQueueEntryResponse(BaseModel):
    listing_id: str
    priority_score: int
    priority_level: str
    hours_waiting: int
    is_rush: bool
    ops_status: ListingStatus

    @classmethod
    def from_entry(cls, entry: QCQueueEntry) -> "QCQueueEntryResponse":
        return cls(
            listing_id=entry.listing_id,
            priority_score=entry.priority_score,
            priority_level=entry.priority_level,
            hours_waiting=entry.hours_waiting,
            is_rush=entry.is_rush,
            ops_status=entry.ops_status,
        )


class QCQueueResponse(BaseModel):
    generated_at: datetime
    items: list[QCQueueEntryResponse]
