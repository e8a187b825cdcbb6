from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from api.app.schemas.common import ActorPayload
from orchestrator.app.constants import ActorType, EventType, ListingStatus
from orchestrator.app.domain.models import JobEvent, Listing


class TransitionRequest(BaseModel):
    status: str = Field(..., min_length=1)
    notes: str | None = None
    actor: ActorPayload = Field(default_factory=ActorPayload)


class ListingResponse(BaseModel):
    id: str
    ops_status: ListingStatus
    is_rush: bool
    updated_at: datetime
    stage_entered_at: datetime | None = None
    editor_id: str | None = None
    editing_started_at: datetime | None = None
    editing_completed_at: datetime | None = None
    delivered_at: datetime | None = None

    @classmethod
    def from_listing(cls, listing: Listing) -> "ListingResponse":
        return cls(
            id=listing.id,
            ops_status=listing.ops_status,
            is_rush=listing.is_rush,
            updated_at=listing.updated_at,
            stage_entered_at=listing.stage_entered_at,
            editor_id=listing.editor_id,
            editing_started_at=listing.editing_started_at,
            editing_completed_at=listing.editing_completed_at,
            delivered_at=listing.delivered_at,
        )


class JobEventResponse(BaseModel):
    id: str
    listing_id: str
    job_id: str | None = None
    event_type: EventType
    actor_id: str | None = None
    actor_type: ActorType
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    notes: str | None = None
    created_at: datetime

    @classmethod
    def from_event(cls, event: JobEvent) -> "JobEventResponse":
        return cls(
            id=event.id,
            listing_id=event.listing_id,
            job_id=event.job_id,
            event_type=event.event_type,
            actor_id=event.actor_id,
            actor_type=event.actor_type,
            old_value=event.old_value,
            new_value=event.new_value,
            notes=event.notes,
            created_at=event.created_at,
        )


class TransitionResponse(BaseModel):
    listing: ListingResponse
    event: JobEventResponse


class AllowedTransitionsResponse(BaseModel):
    listing_id: str
    allowed: list[ListingStatus]


class ListingEventsResponse(BaseModel):
    listing_id: str
    events: list[JobEventResponse]
