from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Iterable

from loguru import logger

from orchestrator.app.constants import EventType, ListingStatus
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.domain.errors import (
    ConcurrencyConflict,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from orchestrator.app.domain.listing_state import allowed_targets, is_allowed_transition, milestone_changes
from orchestrator.app.domain.models import Actor, JobEvent, Listing, utcnow
from orchestrator.app.ports.event_log import EventLog
from orchestrator.app.ports.listing_repository import ListingRepository


@dataclass(frozen=True)
class TransitionResult:
    listing: Listing
    event: JobEvent


# Called after a committed transition. Failures are logged and never undo the change.
TransitionListener = Callable[[TransitionResult], Awaitable[None]]


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def parse_listing_status(value: ListingStatus | str) -> ListingStatus:
    if isinstance(value, ListingStatus):
        return value
    try:
        return ListingStatus(str(value).strip().lower())
    except ValueError as exc:
        raise ValidationError(f"unknown listing status: {value!r}") from exc


class StatusTransitionEngine:
    """
    Moves a listing through its production workflow.

    Each successful transition is one conditional write (on the status the caller saw)
    followed by exactly one audit event. Rejected transitions write nothing.
    """

    def __init__(
        self,
        listings: ListingRepository,
        events: EventLog,
        *,
        listeners: Iterable[TransitionListener] = (),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._listings = listings
        self._events = events
        self._listeners = list(listeners)
        self._clock = clock

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    async def transition(
        self,
        listing_id: str,
        target: ListingStatus | str,
        actor: Actor,
        *,
        notes: str | None = None,
    ) -> TransitionResult:
        target_status = parse_listing_status(target)
        listing = await self._get_listing(listing_id)
        current = listing.ops_status

        if not is_allowed_transition(current, target_status, privileged=actor.privileged):
            logger.bind(
                service_name=SERVICE_NAME,
                event="listing_transition_rejected",
                listing_id=listing_id,
                old_status=current.value,
                new_status=target_status.value,
                actor_id=actor.id,
                actor_type=actor.type.value,
            ).warning("")
            raise InvalidTransitionError(current.value, target_status.value, listing_id=listing_id)

        override = target_status not in allowed_targets(current)
        now = self._clock()
        updated = await self._listings.update_if_status(
            listing_id,
            current,
            milestone_changes(listing, target_status, actor, now),
        )
        if updated is None:
            raise ConcurrencyConflict(
                f"listing {listing_id} changed while moving to {target_status.value}",
                listing_id=listing_id,
            )

        event = JobEvent(
            id=str(uuid.uuid4()),
            listing_id=listing_id,
            event_type=EventType.STATUS_OVERRIDE if override else EventType.STATUS_CHANGE,
            actor_id=actor.id,
            actor_type=actor.type,
            old_value={"ops_status": current.value},
            new_value={"ops_status": target_status.value},
            notes=notes,
            created_at=now,
        )
        try:
            await self._events.append(event)
        except Exception:
            # The status write already committed; this line is the only trace of it.
            logger.bind(
                service_name=SERVICE_NAME,
                event="listing_transition_unaudited",
                listing_id=listing_id,
                event_id=event.id,
                event_type=event.event_type.value,
                old_status=current.value,
                new_status=target_status.value,
                actor_id=actor.id,
                actor_type=actor.type.value,
            ).exception("")
            raise
        _log(
            "listing_status_changed",
            listing_id=listing_id,
            old_status=current.value,
            new_status=target_status.value,
            override=override,
            actor_id=actor.id,
            actor_type=actor.type.value,
        )

        result = TransitionResult(listing=updated, event=event)
        await self._notify(result)
        return result

    async def allowed_targets(self, listing_id: str) -> list[ListingStatus]:
        listing = await self._get_listing(listing_id)
        return sorted(allowed_targets(listing.ops_status), key=lambda status: status.value)

    async def history(self, listing_id: str, *, limit: int = 100) -> list[JobEvent]:
        await self._get_listing(listing_id)
        return await self._events.list_for_listing(listing_id, limit=limit)

    async def _get_listing(self, listing_id: str) -> Listing:
        listing = await self._listings.get(listing_id)
        if listing is None:
            raise NotFoundError(f"listing {listing_id} not found", listing_id=listing_id)
        return listing

    async def _notify(self, result: TransitionResult) -> None:
        for listener in self._listeners:
            try:
                await listener(result)
            except Exception:
                logger.bind(
                    service_name=SERVICE_NAME,
                    event="transition_listener_failed",
                    listing_id=result.listing.id,
                    listener=getattr(listener, "__name__", repr(listener)),
                ).exception("")
