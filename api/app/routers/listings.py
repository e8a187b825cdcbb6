from __future__ import annotations

from fastapi import APIRouter, Query, Request, Response

from api.app.routers.utils import error_response, json_response, service_unavailable
from api.app.schemas.jobs import JobListResponse, JobResponse
from api.app.schemas.listings import (
    AllowedTransitionsResponse,
    JobEventResponse,
    ListingEventsResponse,
    ListingResponse,
    TransitionRequest,
    TransitionResponse,
)
from orchestrator.app.domain.errors import OrchestratorError

listings_router = APIRouter(prefix="/listings", tags=["Listings"])


@listings_router.post(
    "/{listing_id}/status",
    summary="Change a listing's production status",
    description=(
        "Applies the workflow's adjacency rules. A privileged actor may move the listing "
        "to any status; that is recorded as an override."
    ),
    responses={
        200: {"description": "Status changed; one audit event written."},
        404: {"description": "Unknown listing."},
        409: {"description": "Transition not allowed, or the listing changed concurrently."},
        422: {"description": "Unknown target status."},
    },
)
async def change_status(request: Request, listing_id: str, body: TransitionRequest) -> Response:
    transitions = getattr(request.app.state, "transitions", None)
    if transitions is None:
        return service_unavailable("transitions")
    try:
        result = await transitions.transition(listing_id, body.status, body.actor.to_actor(), notes=body.notes)
    except OrchestratorError as exc:
        return error_response(exc, route="change_status")
    return json_response(
        TransitionResponse(
            listing=ListingResponse.from_listing(result.listing),
            event=JobEventResponse.from_event(result.event),
        )
    )


@listings_router.get(
    "/{listing_id}/transitions",
    summary="Statuses reachable from the current one",
    responses={200: {"description": "Allowed targets."}, 404: {"description": "Unknown listing."}},
)
async def get_allowed_transitions(request: Request, listing_id: str) -> Response:
    transitions = getattr(request.app.state, "transitions", None)
    if transitions is None:
        return service_unavailable("transitions")
    try:
        allowed = await transitions.allowed_targets(listing_id)
    except OrchestratorError as exc:
        return error_response(exc, route="get_allowed_transitions")
    return json_response(AllowedTransitionsResponse(listing_id=listing_id, allowed=allowed))


@listings_router.get(
    "/{listing_id}/events",
    summary="Audit history",
    description="Status changes and processing events for the listing, newest first.",
    responses={200: {"description": "Events."}, 404: {"description": "Unknown listing."}},
)
async def get_listing_events(
    request: Request,
    listing_id: str,
    limit: int = Query(100, ge=1, le=1000),
) -> Response:
    transitions = getattr(request.app.state, "transitions", None)
    if transitions is None:
        return service_unavailable("transitions")
    try:
        events = await transitions.history(listing_id, limit=limit)
    except OrchestratorError as exc:
        return error_response(exc, route="get_listing_events")
    return json_response(
        ListingEventsResponse(listing_id=listing_id, events=[JobEventResponse.from_event(e) for e in events])
    )


@listings_router.get(
    "/{listing_id}/jobs",
    summary="Processing jobs of a listing",
    description="Newest first.",
    responses={200: {"description": "Jobs."}, 404: {"description": "Unknown listing."}},
)
async def get_listing_jobs(request: Request, listing_id: str) -> Response:
    lifecycle = getattr(request.app.state, "lifecycle", None)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        jobs = await lifecycle.list_jobs(listing_id)
    except OrchestratorError as exc:
        return error_response(exc, route="get_listing_jobs")
    return json_response(JobListResponse(listing_id=listing_id, jobs=[JobResponse.from_job(job) for job in jobs]))
