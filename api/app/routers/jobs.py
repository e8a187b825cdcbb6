from __future__ import annotations

from fastapi import APIRouter, Request, Response

from api.app.routers.utils import error_response, json_response, service_unavailable
from api.app.schemas.jobs import (
    ActorRequest,
    CancelJobsRequest,
    CancelJobsResponse,
    JobResponse,
    ProgressResponse,
    RetryJobsRequest,
    RetryJobsResponse,
    SubmitJobRequest,
)
from orchestrator.app.application.job_lifecycle import JobLifecycleManager, RetrySelector
from orchestrator.app.domain.errors import OrchestratorError
from orchestrator.app.domain.models import Actor

jobs_router = APIRouter(prefix="/jobs", tags=["Processing jobs"])

_ERROR_RESPONSES = {
    404: {"description": "Unknown job or listing."},
    409: {"description": "Job is not in a status that allows this operation."},
    422: {"description": "Invalid request."},
    502: {"description": "Processor rejected the request."},
    503: {"description": "Processor or storage temporarily unavailable; safe to retry."},
}


def _lifecycle(request: Request) -> JobLifecycleManager | None:
    return getattr(request.app.state, "lifecycle", None)


def _actor(body: ActorRequest | None) -> Actor:
    return (body or ActorRequest()).actor.to_actor()


@jobs_router.post(
    "",
    summary="Submit an HDR job",
    description="Creates the job on the external processor, then records it locally as processing.",
    status_code=201,
    responses={201: {"description": "Job submitted."}, **_ERROR_RESPONSES},
)
async def submit_job(request: Request, body: SubmitJobRequest) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.submit(body.listing_id, body.media_asset_ids, actor=body.actor.to_actor())
    except OrchestratorError as exc:
        return error_response(exc, route="submit_job")
    return json_response(JobResponse.from_job(job), status_code=201)


@jobs_router.post(
    "/enqueue",
    summary="Record a pending job",
    description="Records the job locally without contacting the processor. Send it later with dispatch.",
    status_code=201,
    responses={201: {"description": "Job recorded as pending."}, **_ERROR_RESPONSES},
)
async def enqueue_job(request: Request, body: SubmitJobRequest) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.enqueue(body.listing_id, body.media_asset_ids, actor=body.actor.to_actor())
    except OrchestratorError as exc:
        return error_response(exc, route="enqueue_job")
    return json_response(JobResponse.from_job(job), status_code=201)


@jobs_router.post(
    "/retry",
    summary="Retry failed jobs",
    description="Selects one job, every retryable job of a listing, or all retryable jobs. Each item succeeds or fails on its own.",
    responses={200: {"description": "Per-item outcome."}, **_ERROR_RESPONSES},
)
async def retry_jobs(request: Request, body: RetryJobsRequest) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    selector = RetrySelector(job_id=body.job_id, listing_id=body.listing_id, all_failed=body.all)
    try:
        result = await lifecycle.retry_many(selector, actor=body.actor.to_actor())
    except OrchestratorError as exc:
        return error_response(exc, route="retry_jobs")
    return json_response(RetryJobsResponse.from_result(result))


@jobs_router.post(
    "/cancel",
    summary="Cancel several jobs",
    description="Cancels each pending or queued job. Jobs in any other status are reported as failed items.",
    responses={200: {"description": "Per-item outcome."}, **_ERROR_RESPONSES},
)
async def cancel_jobs(request: Request, body: CancelJobsRequest) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        result = await lifecycle.cancel_many(body.job_ids, actor=body.actor.to_actor())
    except OrchestratorError as exc:
        return error_response(exc, route="cancel_jobs")
    return json_response(CancelJobsResponse.from_result(result))


@jobs_router.get(
    "/{job_id}",
    summary="Get a job",
    responses={200: {"description": "The job."}, 404: {"description": "Unknown job."}},
)
async def get_job(request: Request, job_id: str) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.get_job(job_id)
    except OrchestratorError as exc:
        return error_response(exc, route="get_job")
    return json_response(JobResponse.from_job(job))


@jobs_router.get(
    "/{job_id}/progress",
    summary="Estimated progress",
    description="Stage, stage label and estimated completion inferred from the processor's stage timings.",
    responses={200: {"description": "Progress estimate."}, 404: {"description": "Unknown job."}},
)
async def get_job_progress(request: Request, job_id: str) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        progress = await lifecycle.progress(job_id)
    except OrchestratorError as exc:
        return error_response(exc, route="get_job_progress")
    return json_response(ProgressResponse.from_progress(job_id, progress))


@jobs_router.post(
    "/{job_id}/dispatch",
    summary="Send a pending job to the processor",
    responses={200: {"description": "Job dispatched."}, **_ERROR_RESPONSES},
)
async def dispatch_job(request: Request, job_id: str, body: ActorRequest | None = None) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.dispatch(job_id, actor=_actor(body))
    except OrchestratorError as exc:
        return error_response(exc, route="dispatch_job")
    return json_response(JobResponse.from_job(job))


@jobs_router.post(
    "/{job_id}/poll",
    summary="Reconcile one job now",
    description="Fetches the processor status and applies it. Processor errors leave the job unchanged.",
    responses={200: {"description": "Job after reconciliation."}, 404: {"description": "Unknown job."}},
)
async def poll_job(request: Request, job_id: str) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.poll(job_id)
    except OrchestratorError as exc:
        return error_response(exc, route="poll_job")
    return json_response(JobResponse.from_job(job))


@jobs_router.post(
    "/{job_id}/mark-retry",
    summary="Mark a failed job for retry",
    responses={200: {"description": "Job is pending_retry."}, **_ERROR_RESPONSES},
)
async def mark_job_for_retry(request: Request, job_id: str, body: ActorRequest | None = None) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.mark_for_retry(job_id, actor=_actor(body))
    except OrchestratorError as exc:
        return error_response(exc, route="mark_job_for_retry")
    return json_response(JobResponse.from_job(job))


@jobs_router.post(
    "/{job_id}/cancel",
    summary="Cancel a job",
    description="Only pending or queued jobs can be cancelled. The processor is asked to cancel too, best-effort.",
    responses={200: {"description": "Job cancelled."}, **_ERROR_RESPONSES},
)
async def cancel_job(request: Request, job_id: str, body: ActorRequest | None = None) -> Response:
    lifecycle = _lifecycle(request)
    if lifecycle is None:
        return service_unavailable("lifecycle")
    try:
        job = await lifecycle.cancel(job_id, actor=_actor(body))
    except OrchestratorError as exc:
        return error_response(exc, route="cancel_job")
    return json_response(JobResponse.from_job(job))
