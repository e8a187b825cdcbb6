from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from api.app.schemas.common import ActorPayload
from orchestrator.app.constants import JobStatus
from orchestrator.app.domain.models import (
    BatchItemFailure,
    CancelBatchResult,
    ProcessingJob,
    RetryBatchResult,
)
from orchestrator.app.domain.progress import ProcessingProgress


class SubmitJobRequest(BaseModel):
    listing_id: str = Field(..., min_length=1)
    media_asset_ids: list[str] = Field(..., min_length=1)
    actor: ActorPayload = Field(default_factory=ActorPayload)


class ActorRequest(BaseModel):
    actor: ActorPayload = Field(default_factory=ActorPayload)


class RetryJobsRequest(BaseModel):
    """Exactly one selector must be set."""

    job_id: str | None = None
    listing_id: str | None = None
    all: bool = False
    actor: ActorPayload = Field(default_factory=ActorPayload)


class CancelJobsRequest(BaseModel):
    job_ids: list[str] = Field(..., min_length=1)
    actor: ActorPayload = Field(default_factory=ActorPayload)


class JobResponse(BaseModel):
    id: str
    listing_id: str
    status: JobStatus
    external_job_id: str | None = None
    input_refs: list[str]
    media_asset_ids: list[str]
    output_ref: str | None = None
    retry_count: int = 0
    error_message: str | None = None
    metrics: dict[str, Any] | None = None
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_job(cls, job: ProcessingJob) -> "JobResponse":
        return cls(
            id=job.id,
            listing_id=job.listing_id,
            status=job.status,
            external_job_id=job.external_job_id,
            input_refs=list(job.input_refs),
            media_asset_ids=list(job.media_asset_ids),
            output_ref=job.output_ref,
            retry_count=job.retry_count,
            error_message=job.error_message,
            metrics=job.metrics,
            queued_at=job.queued_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )


class JobListResponse(BaseModel):
    listing_id: str
    jobs: list[JobResponse]


class BatchItemFailureResponse(BaseModel):
    job_id: str
    error: str
    detail: str
    retryable: bool

    @classmethod
    def from_failure(cls, failure: BatchItemFailure) -> "BatchItemFailureResponse":
        return cls(
            job_id=failure.job_id,
            error=failure.error,
            detail=failure.detail,
            retryable=failure.retryable,
        )


class RetryJobsResponse(BaseModel):
    retried: list[str]
    failed: list[BatchItemFailureResponse]

    @classmethod
    def from_result(cls, result: RetryBatchResult) -> "RetryJobsResponse":
        return cls(
            retried=list(result.retried),
            failed=[BatchItemFailureResponse.from_failure(f) for f in result.failed],
        )


class CancelJobsResponse(BaseModel):
    cancelled: list[str]
    failed: list[BatchItemFailureResponse]

    @classmethod
    def from_result(cls, result: CancelBatchResult) -> "CancelJobsResponse":
        return cls(
            cancelled=list(result.cancelled),
            failed=[BatchItemFailureResponse.from_failure(f) for f in result.failed],
        )


class ProgressResponse(BaseModel):
    job_id: str
    stage: str
    stage_label: str
    stage_progress: float
    overall_progress: float
    estimated_seconds_remaining: float | None = None
    metrics: dict[str, Any] | None = None

    @classmethod
    def from_progress(cls, job_id: str, progress: ProcessingProgress) -> "ProgressResponse":
        return cls(
            job_id=job_id,
            stage=progress.stage,
            stage_label=progress.stage_label,
            stage_progress=progress.stage_progress,
            overall_progress=progress.overall_progress,
            estimated_seconds_remaining=progress.estimated_seconds_remaining,
            metrics=progress.metrics,
        )
