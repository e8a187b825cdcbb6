from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Sequence

from loguru import logger

from orchestrator.app.constants import EventType, JobStatus, MediaQcStatus
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.core.locks import KeyedLocks
from orchestrator.app.domain.errors import (
    ConcurrencyConflict,
    JobStateConflict,
    NotFoundError,
    OrchestratorError,
    UpstreamFailureError,
    UpstreamTransientError,
    ValidationError,
)
from orchestrator.app.domain.job_state import (
    ACTIVE_JOB_STATUSES,
    RETRYABLE_JOB_STATUSES,
    can_retry_job,
    can_transition_job,
)
from orchestrator.app.domain.models import (
    SYSTEM_ACTOR,
    Actor,
    BatchItemFailure,
    CancelBatchResult,
    JobEvent,
    Listing,
    MediaAsset,
    PollSweepResult,
    ProcessingJob,
    RemoteJobStatus,
    RetryBatchResult,
    utcnow,
)
from orchestrator.app.domain.progress import ProcessingProgress, estimate_progress
from orchestrator.app.ports.processor_client import ProcessorClient
from orchestrator.app.ports.repositories import Repositories

DEFAULT_BULK_RETRY_LIMIT = 100
DEFAULT_MIN_BRACKETS = 2


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _warn(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def _actor_fields(actor: Actor) -> dict[str, Any]:
    return {"actor_id": actor.id, "actor_type": actor.type.value}


@dataclass(frozen=True)
class RetrySelector:
    """Exactly one of: a single job, every retryable job of a listing, or all retryable jobs."""

    job_id: str | None = None
    listing_id: str | None = None
    all_failed: bool = False

    def validate(self) -> None:
        chosen = sum((bool(self.job_id), bool(self.listing_id), bool(self.all_failed)))
        if chosen == 0:
            raise ValidationError("retry requires one selector: job_id, listing_id or all")
        if chosen > 1:
            raise ValidationError("retry accepts exactly one selector")


class JobLifecycleManager:
    """
    Submits HDR jobs to the external processor and reconciles their state.

    Local state is authoritative. Every job write is a compare-and-swap on the status
    read just before it, and operations on one job id are serialized in-process, so a
    late remote result can never overwrite a cancellation or a newer retry.

    Remote failures while creating a job (submit, dispatch, retry) leave no partial
    state. Remote failures while polling are logged and deferred to the next poll.
    """

    def __init__(
        self,
        repositories: Repositories,
        processor: ProcessorClient,
        *,
        max_retries: int = 0,
        bulk_retry_limit: int = DEFAULT_BULK_RETRY_LIMIT,
        eligible_media_types: Iterable[str] = ("photo",),
        min_brackets: int = DEFAULT_MIN_BRACKETS,
        poll_concurrency: int = 8,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._jobs = repositories.jobs
        self._listings = repositories.listings
        self._media_assets = repositories.media_assets
        self._events = repositories.events
        self._processor = processor
        self._max_retries = int(max_retries)
        self._bulk_retry_limit = int(bulk_retry_limit)
        self._eligible_media_types = frozenset(t.lower() for t in eligible_media_types)
        self._min_brackets = max(1, int(min_brackets))
        self._poll_concurrency = max(1, int(poll_concurrency))
        self._clock = clock
        self._locks = KeyedLocks()

    # reads

    async def get_job(self, job_id: str) -> ProcessingJob:
        job = await self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"job {job_id} not found", job_id=job_id)
        return job

    async def list_jobs(self, listing_id: str) -> list[ProcessingJob]:
        await self._get_listing(listing_id)
        return await self._jobs.list_by_listing(listing_id)

    async def progress(self, job_id: str) -> ProcessingProgress:
        job = await self.get_job(job_id)
        return estimate_progress(job, self._clock())

    # creation

    async def submit(
        self,
        listing_id: str,
        media_asset_ids: Sequence[str],
        *,
        actor: Actor = SYSTEM_ACTOR,
    ) -> ProcessingJob:
        """Create the remote job first; persist locally only once it exists."""
        listing, assets = await self._resolve_submission(listing_id, media_asset_ids)
        refs = [asset.storage_path for asset in assets]

        try:
            remote = await self._processor.create_job(listing.id, refs, listing.is_rush)
        except OrchestratorError as exc:
            _warn("job_submit_failed", **{**exc.context(), "listing_id": listing.id}, error=str(exc), **_actor_fields(actor))
            raise

        now = self._clock()
        job = ProcessingJob(
            id=str(uuid.uuid4()),
            listing_id=listing.id,
            status=JobStatus.PROCESSING,
            input_refs=tuple(refs),
            media_asset_ids=tuple(asset.id for asset in assets),
            external_job_id=remote.external_job_id,
            queued_at=now,
            started_at=now,
            created_at=now,
            updated_at=now,
        )
        await self._jobs.insert(job)
        await self._media_assets.set_qc_status(
            job.media_asset_ids,
            MediaQcStatus.PROCESSING,
            processing_job_id=job.id,
        )
        await self._record(
            job,
            EventType.PROCESSING_SUBMITTED,
            actor,
            new_value={
                "status": job.status.value,
                "external_job_id": job.external_job_id,
                "input_count": len(job.input_refs),
            },
        )
        _log(
            "job_submitted",
            job_id=job.id,
            listing_id=job.listing_id,
            external_job_id=job.external_job_id,
            eta_seconds=remote.eta_seconds,
            input_count=len(job.input_refs),
            **_actor_fields(actor),
        )
        return job

    async def enqueue(
        self,
        listing_id: str,
        media_asset_ids: Sequence[str],
        *,
        actor: Actor = SYSTEM_ACTOR,
    ) -> ProcessingJob:
        """Record a pending job without contacting the processor; ``dispatch`` sends it."""
        listing, assets = await self._resolve_submission(listing_id, media_asset_ids)
        now = self._clock()
        job = ProcessingJob(
            id=str(uuid.uuid4()),
            listing_id=listing.id,
            status=JobStatus.PENDING,
            input_refs=tuple(asset.storage_path for asset in assets),
            media_asset_ids=tuple(asset.id for asset in assets),
            created_at=now,
            updated_at=now,
        )
        await self._jobs.insert(job)
        await self._record(
            job,
            EventType.PROCESSING_ENQUEUED,
            actor,
            new_value={"status": job.status.value, "input_count": len(job.input_refs)},
        )
        _log("job_enqueued", job_id=job.id, listing_id=job.listing_id, **_actor_fields(actor))
        return job

    async def dispatch(self, job_id: str, *, actor: Actor = SYSTEM_ACTOR) -> ProcessingJob:
        async with self._locks.hold(job_id):
            job = await self.get_job(job_id)
            # Only a job the processor has never seen can be sent; retry covers the rest.
            self._require_transition(job, JobStatus.QUEUED, "dispatch")
            listing = await self._get_listing(job.listing_id)
            try:
                remote = await self._processor.create_job(listing.id, job.input_refs, listing.is_rush)
            except OrchestratorError as exc:
                _warn("job_dispatch_failed", job_id=job.id, listing_id=job.listing_id, error=str(exc), error_code=exc.code)
                raise

            target = JobStatus.QUEUED if remote.status == JobStatus.QUEUED else JobStatus.PROCESSING
            now = self._clock()
            updated = await self._jobs.update_if_status(
                job.id,
                {job.status},
                {
                    "status": target,
                    "external_job_id": remote.external_job_id,
                    "queued_at": job.queued_at or now,
                    "started_at": now if target == JobStatus.PROCESSING else None,
                    "updated_at": now,
                },
            )
            if updated is None:
                await self._abandon_remote(remote.external_job_id, job)
                raise ConcurrencyConflict("job changed while dispatching", job_id=job.id, listing_id=job.listing_id)

            await self._media_assets.set_qc_status(
                updated.media_asset_ids,
                MediaQcStatus.PROCESSING,
                processing_job_id=updated.id,
            )
            await self._record(
                updated,
                EventType.PROCESSING_SUBMITTED,
                actor,
                old_value={"status": job.status.value},
                new_value={"status": updated.status.value, "external_job_id": updated.external_job_id},
            )
            _log(
                "job_dispatched",
                job_id=updated.id,
                listing_id=updated.listing_id,
                external_job_id=updated.external_job_id,
                **_actor_fields(actor),
            )
            return updated

    # reconciliation

    async def poll(self, job_id: str) -> ProcessingJob:
        """Fetch remote status and apply it. Never raises for upstream trouble."""
        async with self._locks.hold(job_id):
            job = await self.get_job(job_id)
            if job.status not in ACTIVE_JOB_STATUSES:
                _log("job_poll_skipped", job_id=job.id, listing_id=job.listing_id, status=job.status.value)
                return job
            if not job.external_job_id:
                _log("job_poll_skipped", job_id=job.id, listing_id=job.listing_id, reason="no_external_job")
                return job

            try:
                remote = await self._processor.get_status(job.external_job_id)
            except (UpstreamTransientError, UpstreamFailureError) as exc:
                _warn(
                    "job_poll_deferred",
                    job_id=job.id,
                    listing_id=job.listing_id,
                    external_job_id=job.external_job_id,
                    error=str(exc),
                    error_code=exc.code,
                )
                return job

            return await self._apply_remote_status(job, remote)

    async def poll_active(self, *, limit: int = 500) -> PollSweepResult:
        """Poll every queued/processing job once, a few at a time."""
        jobs = await self._jobs.list_by_status(ACTIVE_JOB_STATUSES, limit=limit)
        semaphore = asyncio.Semaphore(self._poll_concurrency)

        async def _poll_one(job: ProcessingJob) -> bool:
            async with semaphore:
                try:
                    polled = await self.poll(job.id)
                except OrchestratorError as exc:
                    _warn("job_poll_failed", job_id=job.id, listing_id=job.listing_id, error=str(exc), error_code=exc.code)
                    return False
                return polled.status != job.status

        outcomes = await asyncio.gather(*(_poll_one(job) for job in jobs))
        changed = sum(1 for outcome in outcomes if outcome)
        result = PollSweepResult(polled=len(jobs), changed=changed, unchanged=len(jobs) - changed)
        _log("poll_sweep_finished", polled=result.polled, changed=result.changed)
        return result

    async def _apply_remote_status(self, job: ProcessingJob, remote: RemoteJobStatus) -> ProcessingJob:
        now = self._clock()

        if remote.status == job.status:
            if remote.metrics and remote.metrics != job.metrics:
                refreshed = await self._jobs.update_if_status(job.id, {job.status}, {"metrics": remote.metrics, "updated_at": now})
                return refreshed or job
            return job

        if not can_transition_job(job.status, remote.status):
            _warn(
                "remote_status_ignored",
                job_id=job.id,
                listing_id=job.listing_id,
                local_status=job.status.value,
                remote_status=remote.status.value,
            )
            return job

        changes: dict[str, Any] = {"status": remote.status, "updated_at": now}
        if remote.status == JobStatus.PROCESSING:
            changes["started_at"] = job.started_at or now
        elif remote.status == JobStatus.COMPLETED:
            changes["output_ref"] = remote.output_ref
            changes["metrics"] = remote.metrics if remote.metrics is not None else job.metrics
            changes["completed_at"] = now
        elif remote.status == JobStatus.FAILED:
            changes["error_message"] = remote.error_message or "remote processing failed"
            changes["last_failed_at"] = now
            if remote.metrics is not None:
                changes["metrics"] = remote.metrics

        updated = await self._jobs.update_if_status(job.id, {job.status}, changes)
        if updated is None:
            current = await self._jobs.get(job.id)
            _log(
                "job_late_result_ignored",
                job_id=job.id,
                listing_id=job.listing_id,
                remote_status=remote.status.value,
                current_status=current.status.value if current else None,
            )
            return current or job

        await self._settle_media(updated)
        event_type = {
            JobStatus.COMPLETED: EventType.PROCESSING_COMPLETED,
            JobStatus.FAILED: EventType.PROCESSING_FAILED,
            JobStatus.CANCELLED: EventType.PROCESSING_CANCELLED,
        }.get(updated.status)
        if event_type is not None:
            await self._record(
                updated,
                event_type,
                SYSTEM_ACTOR,
                old_value={"status": job.status.value},
                new_value={
                    "status": updated.status.value,
                    "output_ref": updated.output_ref,
                    "error_message": updated.error_message,
                },
            )
        _log(
            "job_polled",
            job_id=updated.id,
            listing_id=updated.listing_id,
            old_status=job.status.value,
            new_status=updated.status.value,
        )
        return updated

    # retry

    async def mark_for_retry(self, job_id: str, *, actor: Actor = SYSTEM_ACTOR) -> ProcessingJob:
        """The manual ``failed -> pending_retry`` step."""
        async with self._locks.hold(job_id):
            job = await self.get_job(job_id)
            self._require_transition(job, JobStatus.PENDING_RETRY, "mark for retry")
            updated = await self._jobs.update_if_status(
                job.id, {job.status}, {"status": JobStatus.PENDING_RETRY, "updated_at": self._clock()}
            )
            if updated is None:
                raise ConcurrencyConflict("job changed while marking for retry", job_id=job.id, listing_id=job.listing_id)
            await self._record(
                updated,
                EventType.PROCESSING_MARKED_FOR_RETRY,
                actor,
                old_value={"status": job.status.value},
                new_value={"status": updated.status.value},
            )
            _log("job_marked_for_retry", job_id=job.id, listing_id=job.listing_id, **_actor_fields(actor))
            return updated

    async def retry(self, job_id: str, *, actor: Actor = SYSTEM_ACTOR) -> ProcessingJob:
        async with self._locks.hold(job_id):
            try:
                return await self._retry_locked(job_id, actor)
            except OrchestratorError as exc:
                _warn("job_retry_failed", **{**exc.context(), "job_id": job_id}, error=str(exc), **_actor_fields(actor))
                raise

    async def retry_many(self, selector: RetrySelector, *, actor: Actor = SYSTEM_ACTOR) -> RetryBatchResult:
        """Retry a batch; one item failing never stops the rest."""
        selector.validate()
        if selector.job_id:
            job_ids = [selector.job_id]
        elif selector.listing_id:
            await self._get_listing(selector.listing_id)
            jobs = await self._jobs.list_by_listing(selector.listing_id, statuses=RETRYABLE_JOB_STATUSES)
            job_ids = [job.id for job in jobs[: self._bulk_retry_limit]]
        else:
            jobs = await self._jobs.list_by_status(RETRYABLE_JOB_STATUSES, limit=self._bulk_retry_limit)
            job_ids = [job.id for job in jobs]

        result = RetryBatchResult()
        for job_id in job_ids:
            try:
                await self.retry(job_id, actor=actor)
            except OrchestratorError as exc:
                result.failed.append(
                    BatchItemFailure(job_id=job_id, error=exc.code, detail=str(exc), retryable=exc.retryable)
                )
            else:
                result.retried.append(job_id)

        _log(
            "job_retry_batch",
            selected=len(job_ids),
            retried=len(result.retried),
            failed=len(result.failed),
            selector_job_id=selector.job_id,
            selector_listing_id=selector.listing_id,
            selector_all=selector.all_failed,
            **_actor_fields(actor),
        )
        return result

    async def _retry_locked(self, job_id: str, actor: Actor) -> ProcessingJob:
        job = await self.get_job(job_id)
        if not can_retry_job(job.status):
            raise JobStateConflict(
                f"cannot retry job in status {job.status.value}",
                current=job.status.value,
                job_id=job.id,
                listing_id=job.listing_id,
            )
        if self._max_retries and job.retry_count >= self._max_retries:
            raise JobStateConflict(
                f"retry limit of {self._max_retries} reached",
                current=job.status.value,
                job_id=job.id,
                listing_id=job.listing_id,
            )

        # Current assets, not the original snapshot: picks up media added since.
        listing = await self._get_listing(job.listing_id)
        assets = [
            asset
            for asset in await self._media_assets.list_for_listing(listing.id)
            if self._is_eligible(asset)
        ]
        self._require_brackets(assets, listing_id=listing.id, job_id=job.id)
        refs = [asset.storage_path for asset in assets]

        remote = await self._processor.create_job(listing.id, refs, listing.is_rush)

        now = self._clock()
        updated = await self._jobs.update_if_status(
            job.id,
            {job.status},
            {
                "status": JobStatus.PROCESSING,
                "external_job_id": remote.external_job_id,
                "error_message": None,
                "output_ref": None,
                "completed_at": None,
                "retry_count": job.retry_count + 1,
                "input_refs": tuple(refs),
                "media_asset_ids": tuple(asset.id for asset in assets),
                "queued_at": now,
                "started_at": now,
                "updated_at": now,
            },
        )
        if updated is None:
            await self._abandon_remote(remote.external_job_id, job)
            raise ConcurrencyConflict("job changed while retrying", job_id=job.id, listing_id=job.listing_id)

        await self._media_assets.set_qc_status(
            updated.media_asset_ids,
            MediaQcStatus.PROCESSING,
            processing_job_id=updated.id,
        )
        await self._record(
            updated,
            EventType.PROCESSING_RETRY,
            actor,
            old_value={
                "status": job.status.value,
                "external_job_id": job.external_job_id,
                "error_message": job.error_message,
            },
            new_value={
                "status": updated.status.value,
                "external_job_id": updated.external_job_id,
                "retry_count": updated.retry_count,
                "input_count": len(updated.input_refs),
            },
        )
        _log(
            "job_retried",
            job_id=updated.id,
            listing_id=updated.listing_id,
            superseded_external_job_id=job.external_job_id,
            external_job_id=updated.external_job_id,
            retry_count=updated.retry_count,
            **_actor_fields(actor),
        )
        return updated

    # cancellation

    async def cancel(self, job_id: str, *, actor: Actor = SYSTEM_ACTOR) -> ProcessingJob:
        """Cancel locally first; the remote cancel afterwards is best-effort."""
        async with self._locks.hold(job_id):
            job = await self.get_job(job_id)
            self._require_transition(job, JobStatus.CANCELLED, "cancel")
            updated = await self._jobs.update_if_status(
                job.id, {job.status}, {"status": JobStatus.CANCELLED, "updated_at": self._clock()}
            )
            if updated is None:
                raise ConcurrencyConflict("job changed while cancelling", job_id=job.id, listing_id=job.listing_id)

            await self._settle_media(updated)

            await self._record(
                updated,
                EventType.PROCESSING_CANCELLED,
                actor,
                old_value={"status": job.status.value},
                new_value={"status": updated.status.value},
            )
            _log("job_cancelled", job_id=job.id, listing_id=job.listing_id, **_actor_fields(actor))

            if updated.external_job_id:
                try:
                    await self._processor.cancel_job(updated.external_job_id)
                except OrchestratorError as exc:
                    _warn(
                        "job_remote_cancel_failed",
                        job_id=job.id,
                        listing_id=job.listing_id,
                        external_job_id=updated.external_job_id,
                        error=str(exc),
                    )
            return updated

    async def cancel_many(self, job_ids: Sequence[str], *, actor: Actor = SYSTEM_ACTOR) -> CancelBatchResult:
        if not job_ids:
            raise ValidationError("cancel requires at least one job id")
        result = CancelBatchResult()
        for job_id in dict.fromkeys(job_ids):
            try:
                await self.cancel(job_id, actor=actor)
            except OrchestratorError as exc:
                result.failed.append(
                    BatchItemFailure(job_id=job_id, error=exc.code, detail=str(exc), retryable=exc.retryable)
                )
            else:
                result.cancelled.append(job_id)
        return result

    # helpers

    async def _get_listing(self, listing_id: str) -> Listing:
        listing = await self._listings.get(listing_id)
        if listing is None:
            raise NotFoundError(f"listing {listing_id} not found", listing_id=listing_id)
        return listing

    async def _resolve_submission(
        self,
        listing_id: str,
        media_asset_ids: Sequence[str],
    ) -> tuple[Listing, list[MediaAsset]]:
        if not listing_id:
            raise ValidationError("listing_id is required")
        ids = [i for i in dict.fromkeys(media_asset_ids or ()) if i]
        if not ids:
            raise ValidationError("at least one media asset id is required", listing_id=listing_id)
        listing = await self._get_listing(listing_id)

        assets = await self._media_assets.get_many(ids)
        found = {asset.id for asset in assets}
        missing = [i for i in ids if i not in found]
        if missing:
            raise ValidationError(f"unknown media assets: {', '.join(missing)}", listing_id=listing_id)
        foreign = [asset.id for asset in assets if asset.listing_id != listing.id]
        if foreign:
            raise ValidationError(
                f"media assets belong to another listing: {', '.join(foreign)}",
                listing_id=listing_id,
            )
        ineligible = [asset.id for asset in assets if not self._is_eligible(asset)]
        if ineligible:
            raise ValidationError(
                f"media assets cannot be HDR processed: {', '.join(ineligible)}",
                listing_id=listing_id,
            )
        self._require_brackets(assets, listing_id=listing_id)
        return listing, assets

    def _is_eligible(self, asset: MediaAsset) -> bool:
        return asset.type.lower() in self._eligible_media_types

    def _require_brackets(self, assets: Sequence[MediaAsset], *, listing_id: str, job_id: str | None = None) -> None:
        if len(assets) < self._min_brackets:
            raise ValidationError(
                f"at least {self._min_brackets} bracket images are required, got {len(assets)}",
                job_id=job_id,
                listing_id=listing_id,
            )

    def _require_transition(self, job: ProcessingJob, target: JobStatus, action: str) -> None:
        if not can_transition_job(job.status, target):
            raise JobStateConflict(
                f"cannot {action} job in status {job.status.value}",
                current=job.status.value,
                job_id=job.id,
                listing_id=job.listing_id,
            )

    async def _settle_media(self, job: ProcessingJob) -> None:
        """Hand a finished job's brackets on: to QC when it produced output, back to pending otherwise."""
        if job.status == JobStatus.COMPLETED:
            qc_status = MediaQcStatus.READY_FOR_QC
        elif job.status in (JobStatus.FAILED, JobStatus.CANCELLED):
            qc_status = MediaQcStatus.PENDING
        else:
            return
        # Assets claimed by a newer job since are left alone.
        owned = [
            asset.id
            for asset in await self._media_assets.get_many(job.media_asset_ids)
            if asset.processing_job_id == job.id
        ]
        if owned:
            await self._media_assets.set_qc_status(owned, qc_status)
            _log("job_media_settled", job_id=job.id, listing_id=job.listing_id, qc_status=qc_status.value, count=len(owned))

    async def _abandon_remote(self, external_job_id: str, job: ProcessingJob) -> None:
        """Best-effort cancel of a remote job the local state no longer wants."""
        try:
            await self._processor.cancel_job(external_job_id)
        except OrchestratorError as exc:
            _warn(
                "job_orphaned_remote",
                job_id=job.id,
                listing_id=job.listing_id,
                external_job_id=external_job_id,
                error=str(exc),
            )

    async def _record(
        self,
        job: ProcessingJob,
        event_type: EventType,
        actor: Actor,
        *,
        old_value: dict[str, Any] | None = None,
        new_value: dict[str, Any] | None = None,
    ) -> None:
        await self._events.append(
            JobEvent(
                id=str(uuid.uuid4()),
                listing_id=job.listing_id,
                job_id=job.id,
                event_type=event_type,
                actor_id=actor.id,
                actor_type=actor.type,
                old_value=old_value,
                new_value=new_value,
                created_at=self._clock(),
            )
        )
