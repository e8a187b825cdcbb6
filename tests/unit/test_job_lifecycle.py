"""Unit tests for JobLifecycleManager: submit, enqueue/dispatch, poll and cancel."""
from __future__ import annotations

import asyncio

import pytest

from orchestrator.app.application.job_lifecycle import JobLifecycleManager
from orchestrator.app.constants import EventType, JobStatus, MediaQcStatus
from orchestrator.app.domain.errors import (
    JobStateConflict,
    NotFoundError,
    UpstreamFailureError,
    UpstreamTransientError,
    ValidationError,
)
from orchestrator.app.domain.models import Actor, RemoteJobStatus
from tests.conftest import FakeProcessor, build_services, seed_job, seed_listing

ASSETS = ["listing-1-asset-0", "listing-1-asset-1"]


def test_submit_creates_remote_job_then_local_row(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories, is_rush=True)
        job = await services.lifecycle.submit("listing-1", ASSETS, actor=Actor(id="staff-1"))

        assert job.status == JobStatus.PROCESSING
        assert job.external_job_id == "ext-1"
        assert job.input_refs == ("listings/listing-1/raw/0.jpg", "listings/listing-1/raw/1.jpg")
        assert job.started_at == services.clock.now
        assert services.processor.created == [("listing-1", list(job.input_refs), True)]

        stored = await services.repositories.jobs.get(job.id)
        assert stored == job

        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PROCESSING}
        assert {a.processing_job_id for a in assets} == {job.id}

        events = services.events.events
        assert [e.event_type for e in events] == [EventType.PROCESSING_SUBMITTED]
        assert events[0].job_id == job.id
        assert events[0].actor_id == "staff-1"

    asyncio.run(_run())


def test_submit_remote_failure_leaves_no_local_row(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        services.processor.create_error = UpstreamTransientError("processor unreachable")

        with pytest.raises(UpstreamTransientError):
            await services.lifecycle.submit("listing-1", ASSETS)

        assert await services.lifecycle.list_jobs("listing-1") == []
        assert services.events.events == []
        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PENDING}

    asyncio.run(_run())


def test_submit_validates_before_calling_processor(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        await seed_listing(services.repositories, "listing-2")

        with pytest.raises(ValidationError):
            await services.lifecycle.submit("listing-1", [])
        with pytest.raises(ValidationError):
            await services.lifecycle.submit("listing-1", ["missing-asset"])
        with pytest.raises(ValidationError):
            await services.lifecycle.submit("listing-1", ["listing-2-asset-0"])
        with pytest.raises(NotFoundError):
            await services.lifecycle.submit("no-such-listing", ASSETS)

        assert services.processor.created == []

    asyncio.run(_run())


def test_enqueue_then_dispatch(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        pending = await services.lifecycle.enqueue("listing-1", ASSETS)
        assert pending.status == JobStatus.PENDING
        assert pending.external_job_id is None
        assert services.processor.created == []

        dispatched = await services.lifecycle.dispatch(pending.id)
        assert dispatched.status == JobStatus.QUEUED
        assert dispatched.started_at is None
        assert dispatched.external_job_id == "ext-1"
        assert dispatched.input_refs == pending.input_refs

        with pytest.raises(JobStateConflict):
            await services.lifecycle.dispatch(pending.id)

        assert [e.event_type for e in services.events.events] == [
            EventType.PROCESSING_ENQUEUED,
            EventType.PROCESSING_SUBMITTED,
        ]

    asyncio.run(_run())


def test_submit_then_poll_to_completion(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        job = await services.lifecycle.submit("listing-1", ASSETS)

        services.clock.advance(seconds=40)
        services.processor.statuses["ext-1"] = RemoteJobStatus(
            status=JobStatus.COMPLETED,
            output_ref="listings/listing-1/hdr/out.jpg",
            metrics={"alignment_time_ms": 900, "export_time_ms": 300},
        )
        completed = await services.lifecycle.poll(job.id)

        assert completed.status == JobStatus.COMPLETED
        assert completed.output_ref == "listings/listing-1/hdr/out.jpg"
        assert completed.completed_at == services.clock.now
        assert completed.metrics == {"alignment_time_ms": 900, "export_time_ms": 300}
        assert services.events.events[-1].event_type == EventType.PROCESSING_COMPLETED

        # Terminal: polling again neither calls the processor nor changes anything.
        again = await services.lifecycle.poll(job.id)
        assert again == completed
        assert services.processor.status_requests == ["ext-1"]

    asyncio.run(_run())


def test_poll_records_remote_failure(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=JobStatus.PROCESSING, external_job_id="ext-a")
        services.processor.statuses["ext-a"] = RemoteJobStatus(status=JobStatus.FAILED, error_message="bad brackets")

        failed = await services.lifecycle.poll("job-1")

        assert failed.status == JobStatus.FAILED
        assert failed.error_message == "bad brackets"
        assert failed.last_failed_at == services.clock.now
        assert services.events.events[-1].event_type == EventType.PROCESSING_FAILED

    asyncio.run(_run())


@pytest.mark.parametrize(
    "error",
    [UpstreamTransientError("timeout"), UpstreamFailureError("rejected")],
)
def test_poll_upstream_errors_leave_job_unchanged(error: Exception) -> None:
    services = build_services()

    async def _run() -> None:
        job = await seed_job(services.repositories, "job-1", status=JobStatus.PROCESSING, external_job_id="ext-a")
        services.processor.status_error = error

        polled = await services.lifecycle.poll("job-1")

        assert polled == job
        assert services.events.events == []

    asyncio.run(_run())


def test_poll_refreshes_metrics_without_status_change(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=JobStatus.PROCESSING, external_job_id="ext-a")
        services.processor.statuses["ext-a"] = RemoteJobStatus(
            status=JobStatus.PROCESSING,
            metrics={"alignment_time_ms": 1200},
        )

        polled = await services.lifecycle.poll("job-1")

        assert polled.status == JobStatus.PROCESSING
        assert polled.metrics == {"alignment_time_ms": 1200}
        assert services.events.events == []

    asyncio.run(_run())


def test_poll_ignores_backwards_remote_status(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=JobStatus.PROCESSING, external_job_id="ext-a")
        services.processor.statuses["ext-a"] = RemoteJobStatus(status=JobStatus.QUEUED)

        polled = await services.lifecycle.poll("job-1")

        assert polled.status == JobStatus.PROCESSING

    asyncio.run(_run())


def test_poll_unknown_job_raises_not_found(services) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(services.lifecycle.poll("missing"))


class CancellingProcessor(FakeProcessor):
    """Simulates another process cancelling the job while the status request is in flight."""

    def __init__(self, repositories) -> None:
        super().__init__()
        self._repositories = repositories

    async def get_status(self, external_job_id: str) -> RemoteJobStatus:
        await self._repositories.jobs.update_if_status("job-1", {JobStatus.QUEUED}, {"status": JobStatus.CANCELLED})
        return RemoteJobStatus(status=JobStatus.COMPLETED, output_ref="late.jpg")


def test_late_completion_after_concurrent_cancel_is_ignored() -> None:
    services = build_services()
    processor = CancellingProcessor(services.repositories)
    lifecycle = JobLifecycleManager(services.repositories, processor, clock=services.clock)

    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=JobStatus.QUEUED, external_job_id="ext-q")

        polled = await lifecycle.poll("job-1")

        assert polled.status == JobStatus.CANCELLED
        assert polled.output_ref is None
        stored = await services.repositories.jobs.get("job-1")
        assert stored.status == JobStatus.CANCELLED
        assert services.events.events == []

    asyncio.run(_run())


def test_cancel_queued_job_is_local_first(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=JobStatus.QUEUED, external_job_id="ext-q")
        services.processor.cancel_error = UpstreamTransientError("processor down")

        cancelled = await services.lifecycle.cancel("job-1", actor=Actor(id="staff-1"))

        assert cancelled.status == JobStatus.CANCELLED
        assert services.processor.cancelled == ["ext-q"]
        assert [e.event_type for e in services.events.events] == [EventType.PROCESSING_CANCELLED]

        # A completion arriving later is a no-op.
        services.processor.statuses["ext-q"] = RemoteJobStatus(status=JobStatus.COMPLETED, output_ref="late.jpg")
        polled = await services.lifecycle.poll("job-1")
        assert polled.status == JobStatus.CANCELLED
        assert services.processor.status_requests == []

    asyncio.run(_run())


@pytest.mark.parametrize("status", [JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED])
def test_cancel_rejects_non_cancellable_status(status: JobStatus) -> None:
    services = build_services()

    async def _run() -> None:
        await seed_job(services.repositories, "job-1", status=status)
        with pytest.raises(JobStateConflict) as exc_info:
            await services.lifecycle.cancel("job-1")
        assert exc_info.value.current == status.value
        stored = await services.repositories.jobs.get("job-1")
        assert stored.status == status

    asyncio.run(_run())


def test_cancel_many_reports_each_item(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-q", status=JobStatus.QUEUED)
        await seed_job(services.repositories, "job-p", status=JobStatus.PROCESSING)

        result = await services.lifecycle.cancel_many(["job-q", "job-p", "job-missing"])

        assert result.cancelled == ["job-q"]
        assert [(f.job_id, f.error) for f in result.failed] == [
            ("job-p", "job_state_conflict"),
            ("job-missing", "not_found"),
        ]

    asyncio.run(_run())


def test_poll_active_sweeps_queued_and_processing_jobs(services) -> None:
    async def _run() -> None:
        await seed_job(services.repositories, "job-a", status=JobStatus.PROCESSING, external_job_id="ext-a")
        await seed_job(services.repositories, "job-b", status=JobStatus.QUEUED, external_job_id="ext-b")
        await seed_job(services.repositories, "job-c", status=JobStatus.COMPLETED, external_job_id="ext-c")
        services.processor.statuses["ext-a"] = RemoteJobStatus(status=JobStatus.COMPLETED, output_ref="a.jpg")
        services.processor.statuses["ext-b"] = RemoteJobStatus(status=JobStatus.QUEUED)

        result = await services.lifecycle.poll_active(limit=10)

        assert (result.polled, result.changed, result.unchanged) == (2, 1, 1)
        assert sorted(services.processor.status_requests) == ["ext-a", "ext-b"]
        assert (await services.repositories.jobs.get("job-a")).status == JobStatus.COMPLETED

    asyncio.run(_run())


def test_progress_reflects_running_stage(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        job = await services.lifecycle.submit("listing-1", ASSETS)
        services.clock.advance(seconds=10)

        progress = await services.lifecycle.progress(job.id)

        assert progress.stage == "aligning"
        assert 5 < progress.overall_progress < 25
        assert progress.estimated_seconds_remaining is not None

    asyncio.run(_run())


def test_completed_job_hands_brackets_to_qc(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        job = await services.lifecycle.submit("listing-1", ASSETS)
        services.processor.statuses["ext-1"] = RemoteJobStatus(status=JobStatus.COMPLETED, output_ref="out.jpg")

        await services.lifecycle.poll(job.id)

        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert [a.qc_status for a in assets] == [MediaQcStatus.READY_FOR_QC, MediaQcStatus.READY_FOR_QC]
        assert {a.processing_job_id for a in assets} == {job.id}

    asyncio.run(_run())


def test_failed_job_releases_brackets_for_retry(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        job = await services.lifecycle.submit("listing-1", ASSETS)
        services.processor.statuses["ext-1"] = RemoteJobStatus(status=JobStatus.FAILED, error_message="misaligned")

        await services.lifecycle.poll(job.id)
        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PENDING}

        retried = await services.lifecycle.retry(job.id)
        assert retried.status == JobStatus.PROCESSING
        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PROCESSING}

    asyncio.run(_run())


def test_brackets_claimed_by_a_newer_job_are_left_alone(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        first = await services.lifecycle.submit("listing-1", ASSETS)
        second = await services.lifecycle.submit("listing-1", ASSETS)
        services.processor.statuses["ext-1"] = RemoteJobStatus(status=JobStatus.FAILED)

        await services.lifecycle.poll(first.id)

        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PROCESSING}
        assert {a.processing_job_id for a in assets} == {second.id}

    asyncio.run(_run())


def test_cancelling_a_dispatched_job_releases_its_brackets(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        pending = await services.lifecycle.enqueue("listing-1", ASSETS)
        queued = await services.lifecycle.dispatch(pending.id)
        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PROCESSING}

        await services.lifecycle.cancel(queued.id)

        assets = await services.repositories.media_assets.get_many(ASSETS)
        assert {a.qc_status for a in assets} == {MediaQcStatus.PENDING}
        assert services.processor.cancelled == ["ext-1"]

    asyncio.run(_run())


def test_dispatched_job_moves_from_queued_to_processing_on_poll(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        pending = await services.lifecycle.enqueue("listing-1", ASSETS)
        queued = await services.lifecycle.dispatch(pending.id)
        assert queued.status == JobStatus.QUEUED

        services.clock.advance(seconds=5)
        running = await services.lifecycle.poll(queued.id)

        assert running.status == JobStatus.PROCESSING
        assert running.started_at == services.clock.now

    asyncio.run(_run())


def test_pending_retry_job_cannot_be_dispatched(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)
        await seed_job(services.repositories, "job-1", status=JobStatus.FAILED)
        await services.lifecycle.mark_for_retry("job-1")

        with pytest.raises(JobStateConflict) as exc_info:
            await services.lifecycle.dispatch("job-1")

        assert exc_info.value.current == "pending_retry"
        assert services.processor.created == []

    asyncio.run(_run())


def test_submit_requires_enough_brackets(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories)

        with pytest.raises(ValidationError) as exc_info:
            await services.lifecycle.submit("listing-1", ["listing-1-asset-0"])
        assert "at least 2 bracket images" in str(exc_info.value)
        with pytest.raises(ValidationError):
            await services.lifecycle.enqueue("listing-1", ["listing-1-asset-0"])

        assert services.processor.created == []
        assert await services.lifecycle.list_jobs("listing-1") == []

    asyncio.run(_run())


def test_submit_rejects_non_photo_media(services) -> None:
    async def _run() -> None:
        await seed_listing(services.repositories, asset_types=("photo", "photo", "video"))

        with pytest.raises(ValidationError) as exc_info:
            await services.lifecycle.submit(
                "listing-1", ["listing-1-asset-0", "listing-1-asset-1", "listing-1-asset-2"]
            )

        assert "listing-1-asset-2" in str(exc_info.value)
        assert services.processor.created == []

    asyncio.run(_run())


def test_minimum_bracket_count_is_configurable() -> None:
    services = build_services()
    lifecycle = JobLifecycleManager(services.repositories, services.processor, min_brackets=3, clock=services.clock)

    async def _run() -> None:
        await seed_listing(services.repositories, asset_types=("photo", "photo", "photo"))

        with pytest.raises(ValidationError):
            await lifecycle.submit("listing-1", ASSETS)
        job = await lifecycle.submit("listing-1", ASSETS + ["listing-1-asset-2"])

        assert len(job.input_refs) == 3

    asyncio.run(_run())
