from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

import pytest
from fastapi import FastAPI

from api.app.routers.health import health_router
from api.app.routers.jobs import jobs_router
from api.app.routers.listings import listings_router
from api.app.routers.qc import qc_router
from orchestrator.app.application.job_lifecycle import JobLifecycleManager
from orchestrator.app.application.qc_queue import QCQueueService
from orchestrator.app.application.status_transitions import StatusTransitionEngine
from orchestrator.app.constants import JobStatus, ListingStatus
from orchestrator.app.domain.models import Listing, MediaAsset, ProcessingJob, RemoteJob, RemoteJobStatus
from orchestrator.app.infrastructure.persistence.inmemory.repositories import (
    InMemoryConnection,
    InMemoryEventLog,
    InMemoryJobRepository,
    InMemoryListingRepository,
    InMemoryMediaAssetRepository,
)
from orchestrator.app.ports.repositories import Repositories

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeProcessor:
    """Implements ProcessorClient for tests; records every call."""

    def __init__(self) -> None:
        self.created: list[tuple[str, list[str], bool]] = []
        self.cancelled: list[str] = []
        self.status_requests: list[str] = []
        self.statuses: dict[str, RemoteJobStatus] = {}
        self.create_error: Exception | None = None
        self.create_errors_by_listing: dict[str, Exception] = {}
        self.status_error: Exception | None = None
        self.cancel_error: Exception | None = None
        self._counter = 0

    async def create_job(self, listing_id: str, media_refs: Iterable[str], rush: bool) -> RemoteJob:
        self.created.append((listing_id, list(media_refs), rush))
        error = self.create_errors_by_listing.get(listing_id) or self.create_error
        if error is not None:
            raise error
        self._counter += 1
        return RemoteJob(external_job_id=f"ext-{self._counter}", status=JobStatus.QUEUED, eta_seconds=36)

    async def get_status(self, external_job_id: str) -> RemoteJobStatus:
        self.status_requests.append(external_job_id)
        if self.status_error is not None:
            raise self.status_error
        return self.statuses.get(external_job_id, RemoteJobStatus(status=JobStatus.PROCESSING))

    async def cancel_job(self, external_job_id: str) -> bool:
        self.cancelled.append(external_job_id)
        if self.cancel_error is not None:
            raise self.cancel_error
        return True


class FakeDatabase:
    """Implements DatabaseConnection for tests."""

    def __init__(self, ping_ok: bool = True) -> None:
        self._ping_ok = ping_ok
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> None:
        self._ready = True

    async def ping(self) -> bool:
        return self._ping_ok

    async def close(self) -> None:
        self._ready = False


def build_repositories() -> Repositories:
    return Repositories(
        connection=InMemoryConnection(),
        jobs=InMemoryJobRepository(),
        listings=InMemoryListingRepository(),
        media_assets=InMemoryMediaAssetRepository(),
        events=InMemoryEventLog(),
    )


@dataclass
class Services:
    repositories: Repositories
    processor: FakeProcessor
    clock: FakeClock
    lifecycle: JobLifecycleManager
    transitions: StatusTransitionEngine
    qc_queue: QCQueueService

    @property
    def events(self) -> InMemoryEventLog:
        return self.repositories.events  # type: ignore[return-value]


def build_services(*, max_retries: int = 0, bulk_retry_limit: int = 100) -> Services:
    repositories = build_repositories()
    processor = FakeProcessor()
    clock = FakeClock()
    return Services(
        repositories=repositories,
        processor=processor,
        clock=clock,
        lifecycle=JobLifecycleManager(
            repositories,
            processor,
            max_retries=max_retries,
            bulk_retry_limit=bulk_retry_limit,
            clock=clock,
        ),
        transitions=StatusTransitionEngine(repositories.listings, repositories.events, clock=clock),
        qc_queue=QCQueueService(repositories.listings, clock=clock),
    )


async def seed_listing(
    repositories: Repositories,
    listing_id: str = "listing-1",
    *,
    ops_status: ListingStatus = ListingStatus.PROCESSING,
    is_rush: bool = False,
    updated_at: datetime = NOW,
    asset_types: Iterable[str] = ("photo", "photo"),
    editor_id: str | None = None,
) -> tuple[Listing, list[MediaAsset]]:
    listing = Listing(
        id=listing_id,
        ops_status=ops_status,
        updated_at=updated_at,
        is_rush=is_rush,
        editor_id=editor_id,
    )
    await repositories.listings.insert(listing)  # type: ignore[attr-defined]
    assets = []
    for index, asset_type in enumerate(asset_types):
        asset = MediaAsset(
            id=f"{listing_id}-asset-{index}",
            listing_id=listing_id,
            type=asset_type,
            storage_path=f"listings/{listing_id}/raw/{index}.jpg",
        )
        await repositories.media_assets.insert(asset)  # type: ignore[attr-defined]
        assets.append(asset)
    return listing, assets


async def seed_job(
    repositories: Repositories,
    job_id: str,
    *,
    listing_id: str = "listing-1",
    status: JobStatus = JobStatus.FAILED,
    external_job_id: str | None = "ext-old",
    retry_count: int = 0,
) -> ProcessingJob:
    job = ProcessingJob(
        id=job_id,
        listing_id=listing_id,
        status=status,
        input_refs=(f"listings/{listing_id}/raw/0.jpg",),
        external_job_id=external_job_id,
        retry_count=retry_count,
        error_message="boom" if status == JobStatus.FAILED else None,
        created_at=NOW,
        updated_at=NOW,
    )
    await repositories.jobs.insert(job)
    return job


@pytest.fixture()
def services() -> Services:
    return build_services()


@pytest.fixture()
def test_app(services: Services) -> FastAPI:
    app = FastAPI()
    app.state.database = FakeDatabase()
    app.state.lifecycle = services.lifecycle
    app.state.transitions = services.transitions
    app.state.qc_queue = services.qc_queue
    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(listings_router)
    app.include_router(qc_router)
    return app
