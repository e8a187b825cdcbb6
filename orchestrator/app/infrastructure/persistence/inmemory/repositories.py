"""In-memory persistence adapters for local mode and tests.

Same contract as the Mongo adapters, including compare-and-swap updates. Each method
completes without awaiting in between reading and writing, so concurrent tasks on one
event loop cannot interleave inside an update.
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Collection, Sequence

from orchestrator.app.constants import JobStatus, ListingStatus, MediaQcStatus
from orchestrator.app.domain.models import JobEvent, Listing, MediaAsset, ProcessingJob, utcnow


class InMemoryConnection:
    def __init__(self) -> None:
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> None:
        self._ready = True

    async def ping(self) -> bool:
        return self._ready

    async def close(self) -> None:
        self._ready = False


class InMemoryJobRepository:
    def __init__(self) -> None:
        self._jobs: dict[str, ProcessingJob] = {}

    async def insert(self, job: ProcessingJob) -> None:
        if job.id in self._jobs:
            raise ValueError(f"duplicate job id: {job.id}")
        self._jobs[job.id] = job

    async def get(self, job_id: str) -> ProcessingJob | None:
        return self._jobs.get(job_id)

    async def list_by_status(self, statuses: Collection[JobStatus], *, limit: int) -> list[ProcessingJob]:
        wanted = set(statuses)
        jobs = [job for job in self._jobs.values() if job.status in wanted]
        jobs.sort(key=lambda job: job.updated_at)
        # 0 or less means no limit, as with a Mongo cursor
        return jobs[:limit] if limit > 0 else jobs

    async def list_by_listing(
        self,
        listing_id: str,
        *,
        statuses: Collection[JobStatus] | None = None,
    ) -> list[ProcessingJob]:
        wanted = set(statuses) if statuses is not None else None
        jobs = [
            job
            for job in self._jobs.values()
            if job.listing_id == listing_id and (wanted is None or job.status in wanted)
        ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs

    async def update_if_status(
        self,
        job_id: str,
        expected: Collection[JobStatus],
        changes: dict[str, Any],
    ) -> ProcessingJob | None:
        job = self._jobs.get(job_id)
        if job is None or job.status not in set(expected):
            return None
        updates = dict(changes)
        updates.setdefault("updated_at", utcnow())
        if "input_refs" in updates:
            updates["input_refs"] = tuple(updates["input_refs"])
        if "media_asset_ids" in updates:
            updates["media_asset_ids"] = tuple(updates["media_asset_ids"])
        updated = replace(job, **updates)
        self._jobs[job_id] = updated
        return updated


class InMemoryListingRepository:
    def __init__(self) -> None:
        self._listings: dict[str, Listing] = {}

    async def insert(self, listing: Listing) -> None:
        """Seeding helper; listings are created by the wider application."""
        self._listings[listing.id] = listing

    async def get(self, listing_id: str) -> Listing | None:
        return self._listings.get(listing_id)

    async def list_by_ops_status(self, statuses: Collection[ListingStatus]) -> list[Listing]:
        wanted = set(statuses)
        listings = [listing for listing in self._listings.values() if listing.ops_status in wanted]
        listings.sort(key=lambda listing: (not listing.is_rush, listing.updated_at))
        return listings

    async def update_if_status(
        self,
        listing_id: str,
        expected: ListingStatus,
        changes: dict[str, Any],
    ) -> Listing | None:
        listing = self._listings.get(listing_id)
        if listing is None or listing.ops_status != expected:
            return None
        updated = replace(listing, **changes)
        self._listings[listing_id] = updated
        return updated


class InMemoryMediaAssetRepository:
    def __init__(self) -> None:
        self._assets: dict[str, MediaAsset] = {}

    async def insert(self, asset: MediaAsset) -> None:
        """Seeding helper; assets are owned by the media asset store."""
        self._assets[asset.id] = asset

    async def list_for_listing(self, listing_id: str) -> list[MediaAsset]:
        return [asset for asset in self._assets.values() if asset.listing_id == listing_id]

    async def get_many(self, asset_ids: Sequence[str]) -> list[MediaAsset]:
        return [self._assets[i] for i in asset_ids if i in self._assets]

    async def set_qc_status(
        self,
        asset_ids: Sequence[str],
        qc_status: MediaQcStatus,
        *,
        processing_job_id: str | None = None,
    ) -> int:
        updated = 0
        for asset_id in asset_ids:
            asset = self._assets.get(asset_id)
            if asset is None:
                continue
            changes: dict[str, Any] = {"qc_status": qc_status}
            if processing_job_id is not None:
                changes["processing_job_id"] = processing_job_id
            self._assets[asset_id] = replace(asset, **changes)
            updated += 1
        return updated


class InMemoryEventLog:
    def __init__(self) -> None:
        self.events: list[JobEvent] = []

    async def append(self, event: JobEvent) -> None:
        self.events.append(event)

    async def list_for_listing(self, listing_id: str, *, limit: int = 100) -> list[JobEvent]:
        matching = [event for event in self.events if event.listing_id == listing_id]
        newest_first = list(reversed(matching))
        return newest_first[:limit] if limit > 0 else newest_first
