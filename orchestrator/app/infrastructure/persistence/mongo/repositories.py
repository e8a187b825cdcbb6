"""MongoDB implementations of the persistence ports.

Documents use the record id as ``_id``. Conditional writes are single
``find_one_and_update`` calls filtered on the expected status, which is the
compare-and-swap every state change relies on.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Collection, Sequence

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from orchestrator.app.constants import JobStatus, ListingStatus, MediaQcStatus
from orchestrator.app.domain.models import JobEvent, Listing, MediaAsset, ProcessingJob, utcnow
from orchestrator.app.infrastructure.persistence.mongo.connection import MongoConnection


def _to_mongo(document: dict[str, Any]) -> dict[str, Any]:
    doc = dict(document)
    doc["_id"] = doc.pop("id")
    return doc


def _from_mongo(doc: dict[str, Any]) -> dict[str, Any]:
    out = dict(doc)
    out["id"] = out.pop("_id")
    return out


def _storable(changes: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        out[key] = value
    return out


def _values(statuses: Collection[Enum]) -> list[Any]:
    return [s.value for s in statuses]


class MongoJobRepository:
    def __init__(self, connection: MongoConnection, collection_name: str) -> None:
        self._connection = connection
        self._collection_name = collection_name

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        return self._connection.collection(self._collection_name)

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index("listing_id", name="idx_jobs_listing_id")
        await self._collection.create_index("status", name="idx_jobs_status")
        await self._collection.create_index("external_job_id", name="idx_jobs_external_job_id")
        await self._collection.create_index([("created_at", DESCENDING)], name="idx_jobs_created_at")

    async def insert(self, job: ProcessingJob) -> None:
        await self._collection.insert_one(_to_mongo(job.to_document()))

    async def get(self, job_id: str) -> ProcessingJob | None:
        doc = await self._collection.find_one({"_id": job_id})
        return ProcessingJob.from_document(_from_mongo(doc)) if doc else None

    async def list_by_status(self, statuses: Collection[JobStatus], *, limit: int) -> list[ProcessingJob]:
        cursor = (
            self._collection.find({"status": {"$in": _values(statuses)}})
            .sort("updated_at", ASCENDING)
            .limit(max(0, int(limit)))
        )
        return [ProcessingJob.from_document(_from_mongo(doc)) async for doc in cursor]

    async def list_by_listing(
        self,
        listing_id: str,
        *,
        statuses: Collection[JobStatus] | None = None,
    ) -> list[ProcessingJob]:
        query: dict[str, Any] = {"listing_id": listing_id}
        if statuses is not None:
            query["status"] = {"$in": _values(statuses)}
        cursor = self._collection.find(query).sort("created_at", DESCENDING)
        return [ProcessingJob.from_document(_from_mongo(doc)) async for doc in cursor]

    async def update_if_status(
        self,
        job_id: str,
        expected: Collection[JobStatus],
        changes: dict[str, Any],
    ) -> ProcessingJob | None:
        update = _storable(changes)
        update.setdefault("updated_at", utcnow())
        doc = await self._collection.find_one_and_update(
            {"_id": job_id, "status": {"$in": _values(expected)}},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
        )
        return ProcessingJob.from_document(_from_mongo(doc)) if doc else None


class MongoListingRepository:
    def __init__(self, connection: MongoConnection, collection_name: str) -> None:
        self._connection = connection
        self._collection_name = collection_name

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        return self._connection.collection(self._collection_name)

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("ops_status", name="idx_listings_ops_status")

    async def insert(self, listing: Listing) -> None:
        """Seeding helper; listings are created by the wider application."""
        await self._collection.replace_one({"_id": listing.id}, _to_mongo(listing.to_document()), upsert=True)

    async def get(self, listing_id: str) -> Listing | None:
        doc = await self._collection.find_one({"_id": listing_id})
        return Listing.from_document(_from_mongo(doc)) if doc else None

    async def list_by_ops_status(self, statuses: Collection[ListingStatus]) -> list[Listing]:
        cursor = self._collection.find({"ops_status": {"$in": _values(statuses)}}).sort(
            [("is_rush", DESCENDING), ("updated_at", ASCENDING)]
        )
        return [Listing.from_document(_from_mongo(doc)) async for doc in cursor]

    async def update_if_status(
        self,
        listing_id: str,
        expected: ListingStatus,
        changes: dict[str, Any],
    ) -> Listing | None:
        doc = await self._collection.find_one_and_update(
            {"_id": listing_id, "ops_status": expected.value},
            {"$set": _storable(changes)},
            return_document=ReturnDocument.AFTER,
        )
        return Listing.from_document(_from_mongo(doc)) if doc else None


class MongoMediaAssetRepository:
    def __init__(self, connection: MongoConnection, collection_name: str) -> None:
        self._connection = connection
        self._collection_name = collection_name

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        return self._connection.collection(self._collection_name)

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("listing_id", name="idx_media_assets_listing_id")

    async def insert(self, asset: MediaAsset) -> None:
        """Seeding helper; assets are owned by the media asset store."""
        await self._collection.replace_one({"_id": asset.id}, _to_mongo(asset.to_document()), upsert=True)

    async def list_for_listing(self, listing_id: str) -> list[MediaAsset]:
        cursor = self._collection.find({"listing_id": listing_id}).sort("_id", ASCENDING)
        return [MediaAsset.from_document(_from_mongo(doc)) async for doc in cursor]

    async def get_many(self, asset_ids: Sequence[str]) -> list[MediaAsset]:
        cursor = self._collection.find({"_id": {"$in": list(asset_ids)}})
        by_id = {doc["_id"]: MediaAsset.from_document(_from_mongo(doc)) async for doc in cursor}
        return [by_id[i] for i in asset_ids if i in by_id]

    async def set_qc_status(
        self,
        asset_ids: Sequence[str],
        qc_status: MediaQcStatus,
        *,
        processing_job_id: str | None = None,
    ) -> int:
        if not asset_ids:
            return 0
        update: dict[str, Any] = {"qc_status": qc_status.value}
        if processing_job_id is not None:
            update["processing_job_id"] = processing_job_id
        result = await self._collection.update_many({"_id": {"$in": list(asset_ids)}}, {"$set": update})
        return int(result.modified_count)


class MongoEventLog:
    def __init__(self, connection: MongoConnection, collection_name: str) -> None:
        self._connection = connection
        self._collection_name = collection_name

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        return self._connection.collection(self._collection_name)

    async def ensure_indexes(self) -> None:
        await self._collection.create_index("listing_id", name="idx_job_events_listing_id")
        await self._collection.create_index([("created_at", DESCENDING)], name="idx_job_events_created_at")

    async def append(self, event: JobEvent) -> None:
        await self._collection.insert_one(_to_mongo(event.to_document()))

    async def list_for_listing(self, listing_id: str, *, limit: int = 100) -> list[JobEvent]:
        cursor = (
            self._collection.find({"listing_id": listing_id})
            .sort("created_at", DESCENDING)
            .limit(max(0, int(limit)))
        )
        return [JobEvent.from_document(_from_mongo(doc)) async for doc in cursor]
