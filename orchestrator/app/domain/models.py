"""Domain models.

Records are frozen dataclasses. ``to_document`` / ``from_document`` are the schema
boundary used by repository adapters: documents carry ``schema_version`` and are
validated on the way in, so the rest of the code only ever sees typed records.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from orchestrator.app.constants import (
    SCHEMA_VERSION,
    ActorType,
    EventType,
    JobStatus,
    ListingStatus,
    MediaQcStatus,
)
from orchestrator.app.domain.errors import RecordSchemaError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Any, name: str) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if not isinstance(value, datetime):
        raise RecordSchemaError(f"{name} must be a datetime")
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _require(doc: Mapping[str, Any], key: str) -> Any:
    if key not in doc or doc[key] is None:
        raise RecordSchemaError(f"document missing required field: {key}")
    return doc[key]


def _check_version(doc: Mapping[str, Any], kind: str) -> None:
    version = doc.get("schema_version", SCHEMA_VERSION)
    if version != SCHEMA_VERSION:
        raise RecordSchemaError(f"unsupported {kind} schema_version: {version}")


def _enum(enum_cls: type, value: Any, name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise RecordSchemaError(f"{name} has unknown value: {value!r}") from exc


@dataclass(frozen=True)
class Actor:
    """Who performed an action. ``privileged`` enables the administrative override."""

    id: str | None
    type: ActorType = ActorType.STAFF
    privileged: bool = False


SYSTEM_ACTOR = Actor(id=None, type=ActorType.SYSTEM)


@dataclass(frozen=True)
class ProcessingJob:
    id: str
    listing_id: str
    status: JobStatus
    input_refs: tuple[str, ...]
    media_asset_ids: tuple[str, ...] = ()
    external_job_id: str | None = None
    output_ref: str | None = None
    retry_count: int = 0
    error_message: str | None = None
    metrics: dict[str, Any] | None = None
    queued_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_failed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schema_version": SCHEMA_VERSION,
            "listing_id": self.listing_id,
            "status": self.status.value,
            "input_refs": list(self.input_refs),
            "media_asset_ids": list(self.media_asset_ids),
            "external_job_id": self.external_job_id,
            "output_ref": self.output_ref,
            "retry_count": int(self.retry_count),
            "error_message": self.error_message,
            "metrics": dict(self.metrics) if self.metrics is not None else None,
            "queued_at": self.queued_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "last_failed_at": self.last_failed_at,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_document(doc: Mapping[str, Any]) -> "ProcessingJob":
        _check_version(doc, "processing_job")
        input_refs = _require(doc, "input_refs")
        if not isinstance(input_refs, (list, tuple)):
            raise RecordSchemaError("input_refs must be a list")
        metrics = doc.get("metrics")
        if metrics is not None and not isinstance(metrics, dict):
            raise RecordSchemaError("metrics must be a dict or None")
        return ProcessingJob(
            id=str(_require(doc, "id")),
            listing_id=str(_require(doc, "listing_id")),
            status=_enum(JobStatus, _require(doc, "status"), "status"),
            input_refs=tuple(str(ref) for ref in input_refs),
            media_asset_ids=tuple(str(i) for i in doc.get("media_asset_ids") or ()),
            external_job_id=doc.get("external_job_id"),
            output_ref=doc.get("output_ref"),
            retry_count=int(doc.get("retry_count") or 0),
            error_message=doc.get("error_message"),
            metrics=dict(metrics) if metrics is not None else None,
            queued_at=_as_utc(doc.get("queued_at"), "queued_at"),
            started_at=_as_utc(doc.get("started_at"), "started_at"),
            completed_at=_as_utc(doc.get("completed_at"), "completed_at"),
            last_failed_at=_as_utc(doc.get("last_failed_at"), "last_failed_at"),
            created_at=_as_utc(doc.get("created_at"), "created_at") or utcnow(),
            updated_at=_as_utc(doc.get("updated_at"), "updated_at") or utcnow(),
        )


@dataclass(frozen=True)
class Listing:
    id: str
    ops_status: ListingStatus
    updated_at: datetime
    is_rush: bool = False
    scheduled_at: datetime | None = None
    delivered_at: datetime | None = None
    photographer_id: str | None = None
    editor_id: str | None = None
    editing_started_at: datetime | None = None
    editing_completed_at: datetime | None = None
    stage_entered_at: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schema_version": SCHEMA_VERSION,
            "ops_status": self.ops_status.value,
            "is_rush": bool(self.is_rush),
            "scheduled_at": self.scheduled_at,
            "updated_at": self.updated_at,
            "delivered_at": self.delivered_at,
            "photographer_id": self.photographer_id,
            "editor_id": self.editor_id,
            "editing_started_at": self.editing_started_at,
            "editing_completed_at": self.editing_completed_at,
            "stage_entered_at": self.stage_entered_at,
        }

    @staticmethod
    def from_document(doc: Mapping[str, Any]) -> "Listing":
        _check_version(doc, "listing")
        return Listing(
            id=str(_require(doc, "id")),
            ops_status=_enum(ListingStatus, _require(doc, "ops_status"), "ops_status"),
            updated_at=_as_utc(_require(doc, "updated_at"), "updated_at"),  # type: ignore[arg-type]
            is_rush=bool(doc.get("is_rush", False)),
            scheduled_at=_as_utc(doc.get("scheduled_at"), "scheduled_at"),
            delivered_at=_as_utc(doc.get("delivered_at"), "delivered_at"),
            photographer_id=doc.get("photographer_id"),
            editor_id=doc.get("editor_id"),
            editing_started_at=_as_utc(doc.get("editing_started_at"), "editing_started_at"),
            editing_completed_at=_as_utc(doc.get("editing_completed_at"), "editing_completed_at"),
            stage_entered_at=_as_utc(doc.get("stage_entered_at"), "stage_entered_at"),
        )


@dataclass(frozen=True)
class MediaAsset:
    id: str
    listing_id: str
    type: str
    storage_path: str
    qc_status: MediaQcStatus = MediaQcStatus.PENDING
    processing_job_id: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schema_version": SCHEMA_VERSION,
            "listing_id": self.listing_id,
            "type": self.type,
            "storage_path": self.storage_path,
            "qc_status": self.qc_status.value,
            "processing_job_id": self.processing_job_id,
        }

    @staticmethod
    def from_document(doc: Mapping[str, Any]) -> "MediaAsset":
        _check_version(doc, "media_asset")
        return MediaAsset(
            id=str(_require(doc, "id")),
            listing_id=str(_require(doc, "listing_id")),
            type=str(_require(doc, "type")),
            storage_path=str(_require(doc, "storage_path")),
            qc_status=_enum(MediaQcStatus, doc.get("qc_status") or MediaQcStatus.PENDING.value, "qc_status"),
            processing_job_id=doc.get("processing_job_id"),
        )


@dataclass(frozen=True)
class JobEvent:
    """Append-only audit record. Never updated once written."""

    id: str
    listing_id: str
    event_type: EventType
    actor_type: ActorType
    created_at: datetime
    actor_id: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    job_id: str | None = None
    notes: str | None = None

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schema_version": SCHEMA_VERSION,
            "listing_id": self.listing_id,
            "event_type": self.event_type.value,
            "actor_id": self.actor_id,
            "actor_type": self.actor_type.value,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "job_id": self.job_id,
            "notes": self.notes,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_document(doc: Mapping[str, Any]) -> "JobEvent":
        _check_version(doc, "job_event")
        return JobEvent(
            id=str(_require(doc, "id")),
            listing_id=str(_require(doc, "listing_id")),
            event_type=_enum(EventType, _require(doc, "event_type"), "event_type"),
            actor_type=_enum(ActorType, doc.get("actor_type") or ActorType.SYSTEM.value, "actor_type"),
            created_at=_as_utc(_require(doc, "created_at"), "created_at"),  # type: ignore[arg-type]
            actor_id=doc.get("actor_id"),
            old_value=doc.get("old_value"),
            new_value=doc.get("new_value"),
            job_id=doc.get("job_id"),
            notes=doc.get("notes"),
        )


@dataclass(frozen=True)
class QCQueueEntry:
    """Derived ranking row; recomputed on every read and never persisted."""

    listing_id: str
    priority_score: int
    priority_level: str
    hours_waiting: int
    is_rush: bool
    ops_status: ListingStatus


@dataclass(frozen=True)
class RemoteJob:
    """Result of creating a job on the external processor."""

    external_job_id: str
    status: JobStatus
    eta_seconds: int | None = None


@dataclass(frozen=True)
class RemoteJobStatus:
    status: JobStatus
    output_ref: str | None = None
    metrics: dict[str, Any] | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class BatchItemFailure:
    job_id: str
    error: str
    detail: str
    retryable: bool = False


@dataclass(frozen=True)
class RetryBatchResult:
    retried: list[str] = field(default_factory=list)
    failed: list[BatchItemFailure] = field(default_factory=list)


@dataclass(frozen=True)
class CancelBatchResult:
    cancelled: list[str] = field(default_factory=list)
    failed: list[BatchItemFailure] = field(default_factory=list)


@dataclass(frozen=True)
class PollSweepResult:
    polled: int = 0
    changed: int = 0
    unchanged: int = 0
