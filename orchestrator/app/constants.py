"""Canonical status enums and the constants shared across layers."""
from __future__ import annotations

from enum import Enum

SCHEMA_VERSION = 1


class JobStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    PENDING_RETRY = "pending_retry"


class ListingStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    STAGED = "staged"
    AWAITING_EDITING = "awaiting_editing"
    IN_EDITING = "in_editing"
    PROCESSING = "processing"
    READY_FOR_QC = "ready_for_qc"
    IN_QC = "in_qc"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class MediaQcStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    READY_FOR_QC = "ready_for_qc"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    NEEDS_EDIT = "needs_edit"


class ActorType(str, Enum):
    STAFF = "staff"
    AGENT = "agent"
    SYSTEM = "system"
    WEBHOOK = "webhook"


class EventType(str, Enum):
    STATUS_CHANGE = "status_change"
    STATUS_OVERRIDE = "status_override"
    PROCESSING_SUBMITTED = "processing_submitted"
    PROCESSING_ENQUEUED = "processing_enqueued"
    PROCESSING_COMPLETED = "processing_completed"
    PROCESSING_FAILED = "processing_failed"
    PROCESSING_RETRY = "processing_retry"
    PROCESSING_MARKED_FOR_RETRY = "processing_marked_for_retry"
    PROCESSING_CANCELLED = "processing_cancelled"


QC_LISTING_STATUSES = frozenset({ListingStatus.READY_FOR_QC, ListingStatus.IN_QC})
