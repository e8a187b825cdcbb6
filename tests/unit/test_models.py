from __future__ import annotations

from datetime import datetime, timezone

import pytest

from orchestrator.app.constants import SCHEMA_VERSION, JobStatus
from orchestrator.app.domain.errors import RecordSchemaError
from orchestrator.app.domain.models import Listing, ProcessingJob


def _job_doc(**overrides):
    doc = {
        "id": "job-1",
        "schema_version": SCHEMA_VERSION,
        "listing_id": "listing-1",
        "status": "processing",
        "input_refs": ["a.jpg"],
        "external_job_id": "ext-1",
        "created_at": datetime(2024, 5, 1, 12, 0),
        "updated_at": datetime(2024, 5, 1, 12, 0),
    }
    doc.update(overrides)
    return doc


def test_job_document_is_typed_on_read() -> None:
    job = ProcessingJob.from_document(_job_doc())

    assert job.status == JobStatus.PROCESSING
    assert job.input_refs == ("a.jpg",)
    assert job.retry_count == 0
    assert job.created_at.tzinfo == timezone.utc
    assert job.to_document()["status"] == "processing"


@pytest.mark.parametrize(
    "overrides",
    [
        {"schema_version": SCHEMA_VERSION + 1},
        {"status": "exploded"},
        {"input_refs": None},
        {"input_refs": "a.jpg"},
        {"metrics": ["not", "a", "dict"]},
    ],
)
def test_malformed_job_documents_are_rejected(overrides) -> None:
    with pytest.raises(RecordSchemaError):
        ProcessingJob.from_document(_job_doc(**overrides))


def test_listing_requires_status_and_updated_at() -> None:
    with pytest.raises(RecordSchemaError):
        Listing.from_document({"id": "listing-1", "ops_status": "staged"})
    with pytest.raises(RecordSchemaError):
        Listing.from_document({"id": "listing-1", "ops_status": "teleported", "updated_at": datetime.now(timezone.utc)})
