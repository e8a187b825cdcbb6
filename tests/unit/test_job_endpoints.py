import asyncio

from fastapi.testclient import TestClient

from orchestrator.app.constants import JobStatus
from orchestrator.app.domain.errors import UpstreamFailureError, UpstreamTransientError
from orchestrator.app.domain.models import RemoteJobStatus
from tests.conftest import seed_job, seed_listing

ASSETS = ["listing-1-asset-0", "listing-1-asset-1"]


def test_submit_job_201(test_app, services):
    asyncio.run(seed_listing(services.repositories))
    client = TestClient(test_app)
    r = client.post(
        "/jobs",
        json={"listing_id": "listing-1", "media_asset_ids": ASSETS, "actor": {"id": "staff-1"}},
    )
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "processing"
    assert body["external_job_id"] == "ext-1"
    assert body["input_refs"] == ["listings/listing-1/raw/0.jpg", "listings/listing-1/raw/1.jpg"]

    r = client.get(f"/jobs/{body['id']}")
    assert r.status_code == 200
    assert r.json()["id"] == body["id"]


def test_submit_job_unknown_listing_404(test_app):
    client = TestClient(test_app)
    r = client.post("/jobs", json={"listing_id": "missing", "media_asset_ids": ["x"]})
    assert r.status_code == 404
    assert r.json() == {"error": "not_found", "detail": "listing missing not found", "retryable": False}


def test_submit_job_requires_media(test_app):
    client = TestClient(test_app)
    r = client.post("/jobs", json={"listing_id": "listing-1", "media_asset_ids": []})
    assert r.status_code == 422


def test_submit_job_processor_down_503_retryable(test_app, services):
    asyncio.run(seed_listing(services.repositories))
    services.processor.create_error = UpstreamTransientError("processor unreachable")
    client = TestClient(test_app)
    r = client.post("/jobs", json={"listing_id": "listing-1", "media_asset_ids": ASSETS})
    assert r.status_code == 503
    assert r.json()["retryable"] is True


def test_submit_job_processor_rejects_502(test_app, services):
    asyncio.run(seed_listing(services.repositories))
    services.processor.create_error = UpstreamFailureError("bad input")
    client = TestClient(test_app)
    r = client.post("/jobs", json={"listing_id": "listing-1", "media_asset_ids": ASSETS})
    assert r.status_code == 502
    assert r.json()["error"] == "upstream_failure"


def test_get_unknown_job_404(test_app):
    client = TestClient(test_app)
    r = client.get("/jobs/missing")
    assert r.status_code == 404


def test_enqueue_dispatch_and_poll(test_app, services):
    asyncio.run(seed_listing(services.repositories))
    client = TestClient(test_app)

    r = client.post("/jobs/enqueue", json={"listing_id": "listing-1", "media_asset_ids": ASSETS})
    assert r.status_code == 201
    job_id = r.json()["id"]
    assert r.json()["status"] == "pending"

    r = client.post(f"/jobs/{job_id}/dispatch")
    assert r.status_code == 200
    assert r.json()["status"] == "queued"

    services.processor.statuses["ext-1"] = RemoteJobStatus(status=JobStatus.COMPLETED, output_ref="out.jpg")
    r = client.post(f"/jobs/{job_id}/poll")
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["output_ref"] == "out.jpg"

    r = client.get(f"/jobs/{job_id}/progress")
    assert r.status_code == 200
    assert r.json()["overall_progress"] == 100.0
    assert r.json()["stage"] == "completed"


def test_retry_requires_selector_422(test_app):
    client = TestClient(test_app)
    r = client.post("/jobs/retry", json={})
    assert r.status_code == 422
    assert r.json()["error"] == "validation_error"


def test_retry_all_reports_items(test_app, services):
    async def _seed():
        for listing_id in ("L1", "L2"):
            await seed_listing(services.repositories, listing_id)
            await seed_job(services.repositories, f"job-{listing_id}", listing_id=listing_id)

    asyncio.run(_seed())
    services.processor.create_errors_by_listing["L2"] = UpstreamTransientError("timeout")
    client = TestClient(test_app)

    r = client.post("/jobs/retry", json={"all": True})

    assert r.status_code == 200
    body = r.json()
    assert body["retried"] == ["job-L1"]
    assert body["failed"] == [
        {"job_id": "job-L2", "error": "upstream_transient", "detail": "timeout", "retryable": True}
    ]


def test_cancel_processing_job_409(test_app, services):
    asyncio.run(seed_job(services.repositories, "job-1", status=JobStatus.PROCESSING))
    client = TestClient(test_app)
    r = client.post("/jobs/job-1/cancel", json={"actor": {"id": "staff-1"}})
    assert r.status_code == 409
    assert r.json()["error"] == "job_state_conflict"


def test_cancel_many(test_app, services):
    async def _seed():
        await seed_job(services.repositories, "job-1", status=JobStatus.QUEUED)
        await seed_job(services.repositories, "job-2", status=JobStatus.COMPLETED)

    asyncio.run(_seed())
    client = TestClient(test_app)
    r = client.post("/jobs/cancel", json={"job_ids": ["job-1", "job-2"]})
    assert r.status_code == 200
    assert r.json()["cancelled"] == ["job-1"]
    assert [f["job_id"] for f in r.json()["failed"]] == ["job-2"]


def test_mark_retry(test_app, services):
    asyncio.run(seed_job(services.repositories, "job-1", status=JobStatus.FAILED))
    client = TestClient(test_app)
    r = client.post("/jobs/job-1/mark-retry")
    assert r.status_code == 200
    assert r.json()["status"] == "pending_retry"


def test_503_when_lifecycle_missing(test_app):
    test_app.state.lifecycle = None
    client = TestClient(test_app)
    r = client.get("/jobs/job-1")
    assert r.status_code == 503
