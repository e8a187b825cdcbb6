from fastapi import APIRouter, Request, Response

from api.app.routers.utils import json_response, service_unavailable
from api.app.schemas.qc import QCQueueEntryResponse, QCQueueResponse
from orchestrator.app.domain.models import utcnow

qc_router = APIRouter(prefix="/qc", tags=["QC"])


@qc_router.get(
    "/queue",
    summary="QC review queue",
    description="Listings in ready_for_qc or in_qc, highest priority first. Recomputed on every request.",
    responses={200: {"description": "Ranked queue."}},
)
async def get_qc_queue(request: Request) -> Response:
    qc_queue = getattr(request.app.state, "qc_queue", None)
    if qc_queue is None:
        return service_unavailable("qc_queue")
    entries = await qc_queue.get_queue()
    return json_response(
        QCQueueResponse(generated_at=utcnow(), items=[QCQueueEntryResponse.from_entry(e) for e in entries])
    )
