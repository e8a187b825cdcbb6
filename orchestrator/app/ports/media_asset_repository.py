"""Port: media asset store. The core reads assets and writes only their QC status."""
from __future__ import annotations

from typing import Protocol, Sequence

from orchestrator.app.constants import MediaQcStatus
from orchestrator.app.domain.models import MediaAsset


class MediaAssetRepository(Protocol):
    async def list_for_listing(self, listing_id: str) -> list[MediaAsset]: ...

    async def get_many(self, asset_ids: Sequence[str]) -> list[MediaAsset]: ...

    async def set_qc_status(
        self,
        asset_ids: Sequence[str],
        qc_status: MediaQcStatus,
        *,
        processing_job_id: str | None = None,
    ) -> int:
        """Returns the number of assets updated."""
        ...
