"""Port: Listing reads and the compare-and-swap status write."""
from __future__ import annotations

from typing import Any, Collection, Protocol

from orchestrator.app.constants import ListingStatus
from orchestrator.app.domain.models import Listing


class ListingRepository(Protocol):
    async def get(self, listing_id: str) -> Listing | None: ...

    async def list_by_ops_status(self, statuses: Collection[ListingStatus]) -> list[Listing]:
        """Rush listings first, then oldest ``updated_at`` first."""
        ...

    async def update_if_status(
        self,
        listing_id: str,
        expected: ListingStatus,
        changes: dict[str, Any],
    ) -> Listing | None:
        """Apply ``changes`` only if ``ops_status`` still equals ``expected``."""
        ...
