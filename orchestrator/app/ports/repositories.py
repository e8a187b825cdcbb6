"""Bundle of persistence ports sharing one database connection."""
from __future__ import annotations

from dataclasses import dataclass

from orchestrator.app.ports.database_connection import DatabaseConnection
from orchestrator.app.ports.event_log import EventLog
from orchestrator.app.ports.job_repository import JobRepository
from orchestrator.app.ports.listing_repository import ListingRepository
from orchestrator.app.ports.media_asset_repository import MediaAssetRepository


@dataclass(frozen=True)
class Repositories:
    connection: DatabaseConnection
    jobs: JobRepository
    listings: ListingRepository
    media_assets: MediaAssetRepository
    events: EventLog
