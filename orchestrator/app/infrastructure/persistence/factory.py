"""Repository factory: selects and assembles persistence adapters."""
from __future__ import annotations

from orchestrator.app.config.settings import Settings
from orchestrator.app.infrastructure.persistence.inmemory.repositories import (
    InMemoryConnection,
    InMemoryEventLog,
    InMemoryJobRepository,
    InMemoryListingRepository,
    InMemoryMediaAssetRepository,
)
from orchestrator.app.infrastructure.persistence.mongo.connection import MongoConnection
from orchestrator.app.infrastructure.persistence.mongo.repositories import (
    MongoEventLog,
    MongoJobRepository,
    MongoListingRepository,
    MongoMediaAssetRepository,
)
from orchestrator.app.ports.repositories import Repositories


def create_repositories(settings: Settings) -> Repositories:
    """Select repository adapters from configuration. Caller connects the returned connection."""
    backend = settings.repository_backend.strip().lower()

    if backend == "mongo":
        connection = MongoConnection(settings)
        return Repositories(
            connection=connection,
            jobs=MongoJobRepository(connection, settings.jobs_collection),
            listings=MongoListingRepository(connection, settings.listings_collection),
            media_assets=MongoMediaAssetRepository(connection, settings.media_assets_collection),
            events=MongoEventLog(connection, settings.events_collection),
        )
    if backend == "inmemory":
        return Repositories(
            connection=InMemoryConnection(),
            jobs=InMemoryJobRepository(),
            listings=InMemoryListingRepository(),
            media_assets=InMemoryMediaAssetRepository(),
            events=InMemoryEventLog(),
        )
    raise ValueError(f"Unsupported repository backend: {backend}")


async def ensure_indexes(repositories: Repositories) -> None:
    """Create indexes on adapters that support it (Mongo); no-op for in-memory."""
    for repo in (repositories.jobs, repositories.listings, repositories.media_assets, repositories.events):
        ensure = getattr(repo, "ensure_indexes", None)
        if ensure is not None:
            await ensure()
