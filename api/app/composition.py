"""
Composition root for the API.

Wiring lives in the orchestrator's composition root; the API only supplies its own
settings class. Used by the lifespan to populate app.state.
"""
from __future__ import annotations

from api.app.config.settings import Settings
from orchestrator.app.composition import OrchestratorDependencies
from orchestrator.app.ports.processor_client import ProcessorClient
from orchestrator.app.ports.repositories import Repositories


def create_app_dependencies(
    settings: Settings | None = None,
    *,
    repositories: Repositories | None = None,
    processor: ProcessorClient | None = None,
) -> OrchestratorDependencies:
    """Caller owns lifecycle (connect/close)."""
    return OrchestratorDependencies(
        settings=settings or Settings(),
        repositories=repositories,
        processor=processor,
    )
