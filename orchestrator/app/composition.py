"""Orchestrator composition root: build and lifecycle-manage concrete dependencies.

Shared by the API lifespan and the poll sweep. Repositories and the processor client
can be passed in (tests, local tooling); otherwise they are built from settings.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from orchestrator.app.application.job_lifecycle import JobLifecycleManager
from orchestrator.app.application.qc_queue import QCQueueService
from orchestrator.app.application.status_transitions import StatusTransitionEngine
from orchestrator.app.config.settings import Settings
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.domain.processor_client import ExternalProcessorClient
from orchestrator.app.infrastructure.http.factory import create_http_client
from orchestrator.app.infrastructure.persistence.factory import create_repositories, ensure_indexes
from orchestrator.app.ports.database_connection import DatabaseConnection
from orchestrator.app.ports.http_client import AbstractHttpClient
from orchestrator.app.ports.processor_client import ProcessorClient
from orchestrator.app.ports.repositories import Repositories


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class OrchestratorDependencies:
    """Holds wired services and their lifecycle."""

    def __init__(
        self,
        *,
        settings: Settings,
        repositories: Repositories | None = None,
        processor: ProcessorClient | None = None,
    ) -> None:
        self._settings = settings
        self._repositories = repositories
        self._processor = processor
        self._http_client: AbstractHttpClient | None = None
        self._lifecycle: JobLifecycleManager | None = None
        self._transitions: StatusTransitionEngine | None = None
        self._qc_queue: QCQueueService | None = None
        self._connected = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def database(self) -> DatabaseConnection:
        return self.repositories.connection

    @property
    def repositories(self) -> Repositories:
        if self._repositories is None:
            raise RuntimeError("repositories are not initialized")
        return self._repositories

    @property
    def lifecycle(self) -> JobLifecycleManager:
        if self._lifecycle is None:
            raise RuntimeError("lifecycle manager is not initialized")
        return self._lifecycle

    @property
    def transitions(self) -> StatusTransitionEngine:
        if self._transitions is None:
            raise RuntimeError("transition engine is not initialized")
        return self._transitions

    @property
    def qc_queue(self) -> QCQueueService:
        if self._qc_queue is None:
            raise RuntimeError("qc queue is not initialized")
        return self._qc_queue

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._repositories is None:
            self._repositories = create_repositories(self._settings)
        await self._repositories.connection.connect()
        await ensure_indexes(self._repositories)

        if self._processor is None:
            self._http_client = create_http_client(self._settings)
            self._processor = ExternalProcessorClient(
                self._http_client,
                base_url=self._settings.processor_base_url,
                api_key=self._settings.processor_api_key,
                connect_timeout_seconds=self._settings.processor_connect_timeout_seconds,
                read_timeout_seconds=self._settings.processor_read_timeout_seconds,
            )

        self._lifecycle = JobLifecycleManager(
            self._repositories,
            self._processor,
            max_retries=self._settings.max_job_retries,
            bulk_retry_limit=self._settings.bulk_retry_limit,
            eligible_media_types=self._settings.eligible_media_types,
            min_brackets=self._settings.min_brackets,
            poll_concurrency=self._settings.poll_concurrency,
        )
        self._transitions = StatusTransitionEngine(self._repositories.listings, self._repositories.events)
        self._qc_queue = QCQueueService(self._repositories.listings)
        self._connected = True
        _log("dependencies_connected", repository_backend=self._settings.repository_backend)

    async def close(self) -> None:
        if self._http_client is not None:
            try:
                await self._http_client.close()
            except Exception as exc:
                logger.warning("http client close failed: {}", exc)
            self._http_client = None
            self._processor = None

        if self._repositories is not None and self._connected:
            try:
                await self._repositories.connection.close()
            except Exception as exc:
                logger.warning("database close failed: {}", exc)

        self._lifecycle = None
        self._transitions = None
        self._qc_queue = None
        self._connected = False


def create_orchestrator_dependencies(
    settings: Settings | None = None,
    *,
    repositories: Repositories | None = None,
    processor: ProcessorClient | None = None,
) -> OrchestratorDependencies:
    return OrchestratorDependencies(
        settings=settings or Settings(),
        repositories=repositories,
        processor=processor,
    )
