from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from loguru import logger

from api.app.composition import create_app_dependencies
from api.app.config.settings import Settings
from api.app.core import SERVICE_NAME
from api.app.routers.health import health_router
from api.app.routers.jobs import jobs_router
from api.app.routers.listings import listings_router
from api.app.routers.qc import qc_router
from orchestrator.app.composition import OrchestratorDependencies
from orchestrator.app.core.logging import configure_logging


def _default_dependencies() -> OrchestratorDependencies:
    settings = Settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)
    return create_app_dependencies(settings)


def create_app(dependency_factory: Callable[[], OrchestratorDependencies] = _default_dependencies) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.bind(service_name=SERVICE_NAME, event="api_starting").info("")
        deps = dependency_factory()
        try:
            try:
                await deps.connect()
            except Exception as e:
                logger.exception("dependency connect failed: {}", e)
                raise

            app.state.settings = deps.settings
            app.state.database = deps.database
            app.state.lifecycle = deps.lifecycle
            app.state.transitions = deps.transitions
            app.state.qc_queue = deps.qc_queue
            yield
        finally:
            logger.bind(service_name=SERVICE_NAME, event="api_stopping").info("")
            await deps.close()

    app = FastAPI(
        title="Media Ops Orchestrator API",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(jobs_router)
    app.include_router(listings_router)
    app.include_router(qc_router)
    return app


app = create_app()
