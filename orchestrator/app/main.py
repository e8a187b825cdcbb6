"""One poll sweep: reconcile every queued/processing job with the external processor.

Meant to be run on a schedule (cron, k8s CronJob). Exits non-zero only when the
sweep itself cannot run; individual job poll failures are logged and skipped.
"""
from __future__ import annotations

import asyncio
from typing import Any

from loguru import logger

from orchestrator.app.composition import create_orchestrator_dependencies
from orchestrator.app.config.settings import Settings
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.core.logging import configure_logging
from orchestrator.app.domain.models import PollSweepResult


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


async def run_poll_sweep(settings: Settings | None = None) -> PollSweepResult:
    deps = create_orchestrator_dependencies(settings)
    _log("poll_sweep_starting", limit=deps.settings.poll_sweep_limit)
    try:
        await deps.connect()
        return await deps.lifecycle.poll_active(limit=deps.settings.poll_sweep_limit)
    finally:
        await deps.close()
        _log("poll_sweep_stopped")


def main() -> None:
    settings = Settings()
    configure_logging(settings.log_level, json_logs=settings.log_json)
    try:
        asyncio.run(run_poll_sweep(settings))
    except KeyboardInterrupt:
        _log("poll_sweep_interrupted")
    except Exception as e:
        logger.exception("poll sweep failed: {}", e)
        raise


if __name__ == "__main__":
    main()
