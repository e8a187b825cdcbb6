from __future__ import annotations

from typing import Any

from fastapi import Request, Response
from loguru import logger
from pydantic import BaseModel

from api.app.core import SERVICE_NAME
from api.app.schemas.common import ErrorResponse
from orchestrator.app.domain.errors import (
    ConflictError,
    NotFoundError,
    OrchestratorError,
    UpstreamFailureError,
    UpstreamTransientError,
    ValidationError,
)

READINESS_PING_TIMEOUT_DEFAULT = 5.0

# Checked in order; subclasses before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[OrchestratorError], int], ...] = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (UpstreamTransientError, 503),
    (UpstreamFailureError, 502),
)


def readiness_ping_timeout_seconds(request: Request) -> float:
    """Read readiness DB ping timeout from app.state.settings or default."""
    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        return getattr(settings, "readiness_ping_timeout_seconds", READINESS_PING_TIMEOUT_DEFAULT)
    return READINESS_PING_TIMEOUT_DEFAULT


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def status_code_for(exc: OrchestratorError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


def json_response(model: BaseModel, status_code: int = 200) -> Response:
    return Response(
        status_code=status_code,
        media_type="application/json",
        content=model.model_dump_json(),
    )


def error_response(exc: OrchestratorError, *, route: str) -> Response:
    status_code = status_code_for(exc)
    _log("request_failed", route=route, status_code=status_code, error=str(exc), **exc.context())
    return json_response(
        ErrorResponse(error=exc.code, detail=str(exc), retryable=exc.retryable),
        status_code=status_code,
    )


def service_unavailable(name: str) -> Response:
    _log("service_unavailable", component=name)
    return json_response(
        ErrorResponse(error="unavailable", detail=f"{name} not available", retryable=True),
        status_code=503,
    )


__all__ = [
    "readiness_ping_timeout_seconds",
    "status_code_for",
    "json_response",
    "error_response",
    "service_unavailable",
]
