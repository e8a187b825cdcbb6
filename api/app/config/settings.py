"""Settings for the API: the orchestrator settings plus HTTP-surface knobs."""

from pydantic import Field

from orchestrator.app.config.settings import Settings as OrchestratorSettings


class Settings(OrchestratorSettings):
    readiness_ping_timeout_seconds: float = Field(5.0, validation_alias="READINESS_PING_TIMEOUT_SECONDS")
