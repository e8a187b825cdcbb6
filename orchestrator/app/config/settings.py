from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    database_host: str = Field("localhost", validation_alias="DATABASE_HOST")
    database_port: int = Field(27017, validation_alias="DATABASE_PORT")
    database_user: str = Field("", validation_alias="DATABASE_USER")
    database_password: str = Field("", validation_alias="DATABASE_PASSWORD")
    database_name: str = Field("media_ops", validation_alias="DATABASE_NAME")
    jobs_collection: str = Field("processing_jobs", validation_alias="JOBS_COLLECTION")
    listings_collection: str = Field("listings", validation_alias="LISTINGS_COLLECTION")
    media_assets_collection: str = Field("media_assets", validation_alias="MEDIA_ASSETS_COLLECTION")
    events_collection: str = Field("job_events", validation_alias="EVENTS_COLLECTION")

    # mongo | inmemory
    repository_backend: str = Field("mongo", validation_alias="REPOSITORY_BACKEND")

    initial_backoff_seconds: float = Field(1.0, validation_alias="INITIAL_BACKOFF_SECONDS")
    max_backoff_seconds: float = Field(30.0, validation_alias="MAX_BACKOFF_SECONDS")
    max_connection_attempts: int = Field(5, validation_alias="MAX_CONNECTION_ATTEMPTS")
    backoff_multiplier: float = Field(2.0, validation_alias="BACKOFF_MULTIPLIER")
    database_connection_timeout_ms: int = Field(5000, validation_alias="DATABASE_CONNECTION_TIMEOUT_MS")

    processor_base_url: str = Field(..., validation_alias="PROCESSOR_BASE_URL")
    processor_api_key: str = Field(..., validation_alias="PROCESSOR_API_KEY")
    processor_connect_timeout_seconds: float = Field(5.0, validation_alias="PROCESSOR_CONNECT_TIMEOUT_SECONDS")
    processor_read_timeout_seconds: float = Field(30.0, validation_alias="PROCESSOR_READ_TIMEOUT_SECONDS")

    # 0 disables the ceiling (unlimited manual retries).
    max_job_retries: int = Field(0, validation_alias="MAX_JOB_RETRIES")
    bulk_retry_limit: int = Field(100, validation_alias="BULK_RETRY_LIMIT")
    eligible_media_types: list[str] = Field(["photo"], validation_alias="ELIGIBLE_MEDIA_TYPES")
    min_brackets: int = Field(2, validation_alias="MIN_BRACKETS")

    poll_sweep_limit: int = Field(500, validation_alias="POLL_SWEEP_LIMIT")
    poll_concurrency: int = Field(8, validation_alias="POLL_CONCURRENCY")

    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(False, validation_alias="LOG_JSON")
