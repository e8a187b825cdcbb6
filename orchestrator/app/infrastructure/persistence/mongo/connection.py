"""Mongo client connection (provider-specific infrastructure)."""
from __future__ import annotations

import inspect
from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from orchestrator.app.config.settings import Settings
from orchestrator.app.core import SERVICE_NAME
from orchestrator.app.core.backoff import exponential_backoff
from orchestrator.app.infrastructure.persistence.mongo.constants import ConnectionState


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def build_mongo_uri(settings: Settings) -> str:
    user, password = settings.database_user, settings.database_password
    if user and password:
        return f"mongodb://{user}:{password}@{settings.database_host}:{settings.database_port}"
    return f"mongodb://{settings.database_host}:{settings.database_port}"


class MongoConnection:
    """DatabaseConnection implementation using MongoDB; owns the Motor client."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._state = ConnectionState.DISCONNECTED
        self._client: AsyncIOMotorClient | None = None

    @property
    def ready(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def client(self) -> AsyncIOMotorClient:
        if not self._client:
            raise RuntimeError("db_not_connected")
        return self._client

    def collection(self, name: str) -> AsyncIOMotorCollection:
        return self.client[self._settings.database_name][name]

    async def connect(self) -> None:
        self._state = ConnectionState.CONNECTING
        attempt = 0
        async for delay in exponential_backoff(
            self._settings.initial_backoff_seconds,
            self._settings.max_backoff_seconds,
            self._settings.backoff_multiplier,
            self._settings.max_connection_attempts,
        ):
            attempt += 1
            _log("db_connect_attempt", attempt=attempt, delay=delay)
            client: AsyncIOMotorClient | None = None
            try:
                client = AsyncIOMotorClient(
                    build_mongo_uri(self._settings),
                    serverSelectionTimeoutMS=self._settings.database_connection_timeout_ms,
                    tz_aware=True,
                )
                await client.admin.command("ping")
                self._client = client
                self._state = ConnectionState.CONNECTED
                _log("db_connected")
                return
            except Exception as exc:
                logger.warning("db connect failed: {}", exc)
                if client is not None:
                    res = client.close()
                    if inspect.isawaitable(res):
                        await res
                if attempt >= self._settings.max_connection_attempts:
                    self._state = ConnectionState.DISCONNECTED
                    _log("db_connect_failed", attempt=attempt)
                    raise
        self._state = ConnectionState.DISCONNECTED
        raise RuntimeError("mongo connect failed")

    async def ping(self) -> bool:
        """Return True if the database responds to ping; False if not connected or any error."""
        if not self._client:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception:
            return False

    async def close(self) -> None:
        if self._client:
            res = self._client.close()
            if inspect.isawaitable(res):
                await res
            self._client = None
        self._state = ConnectionState.DISCONNECTED
