"""Lazily connected MongoDB handle shared by the repositories."""

from __future__ import annotations

import logging
from typing import Any

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from smart_delivery.core.config import MongoConfig
from smart_delivery.core.mongo_migrations import apply_mongo_migrations

LOGGER = logging.getLogger(__name__)


class MongoConnection:
    """Holds the active database, or ``None`` while the file store is in use.

    Repositories consult :meth:`collection` on every call, so the backend is
    decided once at startup by :meth:`connect`.
    """

    def __init__(self, config: MongoConfig) -> None:
        self._config = config
        self._client: AsyncMongoClient | None = None
        self.database: Any | None = None

    @property
    def connected(self) -> bool:
        return self.database is not None

    def collection(self, name: str) -> Any | None:
        if self.database is None:
            return None
        return self.database[name]

    async def connect(self) -> bool:
        """Ping the configured server and run migrations; fall back on failure."""
        if not self._config.uri:
            LOGGER.info("mongo_disabled_using_file_store")
            return False

        client: AsyncMongoClient = AsyncMongoClient(
            self._config.uri,
            serverSelectionTimeoutMS=3000,
            tz_aware=True,
        )
        try:
            await client.admin.command("ping")
            database = client[self._config.database]
            applied = await apply_mongo_migrations(database)
        except PyMongoError:
            LOGGER.warning("mongo_unavailable_using_file_store", exc_info=True)
            await client.close()
            return False

        if applied:
            LOGGER.info("mongo_migrations_applied: %s", ", ".join(applied))
        self._client = client
        self.database = database
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
        self._client = None
        self.database = None
