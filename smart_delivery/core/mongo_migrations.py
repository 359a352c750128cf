"""Versioned MongoDB index migrations for the delivery collections."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pymongo import ASCENDING, DESCENDING

from smart_delivery.core.logging import CORRELATION_ID_CTX

MigrationFn = Callable[[Any], Awaitable[None]]

USERS_COLLECTION = "users"
REFRESH_TOKENS_COLLECTION = "refresh_tokens"
LOCATIONS_COLLECTION = "locations"


async def _migration_0001_user_indexes(db: Any) -> None:
    await db[USERS_COLLECTION].create_index("email", unique=True)
    await db[USERS_COLLECTION].create_index("user_id", unique=True)
    await db[USERS_COLLECTION].create_index("role")


async def _migration_0002_refresh_token_ledger(db: Any) -> None:
    await db[REFRESH_TOKENS_COLLECTION].create_index(
        [("user_id", ASCENDING), ("jti", ASCENDING)],
        unique=True,
        name="idx_refresh_tokens_user_jti",
    )
    await db[REFRESH_TOKENS_COLLECTION].create_index("expires_at")


async def _migration_0003_location_history(db: Any) -> None:
    await db[LOCATIONS_COLLECTION].create_index(
        [("rider_id", ASCENDING), ("ts", DESCENDING)],
        name="idx_locations_rider_ts",
    )


MIGRATIONS: list[tuple[str, MigrationFn]] = [
    ("0001_user_indexes", _migration_0001_user_indexes),
    ("0002_refresh_token_ledger", _migration_0002_refresh_token_ledger),
    ("0003_location_history", _migration_0003_location_history),
]


async def apply_mongo_migrations(db: Any) -> list[str]:
    """Apply pending migrations and return the ids applied by this call."""
    migration_collection = db["schema_migrations"]
    await migration_collection.create_index("migration_id", unique=True)

    applied: list[str] = []
    for migration_id, migration_fn in MIGRATIONS:
        if await migration_collection.find_one({"migration_id": migration_id}):
            continue
        await migration_fn(db)
        await migration_collection.insert_one(
            {
                "migration_id": migration_id,
                "applied_at": datetime.now(timezone.utc),
                "correlation_id": CORRELATION_ID_CTX.get(),
            }
        )
        applied.append(migration_id)
    return applied
