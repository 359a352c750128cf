"""Durable location history: MongoDB collection or a JSONL log."""

from __future__ import annotations

from pathlib import Path

from pymongo import DESCENDING

from smart_delivery.core.json_store import append_documents_jsonl, read_documents_jsonl
from smart_delivery.core.mongo import MongoConnection
from smart_delivery.core.mongo_migrations import LOCATIONS_COLLECTION
from smart_delivery.realtime.models import LocationSample


class LocationRepository:
    def __init__(self, mongo: MongoConnection, store_dir: Path) -> None:
        self._mongo = mongo
        self._log_file = store_dir / "locations.jsonl"

    async def record(self, sample: LocationSample) -> None:
        collection = self._mongo.collection(LOCATIONS_COLLECTION)
        if collection is not None:
            await collection.insert_one(sample.model_dump())
            return
        append_documents_jsonl(self._log_file, [sample.model_dump(mode="json")])

    async def recent(self, rider_id: str, *, limit: int = 50) -> list[LocationSample]:
        """Newest-first history for one driver."""
        collection = self._mongo.collection(LOCATIONS_COLLECTION)
        if collection is not None:
            cursor = (
                collection.find({"rider_id": rider_id}, {"_id": 0})
                .sort("ts", DESCENDING)
                .limit(limit)
            )
            return [LocationSample.model_validate(doc) async for doc in cursor]

        rows = [
            LocationSample.model_validate(row)
            for row in reversed(read_documents_jsonl(self._log_file))
            if row.get("rider_id") == rider_id
        ]
        rows.sort(key=lambda sample: sample.ts, reverse=True)
        return rows[:limit]
