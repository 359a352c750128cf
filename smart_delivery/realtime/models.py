"""Driver telemetry payloads and stored location samples."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, Field, field_validator

from smart_delivery.auth.models import CamelModel, as_utc, utcnow


def _bounded(lower: float, upper: float):
    return Annotated[
        float, Field(strict=True, allow_inf_nan=False, ge=lower, le=upper)
    ]


Latitude = _bounded(-90, 90)
Longitude = _bounded(-180, 180)
Speed = _bounded(0, 300)
Heading = _bounded(0, 360)
Accuracy = _bounded(0, 100)


class Coords(BaseModel):
    lat: Latitude
    lng: Longitude


class LocationUpdate(CamelModel):
    """Telemetry pushed by a driver, over the socket or HTTP."""

    coords: Coords
    speed: Speed | None = None
    heading: Heading | None = None
    accuracy: Accuracy | None = None


class LocationSample(CamelModel):
    """Accepted sample; ``rider_id`` and ``ts`` are assigned by the server."""

    rider_id: str
    coords: Coords
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    ts: datetime = Field(default_factory=utcnow)

    @field_validator("ts")
    @classmethod
    def normalize_ts(cls, value: datetime) -> datetime:
        return as_utc(value)

    @classmethod
    def from_update(cls, rider_id: str, update: LocationUpdate) -> "LocationSample":
        return cls(
            rider_id=rider_id,
            coords=update.coords,
            speed=update.speed,
            heading=update.heading,
            accuracy=update.accuracy,
        )
