"""Pydantic API response models used in OpenAPI contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from smart_delivery.auth.models import CamelModel


class ApiErrorResponse(BaseModel):
    """Stable error envelope for API responses."""

    error_code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")


class HealthResponse(BaseModel):
    status: Literal["ok"]
    storage: Literal["mongo", "file"]


class UserResponse(CamelModel):
    """Safe user projection; the password hash never leaves the service."""

    id: str
    name: str
    email: str
    phone: str | None = None
    role: str
    is_active: bool
    last_seen_at: datetime | None = None


class TokenPairResponse(CamelModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int


class AuthSessionResponse(TokenPairResponse):
    """Login response payload."""

    user: UserResponse


class StatusResponse(BaseModel):
    status: Literal["ok"]


class CoordsResponse(BaseModel):
    lat: float
    lng: float


class RiderLocationResponse(CamelModel):
    rider_id: str
    coords: CoordsResponse
    speed: float | None = None
    heading: float | None = None
    accuracy: float | None = None
    ts: datetime


class FleetSnapshotResponse(BaseModel):
    """Latest known position of every driver that has reported."""

    riders: list[RiderLocationResponse]


class LocationHistoryResponse(CamelModel):
    """Stored samples for one driver, newest first."""

    rider_id: str
    samples: list[RiderLocationResponse]


class LocationAcceptedResponse(CamelModel):
    status: Literal["accepted"]
    ts: datetime
