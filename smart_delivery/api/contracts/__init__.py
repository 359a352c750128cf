"""Public API response contracts."""

from smart_delivery.api.contracts.models import (
    ApiErrorResponse,
    AuthSessionResponse,
    CoordsResponse,
    FleetSnapshotResponse,
    HealthResponse,
    LocationAcceptedResponse,
    LocationHistoryResponse,
    RiderLocationResponse,
    StatusResponse,
    TokenPairResponse,
    UserResponse,
)

__all__ = [
    "ApiErrorResponse",
    "AuthSessionResponse",
    "CoordsResponse",
    "FleetSnapshotResponse",
    "HealthResponse",
    "LocationAcceptedResponse",
    "LocationHistoryResponse",
    "RiderLocationResponse",
    "StatusResponse",
    "TokenPairResponse",
    "UserResponse",
]
