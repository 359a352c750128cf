"""HTTP access to driver telemetry alongside the socket gateway."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from smart_delivery.api.contracts import (
    ApiErrorResponse,
    FleetSnapshotResponse,
    LocationAcceptedResponse,
    LocationHistoryResponse,
    RiderLocationResponse,
)
from smart_delivery.api.errors import ApiError, ApiErrorCode
from smart_delivery.auth.dependencies import RequestAuthenticator, require_roles
from smart_delivery.auth.models import AuthUser, UserRole
from smart_delivery.auth.repository import UserRepository
from smart_delivery.realtime.gateway import LocationGateway
from smart_delivery.realtime.models import LocationUpdate
from smart_delivery.realtime.repository import LocationRepository

_GUARDED = {401: {"model": ApiErrorResponse}, 403: {"model": ApiErrorResponse}}


def create_tracking_router(
    gateway: LocationGateway,
    authenticator: RequestAuthenticator,
    users: UserRepository,
    locations: LocationRepository,
) -> APIRouter:
    router = APIRouter(prefix="/api/tracking", tags=["tracking"])
    driver_only = require_roles(authenticator, UserRole.DRIVER)
    fleet_viewer = require_roles(authenticator, UserRole.ADMIN, UserRole.MANAGER)

    @router.post(
        "/location",
        status_code=201,
        response_model=LocationAcceptedResponse,
        responses=_GUARDED,
    )
    async def post_location(
        req: LocationUpdate, user: AuthUser = Depends(driver_only)
    ) -> LocationAcceptedResponse:
        """Same payload as the ``rider:location`` socket event."""
        sample = await gateway.accept(user.user_id, req)
        return LocationAcceptedResponse(status="accepted", ts=sample.ts)

    @router.get("/fleet", response_model=FleetSnapshotResponse, responses=_GUARDED)
    async def get_fleet(_: AuthUser = Depends(fleet_viewer)) -> FleetSnapshotResponse:
        return FleetSnapshotResponse(
            riders=[
                RiderLocationResponse.model_validate(sample.model_dump())
                for sample in gateway.snapshot()
            ]
        )

    @router.get(
        "/drivers/{driver_id}/history",
        response_model=LocationHistoryResponse,
        responses={**_GUARDED, 404: {"model": ApiErrorResponse}},
    )
    async def get_driver_history(
        driver_id: str,
        limit: int = Query(default=50, ge=1, le=500),
        _: AuthUser = Depends(fleet_viewer),
    ) -> LocationHistoryResponse:
        driver = await users.find_by_id(driver_id)
        if driver is None or driver.role != UserRole.DRIVER:
            raise ApiError(
                status_code=404,
                error_code=ApiErrorCode.NOT_FOUND,
                message="Driver not found",
            )
        samples = await locations.recent(driver_id, limit=limit)
        return LocationHistoryResponse(
            rider_id=driver_id,
            samples=[
                RiderLocationResponse.model_validate(sample.model_dump())
                for sample in samples
            ],
        )

    return router
