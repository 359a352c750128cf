"""Socket.IO location gateway.

Drivers push ``rider:location`` samples; managers and admins sit in the
``managers`` room and receive a periodic ``fleet:update`` with the latest
sample of every driver. One gateway instance owns the latest-per-driver
map and at most one broadcast task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from pydantic import ValidationError
from pymongo.errors import PyMongoError
from socketio.exceptions import ConnectionRefusedError

from smart_delivery.api.errors import ApiError
from smart_delivery.auth.dependencies import RequestAuthenticator
from smart_delivery.auth.models import UserRole
from smart_delivery.auth.repository import UserRepository
from smart_delivery.realtime.models import LocationSample, LocationUpdate
from smart_delivery.realtime.repository import LocationRepository

LOGGER = logging.getLogger(__name__)

MANAGERS_ROOM = "managers"
LOCATION_EVENT = "rider:location"
FLEET_UPDATE_EVENT = "fleet:update"


def rider_room(user_id: str) -> str:
    return f"rider:{user_id}"


class LocationGateway:
    def __init__(
        self,
        sio: Any,
        *,
        authenticator: RequestAuthenticator,
        users: UserRepository,
        locations: LocationRepository,
        broadcast_interval_seconds: float = 5.0,
    ) -> None:
        self._sio = sio
        self._authenticator = authenticator
        self._users = users
        self._locations = locations
        self._interval = broadcast_interval_seconds
        self._latest: dict[str, LocationSample] = {}
        self._dirty = False
        self._broadcast_task: asyncio.Task | None = None

        sio.on("connect", self.handle_connect)
        sio.on(LOCATION_EVENT, self.handle_location)
        sio.on("disconnect", self.handle_disconnect)

    @property
    def broadcasting(self) -> bool:
        return self._broadcast_task is not None and not self._broadcast_task.done()

    async def handle_connect(self, sid: str, environ: dict, auth: Any = None) -> None:
        """Authenticate the handshake before the connection is accepted."""
        token = auth.get("token") if isinstance(auth, dict) else None
        try:
            user = await self._authenticator.authenticate(token)
        except ApiError as exc:
            LOGGER.info("socket_rejected", extra={"sid": sid, "reason": exc.error_code})
            raise ConnectionRefusedError("unauthorized") from exc

        await self._sio.save_session(sid, {"user_id": user.user_id, "role": str(user.role)})
        if user.role in (UserRole.ADMIN, UserRole.MANAGER):
            room = MANAGERS_ROOM
        else:
            room = rider_room(user.user_id)
        await self._sio.enter_room(sid, room)
        await self._users.update_last_seen(user.user_id)
        LOGGER.info("socket_connected", extra={"sid": sid, "user_id": user.user_id, "room": room})

    async def handle_location(self, sid: str, payload: Any) -> None:
        session = await self._sio.get_session(sid)
        if session.get("role") != UserRole.DRIVER:
            LOGGER.debug("location_dropped", extra={"sid": sid, "reason": "not_a_driver"})
            return
        try:
            update = LocationUpdate.model_validate(payload)
        except ValidationError:
            LOGGER.debug("location_dropped", extra={"sid": sid, "reason": "invalid_payload"})
            return
        await self.accept(session["user_id"], update)

    async def handle_disconnect(self, sid: str, *args: Any) -> None:
        # Last-known locations stay in the fleet view after a disconnect.
        LOGGER.info("socket_disconnected", extra={"sid": sid})

    async def accept(self, rider_id: str, update: LocationUpdate) -> LocationSample:
        """Record a validated sample and schedule it for the next fleet update."""
        sample = LocationSample.from_update(rider_id, update)
        self._latest[rider_id] = sample
        self._dirty = True
        self._ensure_broadcasting()
        try:
            await self._locations.record(sample)
        except (PyMongoError, OSError):
            LOGGER.warning("location_persist_failed", extra={"user_id": rider_id}, exc_info=True)
        return sample

    def snapshot(self) -> list[LocationSample]:
        return list(self._latest.values())

    async def flush(self) -> bool:
        """Emit one ``fleet:update`` if anything changed since the last one."""
        if not self._dirty:
            return False
        self._dirty = False
        riders = [sample.model_dump(mode="json", by_alias=True) for sample in self.snapshot()]
        await self._sio.emit(FLEET_UPDATE_EVENT, {"riders": riders}, room=MANAGERS_ROOM)
        return True

    async def close(self) -> None:
        task, self._broadcast_task = self._broadcast_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _ensure_broadcasting(self) -> None:
        if self.broadcasting:
            return
        self._broadcast_task = asyncio.create_task(self._broadcast_loop())

    async def _broadcast_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                await self.flush()
            except Exception:
                LOGGER.exception("fleet_broadcast_failed")
