from __future__ import annotations

import logging
from pathlib import Path

import socketio
from dotenv import load_dotenv
from fastapi import FastAPI

from smart_delivery.api.contracts import HealthResponse
from smart_delivery.api.http_setup import register_exception_handlers, register_http_middleware
from smart_delivery.auth.dependencies import RequestAuthenticator
from smart_delivery.auth.rate_limiter import LoginRateLimiter
from smart_delivery.auth.repository import RefreshTokenLedger, UserRepository
from smart_delivery.auth.router import create_auth_router
from smart_delivery.auth.service import SessionManager
from smart_delivery.auth.tokens import TokenCodec
from smart_delivery.core.config import AppConfig
from smart_delivery.core.logging import setup_logging
from smart_delivery.core.mongo import MongoConnection
from smart_delivery.realtime.gateway import LocationGateway
from smart_delivery.realtime.repository import LocationRepository
from smart_delivery.tracking.router import create_tracking_router

load_dotenv()
LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent


def create_app(config: AppConfig | None = None, *, app_root: Path = APP_ROOT) -> FastAPI:
    config = config or AppConfig.from_env()
    setup_logging(config.logging.level)

    store_dir = app_root / "runtime" / "store"
    store_dir.mkdir(parents=True, exist_ok=True)

    app = FastAPI(
        title="Smart Delivery API",
        version="1.0.0",
        docs_url=None if config.is_production else "/docs",
        redoc_url=None,
    )
    register_http_middleware(app, config=config, logger=LOGGER)
    register_exception_handlers(app, logger=LOGGER)

    mongo = MongoConnection(config.mongo)
    users = UserRepository(mongo, store_dir)
    ledger = RefreshTokenLedger(mongo, store_dir)
    codec = TokenCodec(config.auth)
    sessions = SessionManager(users, ledger, codec, config.auth)
    authenticator = RequestAuthenticator(users, codec)
    login_rate_limiter = LoginRateLimiter(
        database_path=(app_root / config.security.state_db_path).resolve(),
        max_attempts=config.security.login_rate_limit_max_attempts,
        window_seconds=config.security.login_rate_limit_window_seconds,
        lock_seconds=config.security.login_rate_limit_lock_seconds,
    )

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins=config.security.cors_allowed_origins,
    )
    locations = LocationRepository(mongo, store_dir)
    gateway = LocationGateway(
        sio,
        authenticator=authenticator,
        users=users,
        locations=locations,
        broadcast_interval_seconds=config.realtime.broadcast_interval_seconds,
    )
    app.state.sio = sio
    app.state.gateway = gateway
    app.state.mongo = mongo

    app.include_router(create_auth_router(sessions, authenticator, login_rate_limiter))
    app.include_router(create_tracking_router(gateway, authenticator, users, locations))

    @app.get("/api/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", storage="mongo" if mongo.connected else "file")

    @app.on_event("startup")
    async def on_startup() -> None:
        await mongo.connect()
        await sessions.bootstrap_admin_user()
        LOGGER.info("app_started")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        await gateway.close()
        login_rate_limiter.close()
        await mongo.close()

    return app


def create_asgi_app(app: FastAPI) -> socketio.ASGIApp:
    """Serve Socket.IO on ``/socket.io`` and hand everything else to FastAPI."""
    return socketio.ASGIApp(app.state.sio, other_asgi_app=app)


app = create_app()
asgi_app = create_asgi_app(app)
