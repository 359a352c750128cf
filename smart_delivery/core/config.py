"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_DEV_ACCESS_SECRET = "dev-access-secret-change-me-0123456789"
_DEV_REFRESH_SECRET = "dev-refresh-secret-change-me-0123456789"


@dataclass(frozen=True)
class AuthConfig:
    """Token signing and session configuration."""

    access_secret: str
    refresh_secret: str
    access_token_ttl_seconds: int
    refresh_token_ttl_seconds: int
    issuer: str
    audience: str
    admin_email: str
    admin_password: str
    admin_name: str = "Admin"


@dataclass(frozen=True)
class MongoConfig:
    """MongoDB connection settings; an empty uri selects the file store."""

    uri: str
    database: str


@dataclass(frozen=True)
class RealtimeConfig:
    """Realtime location gateway settings."""

    broadcast_interval_seconds: float


@dataclass(frozen=True)
class LoggingConfig:
    """Structured logging configuration."""

    level: str


@dataclass(frozen=True)
class SecurityConfig:
    """API perimeter security settings."""

    cors_allowed_origins: list[str]
    request_max_bytes: int
    state_db_path: str
    login_rate_limit_max_attempts: int
    login_rate_limit_window_seconds: int
    login_rate_limit_lock_seconds: int


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    env: str
    auth: AuthConfig
    mongo: MongoConfig
    realtime: RealtimeConfig
    logging: LoggingConfig
    security: SecurityConfig

    @property
    def is_production(self) -> bool:
        return self.env in {"prod", "production"}

    @staticmethod
    def from_env() -> "AppConfig":
        """Build app config from process environment."""
        env = (os.getenv("APP_ENV", "development").strip() or "development").lower()
        is_production = env in {"prod", "production"}

        access_secret = os.getenv("AUTH_ACCESS_SECRET", "").strip()
        refresh_secret = os.getenv("AUTH_REFRESH_SECRET", "").strip()
        if is_production:
            if not access_secret or not refresh_secret:
                raise RuntimeError(
                    "AUTH_ACCESS_SECRET and AUTH_REFRESH_SECRET must be set in production."
                )
            if access_secret == refresh_secret:
                raise RuntimeError("Access and refresh secrets must differ.")
        access_secret = access_secret or _DEV_ACCESS_SECRET
        refresh_secret = refresh_secret or _DEV_REFRESH_SECRET

        access_ttl = int(os.getenv("AUTH_ACCESS_TOKEN_TTL_SECONDS", "900"))
        refresh_ttl = int(os.getenv("AUTH_REFRESH_TOKEN_TTL_SECONDS", "604800"))
        issuer = os.getenv("AUTH_ISSUER", "").strip() or "smart-delivery-api"
        audience = os.getenv("AUTH_AUDIENCE", "").strip() or "smart-delivery-clients"
        admin_defaults = ("", "") if is_production else ("admin@example.com", "password123")
        admin_email = os.getenv("AUTH_ADMIN_EMAIL", admin_defaults[0]).strip().lower()
        admin_password = os.getenv("AUTH_ADMIN_PASSWORD", admin_defaults[1]).strip()
        if is_production and bool(admin_email) != bool(admin_password):
            raise RuntimeError(
                "AUTH_ADMIN_EMAIL and AUTH_ADMIN_PASSWORD must be set together in production."
            )
        admin_name = os.getenv("AUTH_ADMIN_NAME", "Admin").strip() or "Admin"

        mongo_uri = os.getenv("MONGODB_URI", "").strip()
        mongo_db = os.getenv("MONGODB_DB", "smart_delivery").strip() or "smart_delivery"

        broadcast_interval = float(os.getenv("FLEET_BROADCAST_INTERVAL_SECONDS", "5"))
        log_level = os.getenv("LOG_LEVEL", "INFO").strip() or "INFO"
        cors_allowed_origins = [
            origin.strip()
            for origin in os.getenv(
                "CORS_ALLOWED_ORIGINS",
                "http://localhost:5173,http://localhost:3000",
            ).split(",")
            if origin.strip()
        ]
        request_max_bytes = int(os.getenv("REQUEST_MAX_BYTES", str(10 * 1024 * 1024)))
        state_db_path = (
            os.getenv("STATE_DB_PATH", "runtime/app_state.db").strip()
            or "runtime/app_state.db"
        )

        return AppConfig(
            env=env,
            auth=AuthConfig(
                access_secret=access_secret,
                refresh_secret=refresh_secret,
                access_token_ttl_seconds=access_ttl,
                refresh_token_ttl_seconds=refresh_ttl,
                issuer=issuer,
                audience=audience,
                admin_email=admin_email,
                admin_password=admin_password,
                admin_name=admin_name,
            ),
            mongo=MongoConfig(uri=mongo_uri, database=mongo_db),
            realtime=RealtimeConfig(broadcast_interval_seconds=broadcast_interval),
            logging=LoggingConfig(level=log_level),
            security=SecurityConfig(
                cors_allowed_origins=cors_allowed_origins,
                request_max_bytes=request_max_bytes,
                state_db_path=state_db_path,
                login_rate_limit_max_attempts=int(
                    os.getenv("LOGIN_RATE_LIMIT_MAX_ATTEMPTS", "10")
                ),
                login_rate_limit_window_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_WINDOW_SECONDS", "900")
                ),
                login_rate_limit_lock_seconds=int(
                    os.getenv("LOGIN_RATE_LIMIT_LOCK_SECONDS", "900")
                ),
            ),
        )
