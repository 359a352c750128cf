"""Pydantic models for the authentication domain."""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from smart_delivery.core.security import verify_password


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class UserRole(StrEnum):
    ADMIN = "admin"
    MANAGER = "manager"
    DRIVER = "driver"


class TokenKind(StrEnum):
    ACCESS = "access"
    REFRESH = "refresh"


class CamelModel(BaseModel):
    """Request/response model exchanged with the dashboard in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuthUser(BaseModel):
    """Persisted user record owned by the credential store."""

    user_id: str
    name: str = ""
    email: str
    phone: str | None = None
    role: UserRole
    password_hash: str
    is_active: bool = True
    token_version: int = Field(default=0, ge=0)
    last_seen_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("last_seen_at", "created_at")
    @classmethod
    def normalize_dates(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def verify_password(self, raw_password: str) -> bool:
        return verify_password(raw_password, self.password_hash)

    def public_view(self) -> dict[str, Any]:
        """Projection safe to return to clients; never includes the hash."""
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
            "last_seen_at": self.last_seen_at,
        }


@dataclass(frozen=True)
class LedgerCheck:
    """Outcome of validating a presented refresh token against its ledger row."""

    valid: bool
    reason: str = ""


LEDGER_OK = LedgerCheck(valid=True)
LEDGER_NOT_FOUND = LedgerCheck(valid=False, reason="not_found")


class RefreshTokenRecord(BaseModel):
    """Refresh token ledger row; the raw token is never stored."""

    user_id: str
    jti: str
    hashed_token: str
    expires_at: datetime
    revoked_at: datetime | None = None
    ip: str | None = None
    user_agent: str | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at", "revoked_at", "created_at")
    @classmethod
    def normalize_dates(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    def check(self, token_hash: str, *, now: datetime | None = None) -> LedgerCheck:
        if self.revoked_at is not None:
            return LedgerCheck(valid=False, reason="revoked")
        if not hmac.compare_digest(self.hashed_token, token_hash):
            return LedgerCheck(valid=False, reason="hash_mismatch")
        if self.expires_at <= (now or utcnow()):
            return LedgerCheck(valid=False, reason="expired")
        return LEDGER_OK


class TokenClaims(BaseModel):
    """Identity claims carried by both access and refresh tokens.

    Field aliases are the registered/private JWT claim names, so decoded
    payloads validate directly and missing claims are rejected.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(alias="sub", min_length=1, strict=True)
    role: UserRole
    token_version: int = Field(ge=0, strict=True)
    jti: str = Field(min_length=1, strict=True)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    jti: str
    expires_in: int


@dataclass(frozen=True)
class AuthSession:
    """Result of a successful login."""

    tokens: TokenPair
    user: AuthUser


@dataclass(frozen=True)
class ClientInfo:
    """Request metadata stored alongside a ledger row."""

    ip: str | None = None
    user_agent: str | None = None


class LoginRequest(CamelModel):
    email: str = Field(min_length=3)
    password: str = Field(min_length=1)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(min_length=1)


class LogoutRequest(CamelModel):
    refresh_token: str | None = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=1, max_length=256)
