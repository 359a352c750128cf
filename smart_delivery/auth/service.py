"""Session lifecycle: login, refresh rotation, logout and password change."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from functools import cache

from starlette.concurrency import run_in_threadpool

from smart_delivery.auth.errors import (
    AccountDeactivated,
    InvalidCredentials,
    TokenError,
)
from smart_delivery.auth.models import (
    AuthSession,
    AuthUser,
    ClientInfo,
    RefreshTokenRecord,
    TokenClaims,
    TokenKind,
    TokenPair,
    UserRole,
    utcnow,
)
from smart_delivery.auth.repository import RefreshTokenLedger, UserRepository
from smart_delivery.auth.tokens import TokenCodec, generate_jti, hash_token
from smart_delivery.core.config import AuthConfig
from smart_delivery.core.security import hash_password, verify_password

LOGGER = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


@cache
def _decoy_password_hash() -> str:
    return hash_password(uuid.uuid4().hex)


async def _password_matches(user: AuthUser | None, password: str) -> bool:
    """Run PBKDF2 off the event loop, spending the same work for unknown users."""
    if user is None:
        decoy = await run_in_threadpool(_decoy_password_hash)
        await run_in_threadpool(verify_password, password, decoy)
        return False
    return await run_in_threadpool(user.verify_password, password)


class RejectReason(StrEnum):
    INVALID_TOKEN = "invalid_token"
    USER_UNAVAILABLE = "user_unavailable"
    STALE_VERSION = "stale_version"
    REUSE_DETECTED = "reuse_detected"


@dataclass(frozen=True)
class SessionRejected:
    """Refresh outcome when no new pair is issued; the reason is never sent to clients."""

    reason: RejectReason


class SessionManager:
    """Owns the refresh token state machine on top of the ledger and credential store."""

    def __init__(
        self,
        users: UserRepository,
        ledger: RefreshTokenLedger,
        codec: TokenCodec,
        config: AuthConfig,
    ) -> None:
        self._users = users
        self._ledger = ledger
        self._codec = codec
        self._config = config

    async def bootstrap_admin_user(self) -> None:
        """Ensure the configured admin account exists."""
        if not self._config.admin_email or not self._config.admin_password:
            return
        existing = await self._users.find_by_email(self._config.admin_email)
        if existing is not None:
            return

        await self._users.upsert(
            AuthUser(
                user_id=uuid.uuid4().hex,
                name=self._config.admin_name,
                email=self._config.admin_email,
                role=UserRole.ADMIN,
                password_hash=await run_in_threadpool(hash_password, self._config.admin_password),
                is_active=True,
            )
        )
        LOGGER.info("admin_user_seeded")

    async def login(
        self, email: str, password: str, client: ClientInfo | None = None
    ) -> AuthSession:
        """Authenticate credentials and issue a fresh token pair."""
        user = await self._users.find_by_email(email.strip().lower())
        if not await _password_matches(user, password):
            raise InvalidCredentials()
        if not user.is_active:
            raise AccountDeactivated()

        tokens = await self._issue(user, client or ClientInfo())
        now = utcnow()
        await self._users.update_last_seen(user.user_id, now)
        return AuthSession(tokens=tokens, user=user.model_copy(update={"last_seen_at": now}))

    async def refresh(
        self, raw_token: str, client: ClientInfo | None = None
    ) -> TokenPair | SessionRejected:
        """Consume a refresh token and rotate it into a new pair."""
        try:
            claims = self._codec.verify(raw_token, TokenKind.REFRESH)
        except TokenError as exc:
            LOGGER.info(
                "refresh_rejected",
                extra={"reason": f"{RejectReason.INVALID_TOKEN}:{type(exc).__name__}"},
            )
            return SessionRejected(RejectReason.INVALID_TOKEN)

        user = await self._users.find_by_id(claims.user_id)
        if user is None or not user.is_active:
            return self._reject(claims, RejectReason.USER_UNAVAILABLE)

        if claims.token_version != user.token_version:
            await self._ledger.revoke_all(user.user_id)
            return self._reject(claims, RejectReason.STALE_VERSION)

        check = await self._ledger.find_valid(user.user_id, claims.jti, hash_token(raw_token))
        if not check.valid:
            return await self._reuse_detected(claims, check.reason)

        if not await self._ledger.revoke_one(user.user_id, claims.jti):
            return await self._reuse_detected(claims, "lost_race")

        return await self._issue(user, client or ClientInfo())

    async def logout(self, raw_token: str | None) -> None:
        """Revoke the presented refresh token; garbage and repeats are no-ops."""
        if not raw_token:
            return
        try:
            claims = self._codec.verify(raw_token, TokenKind.REFRESH)
        except TokenError:
            return
        await self._ledger.revoke_one(claims.user_id, claims.jti)

    async def change_password(
        self, user_id: str, current_password: str, new_password: str
    ) -> None:
        """Replace the password and invalidate every outstanding token."""
        user = await self._users.find_by_id(user_id)
        if not await _password_matches(user, current_password):
            raise InvalidCredentials("Current password is incorrect", status_code=400)
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise InvalidCredentials(
                f"New password must be at least {MIN_PASSWORD_LENGTH} characters",
                status_code=400,
            )
        if new_password == current_password:
            raise InvalidCredentials(
                "New password must differ from the current one", status_code=400
            )

        password_hash = await run_in_threadpool(hash_password, new_password)
        await self._users.replace_password(user_id, password_hash)
        revoked = await self._ledger.revoke_all(user_id)
        LOGGER.info("password_changed", extra={"user_id": user_id, "reason": f"revoked={revoked}"})

    async def _issue(self, user: AuthUser, client: ClientInfo) -> TokenPair:
        jti = generate_jti()
        claims = TokenClaims(
            user_id=user.user_id,
            role=user.role,
            token_version=user.token_version,
            jti=jti,
        )
        access_token = self._codec.sign_access(claims)
        refresh_token = self._codec.sign_refresh(claims)
        await self._ledger.create(
            RefreshTokenRecord(
                user_id=user.user_id,
                jti=jti,
                hashed_token=hash_token(refresh_token),
                expires_at=utcnow() + timedelta(seconds=self._codec.refresh_ttl_seconds),
                ip=client.ip,
                user_agent=client.user_agent,
            )
        )
        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            jti=jti,
            expires_in=self._codec.access_ttl_seconds,
        )

    async def _reuse_detected(self, claims: TokenClaims, detail: str) -> SessionRejected:
        await self._ledger.revoke_all(claims.user_id)
        await self._users.increment_token_version(claims.user_id)
        LOGGER.warning(
            "refresh_reuse_detected",
            extra={"user_id": claims.user_id, "jti": claims.jti, "reason": detail},
        )
        return SessionRejected(RejectReason.REUSE_DETECTED)

    @staticmethod
    def _reject(claims: TokenClaims, reason: RejectReason) -> SessionRejected:
        LOGGER.info(
            "refresh_rejected",
            extra={"user_id": claims.user_id, "jti": claims.jti, "reason": str(reason)},
        )
        return SessionRejected(reason)
