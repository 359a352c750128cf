"""Stateless signing and verification of access and refresh JWTs."""

from __future__ import annotations

import hashlib
import secrets
import time
from datetime import timedelta

import jwt
from pydantic import ValidationError

from smart_delivery.auth.errors import (
    InvalidSignature,
    MalformedToken,
    TokenExpired,
)
from smart_delivery.auth.models import TokenClaims, TokenKind
from smart_delivery.core.config import AuthConfig

JWT_ALGORITHM = "HS256"
JTI_BYTES = 16
_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub", "jti"]


def generate_jti() -> str:
    """Return an unguessable, fixed-length hex token identifier."""
    return secrets.token_hex(JTI_BYTES)


def hash_token(raw_token: str) -> str:
    """Hash a raw token for ledger storage and comparison."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Encode and verify identity claims.

    Access and refresh tokens are signed with independent secrets, so a
    leaked access token can never pass as a refresh token (and vice versa).
    """

    def __init__(self, config: AuthConfig) -> None:
        self._config = config
        self._secrets = {
            TokenKind.ACCESS: config.access_secret,
            TokenKind.REFRESH: config.refresh_secret,
        }
        self._lifetimes = {
            TokenKind.ACCESS: timedelta(seconds=config.access_token_ttl_seconds),
            TokenKind.REFRESH: timedelta(seconds=config.refresh_token_ttl_seconds),
        }

    @property
    def access_ttl_seconds(self) -> int:
        return self._config.access_token_ttl_seconds

    @property
    def refresh_ttl_seconds(self) -> int:
        return self._config.refresh_token_ttl_seconds

    def sign_access(
        self, claims: TokenClaims, *, expires_in: timedelta | None = None
    ) -> str:
        return self._sign(claims, TokenKind.ACCESS, expires_in)

    def sign_refresh(
        self, claims: TokenClaims, *, expires_in: timedelta | None = None
    ) -> str:
        return self._sign(claims, TokenKind.REFRESH, expires_in)

    def verify(self, token: str, kind: TokenKind) -> TokenClaims:
        """Verify signature, issuer, audience and expiry, then parse claims.

        Raises ``InvalidSignature``, ``TokenExpired`` or ``MalformedToken``.
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[JWT_ALGORITHM],
                audience=self._config.audience,
                issuer=self._config.issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpired("Token expired") from exc
        except (
            jwt.InvalidSignatureError,
            jwt.InvalidIssuerError,
            jwt.InvalidAudienceError,
        ) as exc:
            raise InvalidSignature(str(exc)) from exc
        except jwt.InvalidTokenError as exc:
            raise MalformedToken(str(exc)) from exc

        if payload.get("type") != kind:
            raise MalformedToken("Unexpected token type")
        try:
            return TokenClaims.model_validate(payload)
        except ValidationError as exc:
            raise MalformedToken("Invalid token claims") from exc

    def _sign(
        self, claims: TokenClaims, kind: TokenKind, expires_in: timedelta | None
    ) -> str:
        now_ts = int(time.time())
        lifetime = expires_in if expires_in is not None else self._lifetimes[kind]
        payload = {
            "sub": claims.user_id,
            "role": str(claims.role),
            "token_version": claims.token_version,
            "jti": claims.jti,
            "type": str(kind),
            "iss": self._config.issuer,
            "aud": self._config.audience,
            "iat": now_ts,
            "exp": now_ts + int(lifetime.total_seconds()),
        }
        return jwt.encode(payload, self._secrets[kind], algorithm=JWT_ALGORITHM)
