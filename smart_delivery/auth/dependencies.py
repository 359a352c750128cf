"""Bearer-token authentication and role checks for protected routes."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from smart_delivery.api.errors import ApiErrorCode
from smart_delivery.auth.errors import Forbidden, TokenError, Unauthenticated
from smart_delivery.auth.models import AuthUser, TokenKind, UserRole
from smart_delivery.auth.repository import UserRepository
from smart_delivery.auth.tokens import TokenCodec

bearer_scheme = HTTPBearer(auto_error=False)


class RequestAuthenticator:
    """Resolves an access token to a live user; never touches the ledger."""

    def __init__(self, users: UserRepository, codec: TokenCodec) -> None:
        self._users = users
        self._codec = codec

    async def authenticate(self, token: str | None) -> AuthUser:
        if not token:
            raise Unauthenticated(
                "Missing bearer token", error_code=ApiErrorCode.AUTH_MISSING_TOKEN
            )
        try:
            claims = self._codec.verify(token, TokenKind.ACCESS)
        except TokenError as exc:
            raise Unauthenticated("Invalid or expired token") from exc

        user = await self._users.find_by_id(claims.user_id)
        if user is None or not user.is_active:
            raise Unauthenticated("Invalid or expired token")
        if user.token_version != claims.token_version:
            raise Unauthenticated("Invalid or expired token")
        return user

    @staticmethod
    def authorize(user: AuthUser, allowed_roles: Iterable[UserRole] = ()) -> AuthUser:
        """Empty ``allowed_roles`` admits any authenticated role."""
        roles = set(allowed_roles)
        if roles and user.role not in roles:
            raise Forbidden()
        return user


def create_current_user_dependency(
    authenticator: RequestAuthenticator,
) -> Callable[..., Awaitable[AuthUser]]:
    async def current_user(
        creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    ) -> AuthUser:
        token = creds.credentials if creds and creds.scheme.lower() == "bearer" else None
        return await authenticator.authenticate(token)

    return current_user


def require_roles(
    authenticator: RequestAuthenticator, *roles: UserRole
) -> Callable[..., Awaitable[AuthUser]]:
    """Dependency that authenticates and then enforces one of ``roles``."""
    current_user = create_current_user_dependency(authenticator)

    async def role_guard(user: AuthUser = Depends(current_user)) -> AuthUser:
        return authenticator.authorize(user, roles)

    return role_guard
