"""Authentication API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from smart_delivery.api.contracts import (
    ApiErrorResponse,
    AuthSessionResponse,
    StatusResponse,
    TokenPairResponse,
    UserResponse,
)
from smart_delivery.api.errors import ApiError
from smart_delivery.auth.dependencies import (
    RequestAuthenticator,
    create_current_user_dependency,
)
from smart_delivery.auth.errors import InvalidToken
from smart_delivery.auth.models import (
    AuthUser,
    ChangePasswordRequest,
    ClientInfo,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
)
from smart_delivery.auth.rate_limiter import LoginRateLimiter
from smart_delivery.auth.service import SessionManager, SessionRejected

_UNAUTHORIZED = {401: {"model": ApiErrorResponse}}


def _client_info(request: Request) -> ClientInfo:
    return ClientInfo(
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def create_auth_router(
    service: SessionManager,
    authenticator: RequestAuthenticator,
    rate_limiter: LoginRateLimiter,
) -> APIRouter:
    """Build the router for login, refresh, logout, me and change-password."""
    router = APIRouter(prefix="/api/auth", tags=["auth"])
    current_user = create_current_user_dependency(authenticator)

    @router.post(
        "/login",
        response_model=AuthSessionResponse,
        responses={**_UNAUTHORIZED, 429: {"model": ApiErrorResponse}},
    )
    async def login(req: LoginRequest, request: Request) -> AuthSessionResponse:
        client = _client_info(request)
        email = req.email.strip().lower()
        client_ip = client.ip or ""
        await run_in_threadpool(rate_limiter.assert_allowed, email=email, client_ip=client_ip)
        try:
            session = await service.login(email, req.password, client)
        except ApiError:
            await run_in_threadpool(rate_limiter.record_failure, email=email, client_ip=client_ip)
            raise
        await run_in_threadpool(rate_limiter.record_success, email=email, client_ip=client_ip)
        return AuthSessionResponse(
            access_token=session.tokens.access_token,
            refresh_token=session.tokens.refresh_token,
            expires_in=session.tokens.expires_in,
            user=UserResponse.model_validate(session.user.public_view()),
        )

    @router.post("/refresh", response_model=TokenPairResponse, responses=_UNAUTHORIZED)
    async def refresh(req: RefreshRequest, request: Request) -> TokenPairResponse:
        """Rotate a refresh token; every rejection looks the same to the client."""
        outcome = await service.refresh(req.refresh_token, _client_info(request))
        if isinstance(outcome, SessionRejected):
            raise InvalidToken()
        return TokenPairResponse(
            access_token=outcome.access_token,
            refresh_token=outcome.refresh_token,
            expires_in=outcome.expires_in,
        )

    @router.get("/me", response_model=UserResponse, responses=_UNAUTHORIZED)
    async def me(user: AuthUser = Depends(current_user)) -> UserResponse:
        return UserResponse.model_validate(user.public_view())

    @router.post("/logout", response_model=StatusResponse)
    async def logout(request: Request) -> StatusResponse:
        """Always succeeds; a body that is not ``{"refreshToken": str}`` is ignored."""
        try:
            req = LogoutRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            req = None
        await service.logout(req.refresh_token if req else None)
        return StatusResponse(status="ok")

    @router.put(
        "/change-password",
        response_model=StatusResponse,
        responses={**_UNAUTHORIZED, 400: {"model": ApiErrorResponse}},
    )
    async def change_password(
        req: ChangePasswordRequest, user: AuthUser = Depends(current_user)
    ) -> StatusResponse:
        await service.change_password(user.user_id, req.current_password, req.new_password)
        return StatusResponse(status="ok")

    return router
