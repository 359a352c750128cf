from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from smart_delivery.api.errors import ApiError, ApiErrorCode
from smart_delivery.auth.dependencies import RequestAuthenticator
from smart_delivery.auth.errors import Forbidden
from smart_delivery.auth.models import AuthUser, TokenClaims, UserRole
from tests.auth_fixtures import build_auth_stack, seed_user


def _access_token(stack, user, *, expires_in: timedelta | None = None) -> str:
    claims = TokenClaims(
        user_id=user.user_id, role=user.role, token_version=user.token_version, jti="j1"
    )
    return stack.codec.sign_access(claims, expires_in=expires_in)


def _auth_error(stack, token: str | None) -> ApiError:
    with pytest.raises(ApiError) as exc:
        asyncio.run(stack.authenticator.authenticate(token))
    return exc.value


def test_authenticate_returns_live_user(tmp_path: Path) -> None:
    stack = build_auth_stack(tmp_path)
    user = asyncio.run(seed_user(stack.users, email="m@example.com", role=UserRole.MANAGER))

    resolved = asyncio.run(stack.authenticator.authenticate(_access_token(stack, user)))

    assert resolved.user_id == user.user_id
    assert resolved.role == UserRole.MANAGER


def test_missing_token_has_its_own_code(tmp_path: Path) -> None:
    stack = build_auth_stack(tmp_path)

    error = _auth_error(stack, None)

    assert error.status_code == 401
    assert error.error_code == ApiErrorCode.AUTH_MISSING_TOKEN
    assert error.headers == {"WWW-Authenticate": "Bearer"}


def test_expired_stale_and_inactive_tokens_look_identical(tmp_path: Path) -> None:
    stack = build_auth_stack(tmp_path)

    async def setup():
        driver = await seed_user(stack.users, email="d@example.com")
        stale_user = await seed_user(stack.users, email="s@example.com")
        inactive = await seed_user(stack.users, email="i@example.com")
        tokens = [
            _access_token(stack, driver, expires_in=timedelta(seconds=-1)),
            _access_token(stack, stale_user),
            _access_token(stack, inactive),
            stack.codec.sign_refresh(
                TokenClaims(user_id=driver.user_id, role=driver.role, token_version=0, jti="r")
            ),
        ]
        await stack.users.increment_token_version(stale_user.user_id)
        await stack.users.upsert(inactive.model_copy(update={"is_active": False}))
        return tokens

    errors = [_auth_error(stack, token) for token in asyncio.run(setup())]

    assert {error.status_code for error in errors} == {401}
    assert {error.error_code for error in errors} == {ApiErrorCode.AUTH_TOKEN_INVALID}
    assert len({str(error.detail) for error in errors}) == 1


def test_authorize_checks_roles() -> None:
    driver = AuthUser(user_id="u", email="d@example.com", role=UserRole.DRIVER, password_hash="x")

    assert RequestAuthenticator.authorize(driver) is driver
    assert RequestAuthenticator.authorize(driver, [UserRole.DRIVER]) is driver
    with pytest.raises(Forbidden) as exc:
        RequestAuthenticator.authorize(driver, [UserRole.ADMIN, UserRole.MANAGER])
    assert exc.value.status_code == 403
