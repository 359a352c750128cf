"""Authentication error taxonomy.

HTTP-facing failures subclass :class:`ApiError` so the shared exception
handlers render them with the standard envelope. Token codec failures are
internal: callers translate them before anything reaches a client.
"""

from __future__ import annotations

from smart_delivery.api.errors import ApiError, ApiErrorCode

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


class InvalidCredentials(ApiError):
    """Unknown email or wrong password; the two are not distinguished."""

    def __init__(
        self, message: str = "Invalid credentials", *, status_code: int = 401
    ) -> None:
        super().__init__(
            status_code=status_code,
            error_code=ApiErrorCode.AUTH_INVALID_CREDENTIALS,
            message=message,
        )


class AccountDeactivated(ApiError):
    def __init__(self) -> None:
        super().__init__(
            status_code=401,
            error_code=ApiErrorCode.AUTH_ACCOUNT_DEACTIVATED,
            message="Account is deactivated",
        )


class InvalidToken(ApiError):
    """Any refresh failure: malformed, expired, stale version or ledger miss."""

    def __init__(self) -> None:
        super().__init__(
            status_code=401,
            error_code=ApiErrorCode.AUTH_TOKEN_INVALID,
            message="Invalid token",
            headers=_BEARER_CHALLENGE,
        )


class Unauthenticated(ApiError):
    def __init__(
        self,
        message: str = "Unauthenticated",
        *,
        error_code: ApiErrorCode = ApiErrorCode.AUTH_TOKEN_INVALID,
    ) -> None:
        super().__init__(
            status_code=401,
            error_code=error_code,
            message=message,
            headers=_BEARER_CHALLENGE,
        )


class Forbidden(ApiError):
    def __init__(self) -> None:
        super().__init__(
            status_code=403,
            error_code=ApiErrorCode.AUTH_FORBIDDEN,
            message="Forbidden",
        )


class RateLimited(ApiError):
    def __init__(self, retry_after: int) -> None:
        super().__init__(
            status_code=429,
            error_code=ApiErrorCode.AUTH_RATE_LIMITED,
            message=f"Too many login attempts. Retry after {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


class TokenError(Exception):
    """Base class for token verification failures."""


class InvalidSignature(TokenError):
    """Signature, issuer or audience check failed."""


class TokenExpired(TokenError):
    pass


class MalformedToken(TokenError):
    """Token could not be decoded or its claims have the wrong shape."""
