"""Password hashing primitives."""

from __future__ import annotations

import base64
import hashlib
import hmac
import os

PBKDF2_ROUNDS = 120_000
_SCHEME = "pbkdf2_sha256"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("utf-8"))


def hash_password(password: str, *, rounds: int = PBKDF2_ROUNDS) -> str:
    """Hash password using PBKDF2-HMAC-SHA256 with random salt.

    The result is self-describing (``scheme$rounds$salt$digest``) so the
    round count can be raised later without invalidating stored hashes.
    """
    salt = os.urandom(16)
    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return f"{_SCHEME}${rounds}${_b64url_encode(salt)}${_b64url_encode(derived)}"


def verify_password(password: str, stored_hash: str) -> bool:
    """Verify password against a stored hash; malformed hashes never match."""
    try:
        scheme, rounds_raw, salt_b64, digest_b64 = stored_hash.split("$", 3)
        rounds = int(rounds_raw)
        salt = _b64url_decode(salt_b64)
        expected = _b64url_decode(digest_b64)
    except (ValueError, TypeError, AttributeError):
        return False
    if scheme != _SCHEME or rounds <= 0:
        return False

    derived = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(derived, expected)
