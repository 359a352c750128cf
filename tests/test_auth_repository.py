from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

from smart_delivery.auth.models import RefreshTokenRecord, utcnow
from smart_delivery.auth.repository import RefreshTokenLedger, UserRepository
from smart_delivery.auth.tokens import hash_token
from smart_delivery.core.config import MongoConfig
from smart_delivery.core.mongo import MongoConnection
from tests.auth_fixtures import seed_user


def _file_backed(tmp_path: Path) -> tuple[UserRepository, RefreshTokenLedger]:
    mongo = MongoConnection(MongoConfig(uri="", database="unused"))
    return UserRepository(mongo, tmp_path), RefreshTokenLedger(mongo, tmp_path)


def _record(user_id: str, jti: str, raw: str, *, ttl: timedelta = timedelta(hours=1)):
    return RefreshTokenRecord(
        user_id=user_id,
        jti=jti,
        hashed_token=hash_token(raw),
        expires_at=utcnow() + ttl,
    )


def test_user_repository_file_store_lookup_and_version_bumps(tmp_path: Path) -> None:
    users, _ = _file_backed(tmp_path)

    async def scenario():
        user = await seed_user(users, email="Driver@Example.com")
        by_email = await users.find_by_email("driver@example.COM")
        bumped = await users.increment_token_version(user.user_id)
        replaced = await users.replace_password(user.user_id, "new-hash")
        missing = await users.increment_token_version("nobody")
        stored = await users.find_by_id(user.user_id)
        return user, by_email, bumped, replaced, missing, stored

    user, by_email, bumped, replaced, missing, stored = asyncio.run(scenario())

    assert by_email.user_id == user.user_id
    assert by_email.email == "driver@example.com"
    assert (bumped, replaced, missing) == (1, 2, None)
    assert stored.password_hash == "new-hash"
    assert stored.token_version == 2
    assert (tmp_path / "users.json").exists()


def test_ledger_find_valid_reports_reason(tmp_path: Path) -> None:
    _, ledger = _file_backed(tmp_path)

    async def scenario():
        await ledger.create(_record("u1", "live", "raw-live"))
        await ledger.create(_record("u1", "old", "raw-old", ttl=timedelta(seconds=-5)))
        return [
            await ledger.find_valid("u1", "live", hash_token("raw-live")),
            await ledger.find_valid("u1", "live", hash_token("tampered")),
            await ledger.find_valid("u1", "old", hash_token("raw-old")),
            await ledger.find_valid("u1", "missing", hash_token("raw-live")),
            await ledger.find_valid("u2", "live", hash_token("raw-live")),
        ]

    checks = asyncio.run(scenario())

    assert checks[0].valid
    assert [check.reason for check in checks[1:]] == [
        "hash_mismatch",
        "expired",
        "not_found",
        "not_found",
    ]


def test_ledger_revoke_one_transitions_only_once(tmp_path: Path) -> None:
    _, ledger = _file_backed(tmp_path)

    async def scenario():
        await ledger.create(_record("u1", "a", "raw-a"))
        first = await ledger.revoke_one("u1", "a")
        second = await ledger.revoke_one("u1", "a")
        check = await ledger.find_valid("u1", "a", hash_token("raw-a"))
        return first, second, check

    first, second, check = asyncio.run(scenario())

    assert first is True
    assert second is False
    assert check.reason == "revoked"


def test_ledger_revoke_all_is_scoped_to_user(tmp_path: Path) -> None:
    _, ledger = _file_backed(tmp_path)

    async def scenario():
        for jti in ("a", "b", "c"):
            await ledger.create(_record("u1", jti, f"raw-{jti}"))
        await ledger.create(_record("u2", "a", "raw-other"))
        await ledger.revoke_one("u1", "c")
        revoked = await ledger.revoke_all("u1")
        other = await ledger.find_valid("u2", "a", hash_token("raw-other"))
        return revoked, other

    revoked, other = asyncio.run(scenario())

    assert revoked == 2
    assert other.valid
