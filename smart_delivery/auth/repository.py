"""Persistence for users (credential store) and the refresh token ledger.

Both repositories use MongoDB when the shared connection is live and fall
back to JSON files under ``store_dir`` otherwise. File-store operations
never suspend between reading and writing, so each one is atomic with
respect to the event loop.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

from pymongo import ReturnDocument

from smart_delivery.auth.models import (
    LEDGER_NOT_FOUND,
    AuthUser,
    LedgerCheck,
    RefreshTokenRecord,
    utcnow,
)
from smart_delivery.core.json_store import read_documents, write_documents
from smart_delivery.core.mongo import MongoConnection
from smart_delivery.core.mongo_migrations import (
    REFRESH_TOKENS_COLLECTION,
    USERS_COLLECTION,
)


def _user_document(user: AuthUser, *, json_mode: bool) -> dict[str, Any]:
    doc = user.model_dump(mode="json" if json_mode else "python")
    doc["role"] = str(user.role)
    return doc


class UserRepository:
    """Credential store: user lookup and token-version bookkeeping."""

    def __init__(self, mongo: MongoConnection, store_dir: Path) -> None:
        self._mongo = mongo
        self._users_file = store_dir / "users.json"

    async def find_by_email(self, email: str) -> AuthUser | None:
        key = email.strip().lower()
        collection = self._mongo.collection(USERS_COLLECTION)
        if collection is not None:
            doc = await collection.find_one({"email": key}, {"_id": 0})
            return AuthUser.model_validate(doc) if doc else None

        for row in read_documents(self._users_file):
            if str(row.get("email", "")).strip().lower() == key:
                return AuthUser.model_validate(row)
        return None

    async def find_by_id(self, user_id: str) -> AuthUser | None:
        collection = self._mongo.collection(USERS_COLLECTION)
        if collection is not None:
            doc = await collection.find_one({"user_id": user_id}, {"_id": 0})
            return AuthUser.model_validate(doc) if doc else None

        for row in read_documents(self._users_file):
            if row.get("user_id") == user_id:
                return AuthUser.model_validate(row)
        return None

    async def upsert(self, user: AuthUser) -> None:
        """Create or replace a user, keyed by its normalised email."""
        user = user.model_copy(update={"email": user.email.strip().lower()})
        collection = self._mongo.collection(USERS_COLLECTION)
        if collection is not None:
            await collection.update_one(
                {"email": user.email},
                {"$set": _user_document(user, json_mode=False)},
                upsert=True,
            )
            return

        rows = [
            row
            for row in read_documents(self._users_file)
            if str(row.get("email", "")).strip().lower() != user.email
        ]
        rows.append(_user_document(user, json_mode=True))
        write_documents(self._users_file, rows)

    async def increment_token_version(self, user_id: str) -> int | None:
        """Bump the user's token version; returns the new value."""
        return await self._update(user_id, set_fields={}, bump_version=True)

    async def replace_password(self, user_id: str, password_hash: str) -> int | None:
        """Store a new hash and bump the token version in one update."""
        return await self._update(
            user_id, set_fields={"password_hash": password_hash}, bump_version=True
        )

    async def update_last_seen(self, user_id: str, when: datetime | None = None) -> None:
        await self._update(
            user_id, set_fields={"last_seen_at": when or utcnow()}, bump_version=False
        )

    async def _update(
        self, user_id: str, *, set_fields: dict[str, Any], bump_version: bool
    ) -> int | None:
        collection = self._mongo.collection(USERS_COLLECTION)
        if collection is not None:
            update: dict[str, Any] = {}
            if set_fields:
                update["$set"] = set_fields
            if bump_version:
                update["$inc"] = {"token_version": 1}
            doc = await collection.find_one_and_update(
                {"user_id": user_id},
                update,
                projection={"_id": 0, "token_version": 1},
                return_document=ReturnDocument.AFTER,
            )
            return int(doc["token_version"]) if doc else None

        rows = read_documents(self._users_file)
        for row in rows:
            if row.get("user_id") != user_id:
                continue
            for key, value in set_fields.items():
                row[key] = value.isoformat() if isinstance(value, datetime) else value
            if bump_version:
                row["token_version"] = int(row.get("token_version") or 0) + 1
            write_documents(self._users_file, rows)
            return int(row["token_version"])
        return None


class RefreshTokenLedger:
    """Registry of issued refresh tokens keyed by ``(user_id, jti)``."""

    def __init__(self, mongo: MongoConnection, store_dir: Path) -> None:
        self._mongo = mongo
        self._tokens_file = store_dir / "refresh_tokens.json"

    async def create(self, record: RefreshTokenRecord) -> None:
        collection = self._mongo.collection(REFRESH_TOKENS_COLLECTION)
        if collection is not None:
            await collection.insert_one(record.model_dump())
            return

        rows = read_documents(self._tokens_file)
        if any(
            row.get("user_id") == record.user_id and row.get("jti") == record.jti
            for row in rows
        ):
            raise ValueError(f"Duplicate refresh token id: {record.jti}")
        rows.append(record.model_dump(mode="json"))
        write_documents(self._tokens_file, rows)

    async def find(self, user_id: str, jti: str) -> RefreshTokenRecord | None:
        collection = self._mongo.collection(REFRESH_TOKENS_COLLECTION)
        if collection is not None:
            doc = await collection.find_one({"user_id": user_id, "jti": jti}, {"_id": 0})
            return RefreshTokenRecord.model_validate(doc) if doc else None

        for row in read_documents(self._tokens_file):
            if row.get("user_id") == user_id and row.get("jti") == jti:
                return RefreshTokenRecord.model_validate(row)
        return None

    async def find_valid(self, user_id: str, jti: str, token_hash: str) -> LedgerCheck:
        record = await self.find(user_id, jti)
        if record is None:
            return LEDGER_NOT_FOUND
        return record.check(token_hash)

    async def revoke_one(self, user_id: str, jti: str) -> bool:
        """Revoke a live row; ``False`` means it was missing or already revoked."""
        now = utcnow()
        collection = self._mongo.collection(REFRESH_TOKENS_COLLECTION)
        if collection is not None:
            result = await collection.update_one(
                {"user_id": user_id, "jti": jti, "revoked_at": None},
                {"$set": {"revoked_at": now}},
            )
            return result.modified_count == 1

        rows = read_documents(self._tokens_file)
        for row in rows:
            if (
                row.get("user_id") == user_id
                and row.get("jti") == jti
                and row.get("revoked_at") is None
            ):
                row["revoked_at"] = now.isoformat()
                write_documents(self._tokens_file, rows)
                return True
        return False

    async def revoke_all(self, user_id: str) -> int:
        now = utcnow()
        collection = self._mongo.collection(REFRESH_TOKENS_COLLECTION)
        if collection is not None:
            result = await collection.update_many(
                {"user_id": user_id, "revoked_at": None},
                {"$set": {"revoked_at": now}},
            )
            return int(result.modified_count)

        rows = read_documents(self._tokens_file)
        revoked = 0
        for row in rows:
            if row.get("user_id") == user_id and row.get("revoked_at") is None:
                row["revoked_at"] = now.isoformat()
                revoked += 1
        if revoked:
            write_documents(self._tokens_file, rows)
        return revoked
