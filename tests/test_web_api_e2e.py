from __future__ import annotations

import asyncio
from pathlib import Path

from fastapi.testclient import TestClient

from smart_delivery.auth.models import UserRole
from smart_delivery.auth.repository import UserRepository
from smart_delivery.core.config import MongoConfig
from smart_delivery.core.mongo import MongoConnection
from tests.auth_fixtures import build_app_config, seed_user
from web_api import create_app

ADMIN = {"email": "admin@example.com", "password": "password123"}


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _client(tmp_path: Path, **security_overrides) -> TestClient:
    return TestClient(create_app(build_app_config(**security_overrides), app_root=tmp_path))


def _seed_driver(tmp_path: Path) -> None:
    users = UserRepository(
        MongoConnection(MongoConfig(uri="", database="unused")), tmp_path / "runtime" / "store"
    )
    asyncio.run(seed_user(users, email="driver@example.com", role=UserRole.DRIVER))


def test_health_reports_file_storage(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "storage": "file"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_login_me_refresh_rotation_then_reuse(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        login = client.post("/api/auth/login", json=ADMIN)
        assert login.status_code == 200
        body = login.json()
        assert body["tokenType"] == "bearer"
        assert body["expiresIn"] == 900
        assert body["user"]["email"] == "admin@example.com"
        assert body["user"]["role"] == "admin"
        assert "passwordHash" not in body["user"]
        first_access, first_refresh = body["accessToken"], body["refreshToken"]

        me = client.get("/api/auth/me", headers=_bearer(first_access))
        assert me.status_code == 200
        assert me.json()["isActive"] is True

        rotated = client.post("/api/auth/refresh", json={"refreshToken": first_refresh})
        assert rotated.status_code == 200
        second = rotated.json()
        assert second["refreshToken"] != first_refresh
        assert "user" not in second

        # Ordinary rotation leaves the previous access token valid until expiry.
        assert client.get("/api/auth/me", headers=_bearer(first_access)).status_code == 200

        replay = client.post("/api/auth/refresh", json={"refreshToken": first_refresh})
        assert replay.status_code == 401
        assert replay.json() == {"error_code": "AUTH_TOKEN_INVALID", "message": "Invalid token"}

        assert client.get("/api/auth/me", headers=_bearer(second["accessToken"])).status_code == 401
        after = client.post("/api/auth/refresh", json={"refreshToken": second["refreshToken"]})
        assert after.status_code == 401
        assert after.json() == replay.json()

        relogin = client.post("/api/auth/login", json=ADMIN)
        assert relogin.status_code == 200
        assert client.get(
            "/api/auth/me", headers=_bearer(relogin.json()["accessToken"])
        ).status_code == 200


def test_change_password_and_logout(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        tokens = client.post("/api/auth/login", json=ADMIN).json()

        wrong = client.put(
            "/api/auth/change-password",
            json={"currentPassword": "nope", "newPassword": "brand-new-pass"},
            headers=_bearer(tokens["accessToken"]),
        )
        assert wrong.status_code == 400
        assert wrong.json()["error_code"] == "AUTH_INVALID_CREDENTIALS"

        changed = client.put(
            "/api/auth/change-password",
            json={"currentPassword": "password123", "newPassword": "brand-new-pass"},
            headers=_bearer(tokens["accessToken"]),
        )
        assert changed.status_code == 200
        assert client.get("/api/auth/me", headers=_bearer(tokens["accessToken"])).status_code == 401
        assert client.post(
            "/api/auth/refresh", json={"refreshToken": tokens["refreshToken"]}
        ).status_code == 401

        fresh = client.post(
            "/api/auth/login", json={"email": "admin@example.com", "password": "brand-new-pass"}
        ).json()
        for payload in ({"refreshToken": fresh["refreshToken"]}, {"refreshToken": "garbage"}, {}):
            response = client.post("/api/auth/logout", json=payload)
            assert response.status_code == 200
            assert response.json() == {"status": "ok"}
        assert client.post("/api/auth/logout").status_code == 200
        for odd_body in ({"refreshToken": 123}, ["x"], {"refreshToken": None}):
            response = client.post("/api/auth/logout", json=odd_body)
            assert (response.status_code, response.json()) == (200, {"status": "ok"})
        not_json = client.post(
            "/api/auth/logout",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert (not_json.status_code, not_json.json()) == (200, {"status": "ok"})
        assert client.post(
            "/api/auth/refresh", json={"refreshToken": fresh["refreshToken"]}
        ).status_code == 401


def test_protected_routes_require_bearer_token(tmp_path: Path) -> None:
    with _client(tmp_path) as client:
        missing = client.get("/api/auth/me")
        garbage = client.get("/api/auth/me", headers=_bearer("garbage"))

    assert missing.status_code == 401
    assert missing.json()["error_code"] == "AUTH_MISSING_TOKEN"
    assert garbage.status_code == 401
    assert garbage.json()["error_code"] == "AUTH_TOKEN_INVALID"
    assert garbage.headers["WWW-Authenticate"] == "Bearer"


def test_login_validation_and_rate_limit(tmp_path: Path) -> None:
    with _client(tmp_path, login_rate_limit_max_attempts=2) as client:
        invalid = client.post("/api/auth/login", json={"email": "admin@example.com"})
        bad = [
            client.post("/api/auth/login", json={**ADMIN, "password": "wrong"})
            for _ in range(2)
        ]
        locked = client.post("/api/auth/login", json=ADMIN)

    assert invalid.status_code == 422
    assert invalid.json()["error_code"] == "VALIDATION_ERROR"
    assert [response.status_code for response in bad] == [401, 401]
    assert bad[0].json() == {
        "error_code": "AUTH_INVALID_CREDENTIALS",
        "message": "Invalid credentials",
    }
    assert locked.status_code == 429
    assert int(locked.headers["Retry-After"]) > 0


def test_tracking_routes_enforce_roles_and_feed_fleet_snapshot(tmp_path: Path) -> None:
    _seed_driver(tmp_path)
    with _client(tmp_path) as client:
        driver = client.post(
            "/api/auth/login", json={"email": "driver@example.com", "password": "password123"}
        ).json()
        admin = client.post("/api/auth/login", json=ADMIN).json()

        accepted = client.post(
            "/api/tracking/location",
            json={"coords": {"lat": 40.4, "lng": -3.7}, "speed": 42.5, "heading": 90},
            headers=_bearer(driver["accessToken"]),
        )
        rejected = client.post(
            "/api/tracking/location",
            json={"coords": {"lat": 140, "lng": -3.7}},
            headers=_bearer(driver["accessToken"]),
        )
        admin_push = client.post(
            "/api/tracking/location",
            json={"coords": {"lat": 1, "lng": 1}},
            headers=_bearer(admin["accessToken"]),
        )
        driver_fleet = client.get("/api/tracking/fleet", headers=_bearer(driver["accessToken"]))
        fleet = client.get("/api/tracking/fleet", headers=_bearer(admin["accessToken"]))

    assert accepted.status_code == 201
    assert accepted.json()["status"] == "accepted"
    assert rejected.status_code == 422
    assert admin_push.status_code == 403
    assert admin_push.json()["error_code"] == "AUTH_FORBIDDEN"
    assert driver_fleet.status_code == 403
    riders = fleet.json()["riders"]
    assert len(riders) == 1
    assert riders[0]["riderId"] == driver["user"]["id"]
    assert riders[0]["coords"] == {"lat": 40.4, "lng": -3.7}
    assert riders[0]["speed"] == 42.5


def test_driver_history_is_newest_first_and_fleet_only(tmp_path: Path) -> None:
    _seed_driver(tmp_path)
    with _client(tmp_path) as client:
        driver = client.post(
            "/api/auth/login", json={"email": "driver@example.com", "password": "password123"}
        ).json()
        admin = client.post("/api/auth/login", json=ADMIN).json()
        driver_id = driver["user"]["id"]

        for lat in (10.0, 20.0, 30.0):
            posted = client.post(
                "/api/tracking/location",
                json={"coords": {"lat": lat, "lng": 5.0}},
                headers=_bearer(driver["accessToken"]),
            )
            assert posted.status_code == 201

        history = client.get(
            f"/api/tracking/drivers/{driver_id}/history",
            headers=_bearer(admin["accessToken"]),
        )
        limited = client.get(
            f"/api/tracking/drivers/{driver_id}/history",
            params={"limit": 2},
            headers=_bearer(admin["accessToken"]),
        )
        bad_limit = client.get(
            f"/api/tracking/drivers/{driver_id}/history",
            params={"limit": 0},
            headers=_bearer(admin["accessToken"]),
        )
        unknown = client.get(
            "/api/tracking/drivers/no-such-driver/history",
            headers=_bearer(admin["accessToken"]),
        )
        not_a_driver = client.get(
            f"/api/tracking/drivers/{admin['user']['id']}/history",
            headers=_bearer(admin["accessToken"]),
        )
        as_driver = client.get(
            f"/api/tracking/drivers/{driver_id}/history",
            headers=_bearer(driver["accessToken"]),
        )

    assert history.status_code == 200
    body = history.json()
    assert body["riderId"] == driver_id
    assert [sample["coords"]["lat"] for sample in body["samples"]] == [30.0, 20.0, 10.0]
    assert len(limited.json()["samples"]) == 2
    assert bad_limit.status_code == 422
    assert unknown.status_code == 404
    assert unknown.json() == {"error_code": "NOT_FOUND", "message": "Driver not found"}
    assert not_a_driver.status_code == 404
    assert as_driver.status_code == 403
