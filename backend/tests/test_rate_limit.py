"""Tests for rate limiting on the pre-authentication routes."""

from __future__ import annotations

from fastapi.testclient import TestClient

from authgate.core.config import settings
from authgate.core.rate_limit import limiter

LIMIT = int(settings.AUTH_RATE_LIMIT.split("/")[0])


def test_login_burst_is_rate_limited(client: TestClient, make_user):
    make_user()
    bad_login = {"email": "alice@example.com", "password": "wrong-password"}

    for _ in range(LIMIT):
        assert client.post("/login", json=bad_login).status_code == 401

    response = client.post("/login", json=bad_login)

    assert response.status_code == 429
    assert response.json() == {
        "success": False,
        "message": "Too many requests, please try again later",
        "code": "RATE_LIMITED",
    }


def test_limit_applies_to_correct_password_too(client: TestClient, make_user):
    make_user()
    good_login = {"email": "alice@example.com", "password": "Secret123"}

    for _ in range(LIMIT):
        client.post("/login", json={"email": "alice@example.com", "password": "nope"})

    assert client.post("/login", json=good_login).status_code == 429


def test_routes_are_counted_separately(client: TestClient):
    for _ in range(LIMIT):
        client.post("/reset-password", json={"email": "ghost@example.com"})

    assert client.post("/reset-password", json={"email": "ghost@example.com"}).status_code == 429
    assert client.post("/resend-verification", json={"email": "ghost@example.com"}).status_code == 401


def test_guarded_routes_are_not_limited(client: TestClient):
    for _ in range(LIMIT + 2):
        assert client.get("/csrf-token").status_code == 200


def test_counters_reset(client: TestClient):
    for _ in range(LIMIT):
        client.post("/reset-password", json={"email": "ghost@example.com"})
    limiter.reset()

    assert client.post("/reset-password", json={"email": "ghost@example.com"}).status_code == 401
