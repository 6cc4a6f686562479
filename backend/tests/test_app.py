"""Tests for application wiring: CORS, health and the error envelope."""

from __future__ import annotations

from fastapi.testclient import TestClient

from authgate.core.config import settings
from authgate.core.errors import DuplicateIdentity, ServerError, Unauthenticated


def test_health(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_cors_allows_configured_origin_with_credentials(client: TestClient):
    response = client.get("/health", headers={"Origin": settings.CORS_ORIGIN})

    assert response.headers.get("access-control-allow-origin") == settings.CORS_ORIGIN
    assert response.headers.get("access-control-allow-credentials") == "true"
    assert "x-csrf-token" in response.headers.get("access-control-expose-headers", "").lower()


def test_cors_ignores_other_origins(client: TestClient):
    response = client.get("/health", headers={"Origin": "https://evil.example"})

    assert "access-control-allow-origin" not in response.headers


def test_cors_preflight_allows_csrf_header(client: TestClient):
    response = client.options(
        "/refresh",
        headers={
            "Origin": settings.CORS_ORIGIN,
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "X-CSRF-Token",
        },
    )

    assert response.status_code == 200
    assert response.headers.get("access-control-allow-origin") == settings.CORS_ORIGIN


def test_error_payload_shape():
    payload = DuplicateIdentity("username").to_payload()

    assert payload["success"] is False
    assert payload["field"] == "username"
    assert payload["message"] == "This username is already registered"


def test_server_error_message_is_generic():
    assert ServerError().to_payload() == {
        "success": False,
        "message": "Internal server error. Please try again later.",
        "code": "SERVER_ERROR",
    }


def test_unauthenticated_reason_not_in_payload():
    payload = Unauthenticated(reason=Unauthenticated.EXPIRED_TOKEN).to_payload()

    assert "reason" not in payload
    assert payload["code"] == "UNAUTHENTICATED"
