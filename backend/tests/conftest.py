"""Shared pytest fixtures for the authgate tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

# Settings are read at import time, so point them at a throwaway database first
_DB_DIR = tempfile.mkdtemp(prefix="authgate-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["ENVIRONMENT"] = "test"
os.environ["SMTP_HOST"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from authgate.core.database import Base, SessionLocal, engine  # noqa: E402
from authgate.core.rate_limit import limiter  # noqa: E402
from authgate.core.scheduler import scheduler  # noqa: E402
from authgate.main import app  # noqa: E402
from authgate.models.user import ROLE_USER, User  # noqa: E402
from authgate.services.credential_store import credential_store  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_state():
    """Fresh tables, rate limit counters and scheduled jobs for every test."""

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    scheduler.remove_all_jobs()
    limiter.reset()
    yield
    scheduler.remove_all_jobs()


@pytest.fixture()
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client() -> TestClient:
    """Test client without lifespan, so the scheduler only queues jobs."""

    return TestClient(app)


@pytest.fixture()
def make_user(db_session):
    """Factory creating persisted users with sensible defaults."""

    def _make_user(
        username: str = "alice",
        email: str = "alice@example.com",
        password: str | None = "Secret123",
        role: str = ROLE_USER,
        **kwargs,
    ) -> User:
        return credential_store.create(
            db_session,
            username=username,
            email=email,
            password=password,
            role=role,
            **kwargs,
        )

    return _make_user


def csrf_headers(client: TestClient) -> dict:
    """Fetch a CSRF token the way a browser client would and return the echo header."""

    response = client.get("/csrf-token")
    assert response.status_code == 200
    return {"X-CSRF-Token": response.json()["csrfToken"]}


def login(client: TestClient, email: str = "alice@example.com", password: str = "Secret123"):
    response = client.post("/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response
