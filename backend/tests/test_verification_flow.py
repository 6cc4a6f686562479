"""Tests covering the email-verification and password-reset lifecycles."""

from __future__ import annotations

from datetime import timedelta

import pytest

from authgate.core.errors import (
    AlreadyVerified,
    InvalidOrExpired,
    NotFound,
    ValidationError,
    WeakPassword,
)
from authgate.core.scheduler import (
    cancel_verification_clear,
    clear_verification_token_job,
    scheduler,
    verification_clear_job_id,
)
from authgate.core.security import verify_password
from authgate.services.credential_store import utc_now
from authgate.services.verification_service import verification_service


def _user_with_verification_token(make_user, token="verify-me", minutes=10):
    return make_user(
        verification_token=token,
        verification_token_expiry=utc_now() + timedelta(minutes=minutes),
    )


def test_request_verification_unknown_email(db_session):
    with pytest.raises(NotFound):
        verification_service.request_verification(db_session, "nobody@example.com")


def test_request_verification_already_verified(make_user, db_session):
    make_user(is_verified=True)

    with pytest.raises(AlreadyVerified):
        verification_service.request_verification(db_session, "alice@example.com")


def test_request_verification_issues_new_token(make_user, db_session):
    user = _user_with_verification_token(make_user, token="old")

    verification_service.request_verification(db_session, "alice@example.com")
    db_session.refresh(user)

    assert user.verification_token not in (None, "old")
    assert len(user.verification_token) == 64


def test_consume_verification_is_idempotent(make_user, db_session):
    user = _user_with_verification_token(make_user)

    first = verification_service.consume_verification(db_session, "verify-me")
    second = verification_service.consume_verification(db_session, "verify-me")

    assert first.is_verified is True
    assert second.is_verified is True
    assert second.id == user.id


def test_consume_verification_schedules_deferred_clear(make_user, db_session):
    user = _user_with_verification_token(make_user)

    verification_service.consume_verification(db_session, "verify-me")

    job = scheduler.get_job(verification_clear_job_id(user.id))
    assert job is not None
    assert tuple(job.args) == (user.id, "verify-me")
    # The token survives until the job runs
    db_session.refresh(user)
    assert user.verification_token == "verify-me"


def test_consume_verification_expired_token(make_user, db_session):
    user = _user_with_verification_token(make_user, minutes=-1)

    with pytest.raises(InvalidOrExpired):
        verification_service.consume_verification(db_session, "verify-me")

    db_session.refresh(user)
    assert user.is_verified is False


def test_consume_verification_unknown_token(db_session):
    with pytest.raises(InvalidOrExpired):
        verification_service.consume_verification(db_session, "missing")


def test_clear_job_removes_token(make_user, db_session):
    user = _user_with_verification_token(make_user)
    verification_service.consume_verification(db_session, "verify-me")

    clear_verification_token_job(user.id, "verify-me")

    db_session.refresh(user)
    assert user.verification_token is None
    assert user.verification_token_expiry is None
    assert user.is_verified is True
    with pytest.raises(InvalidOrExpired):
        verification_service.consume_verification(db_session, "verify-me")


def test_cancel_verification_clear(make_user, db_session):
    user = _user_with_verification_token(make_user)
    verification_service.consume_verification(db_session, "verify-me")

    assert cancel_verification_clear(user.id) is True
    assert cancel_verification_clear(user.id) is False
    assert scheduler.get_job(verification_clear_job_id(user.id)) is None


def test_request_password_reset_unknown_email(db_session):
    with pytest.raises(NotFound):
        verification_service.request_password_reset(db_session, "nobody@example.com")


def test_request_password_reset_rejects_external_identity(make_user, db_session):
    make_user(password=None, google_id="google-1")

    with pytest.raises(ValidationError):
        verification_service.request_password_reset(db_session, "alice@example.com")


def test_request_password_reset_sets_one_hour_token(make_user, db_session):
    user = make_user()

    verification_service.request_password_reset(db_session, "alice@example.com")
    db_session.refresh(user)

    assert len(user.reset_password_token) == 64
    assert verification_service.verify_reset_token(db_session, user.reset_password_token).id == user.id


def test_verify_reset_token_does_not_consume(make_user, db_session):
    user = make_user()
    verification_service.request_password_reset(db_session, "alice@example.com")
    db_session.refresh(user)
    token = user.reset_password_token

    verification_service.verify_reset_token(db_session, token)
    verification_service.verify_reset_token(db_session, token)

    db_session.refresh(user)
    assert user.reset_password_token == token


@pytest.mark.parametrize("weak", ["", "12345", None])
def test_consume_reset_rejects_weak_password_without_mutation(make_user, db_session, weak):
    user = make_user()
    verification_service.request_password_reset(db_session, "alice@example.com")
    db_session.refresh(user)
    token = user.reset_password_token
    original_hash = user.hashed_password

    with pytest.raises(WeakPassword):
        verification_service.consume_reset(db_session, token, weak)

    db_session.refresh(user)
    assert user.hashed_password == original_hash
    assert user.reset_password_token == token


def test_consume_reset_replaces_password_and_clears_fields(make_user, db_session):
    user = make_user()
    verification_service.request_password_reset(db_session, "alice@example.com")
    db_session.refresh(user)
    token = user.reset_password_token

    verification_service.consume_reset(db_session, token, "BrandNew789")

    db_session.refresh(user)
    assert verify_password("BrandNew789", user.hashed_password)
    assert not verify_password("Secret123", user.hashed_password)
    assert user.reset_password_token is None
    assert user.reset_password_expiry is None


def test_consume_reset_is_single_use(make_user, db_session):
    user = make_user()
    verification_service.request_password_reset(db_session, "alice@example.com")
    db_session.refresh(user)
    token = user.reset_password_token

    verification_service.consume_reset(db_session, token, "BrandNew789")

    with pytest.raises(InvalidOrExpired):
        verification_service.consume_reset(db_session, token, "Another789")


def test_consume_reset_rechecks_expiry(make_user, db_session):
    user = make_user()
    user.reset_password_token = "stale"
    user.reset_password_expiry = utc_now() - timedelta(seconds=1)
    db_session.commit()

    with pytest.raises(InvalidOrExpired):
        verification_service.consume_reset(db_session, "stale", "BrandNew789")

    db_session.refresh(user)
    assert verify_password("Secret123", user.hashed_password)
