"""Tests for the outgoing email collaborator."""

from __future__ import annotations

import smtplib
from unittest.mock import MagicMock

from authgate.services import email_service as email_module
from authgate.services.email_service import EmailService


def test_disabled_service_keeps_token_out_of_logs(caplog):
    service = EmailService(smtp_host="", from_email="", base_url="https://app.example")

    with caplog.at_level("INFO"):
        assert service.send_verification_email("a@example.com", "tok123") is True
        assert service.send_reset_password_email("a@example.com", "reset456") is True

    assert "tok123" not in caplog.text
    assert "reset456" not in caplog.text
    assert "not sent" in caplog.text


def test_disabled_service_logs_link_when_asked(caplog):
    service = EmailService(smtp_host="", from_email="", base_url="https://app.example", log_links=True)

    with caplog.at_level("INFO"):
        assert service.send_verification_email("a@example.com", "tok123") is True

    assert "https://app.example/verify-email/tok123" in caplog.text


def test_links_stay_out_of_logs_by_default(caplog, client, make_user):
    make_user(email="bob@example.com", username="bob")

    with caplog.at_level("INFO"):
        response = client.post("/reset-password", json={"email": "bob@example.com"})

    assert response.status_code == 200
    assert "/reset-password/" not in caplog.text


def test_enabled_service_sends_over_smtp(monkeypatch):
    smtp = MagicMock()
    monkeypatch.setattr(email_module.smtplib, "SMTP", smtp)
    service = EmailService(
        smtp_host="smtp.example",
        smtp_port=2525,
        smtp_username="mailer",
        smtp_password="pw",
        from_email="noreply@example.com",
        base_url="https://app.example/",
    )

    assert service.send_reset_password_email("a@example.com", "reset456") is True

    smtp.assert_called_once_with("smtp.example", 2525)
    server = smtp.return_value.__enter__.return_value
    server.login.assert_called_once_with("mailer", "pw")
    sender, recipient, body = server.sendmail.call_args[0]
    assert sender == "noreply@example.com"
    assert recipient == "a@example.com"
    assert "https://app.example/reset-password/reset456" in body


def test_delivery_failure_returns_false(monkeypatch):
    smtp = MagicMock(side_effect=smtplib.SMTPException("down"))
    monkeypatch.setattr(email_module.smtplib, "SMTP", smtp)
    service = EmailService(smtp_host="smtp.example", from_email="noreply@example.com")

    assert service.send_verification_email("a@example.com", "tok") is False
