"""Service for sending account emails."""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from authgate.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Sends verification and password-reset links over SMTP."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        base_url: Optional[str] = None,
        log_links: Optional[bool] = None,
    ):
        self.smtp_host = smtp_host if smtp_host is not None else settings.SMTP_HOST
        self.smtp_port = smtp_port or settings.SMTP_PORT
        self.smtp_username = smtp_username if smtp_username is not None else settings.SMTP_USERNAME
        self.smtp_password = smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        self.from_email = from_email if from_email is not None else settings.SMTP_FROM_EMAIL
        self.from_name = from_name or settings.SMTP_FROM_NAME
        self.base_url = (base_url or settings.FRONTEND_BASE_URL).rstrip("/")
        self.enabled = bool(self.smtp_host and self.from_email)
        self.log_links = log_links if log_links is not None else settings.EMAIL_LOG_LINKS

    def verification_url(self, token: str) -> str:
        return f"{self.base_url}/verify-email/{token}"

    def reset_url(self, token: str) -> str:
        return f"{self.base_url}/reset-password/{token}"

    def send_verification_email(self, to_email: str, verification_token: str) -> bool:
        """
        Send the email-verification link.

        Returns True if the message was handed to the SMTP server (or only
        logged because SMTP is not configured), False on delivery failure.
        """
        url = self.verification_url(verification_token)
        text_body = (
            "Thanks for signing up. Confirm your email address by opening the link below:\n\n"
            f"{url}\n\n"
            f"The link expires in {settings.VERIFICATION_TOKEN_EXPIRE_MINUTES} minutes."
        )
        html_body = (
            "<p>Thanks for signing up. Confirm your email address by clicking the link below:</p>"
            f'<p><a href="{url}">Verify email</a></p>'
            f"<p>The link expires in {settings.VERIFICATION_TOKEN_EXPIRE_MINUTES} minutes.</p>"
        )
        return self._send_email(to_email, "Verify your email", html_body, text_body, url)

    def send_reset_password_email(self, to_email: str, reset_token: str) -> bool:
        """Send the password-reset link."""
        url = self.reset_url(reset_token)
        text_body = (
            "A password reset was requested for your account. Open the link below to choose "
            f"a new password:\n\n{url}\n\n"
            f"The link expires in {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes. "
            "If you did not ask for this you can ignore this email."
        )
        html_body = (
            "<p>A password reset was requested for your account.</p>"
            f'<p><a href="{url}">Choose a new password</a></p>'
            f"<p>The link expires in {settings.RESET_TOKEN_EXPIRE_MINUTES} minutes. "
            "If you did not ask for this you can ignore this email.</p>"
        )
        return self._send_email(to_email, "Reset your password", html_body, text_body, url)

    def _send_email(self, to_email: str, subject: str, html_body: str, text_body: str, link: str) -> bool:
        if not self.enabled:
            if self.log_links:
                logger.info(f"[EMAIL] {subject} for {to_email}: {link}")
            else:
                logger.warning(f"[EMAIL] SMTP not configured, '{subject}' for {to_email} was not sent")
            return True

        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to_email
        message.attach(MIMEText(text_body, "plain"))
        message.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                server.starttls()
                if self.smtp_username:
                    server.login(self.smtp_username, self.smtp_password)
                server.sendmail(self.from_email, to_email, message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' to {to_email}: {str(e)}")
            return False

        logger.info(f"Sent '{subject}' to {to_email}")
        return True


email_service = EmailService()
