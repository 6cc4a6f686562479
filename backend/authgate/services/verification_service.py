"""
Email-verification and password-reset token lifecycles.

Both flows move a user through NoPendingToken -> TokenIssued and then to
either Consumed or Expired. Tokens are 32 random bytes, hex encoded, and
are only ever matched together with an expiry check, so a token past its
window behaves exactly like an unknown one.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional, Tuple
from sqlalchemy.orm import Session
from authgate.core.config import settings
from authgate.core.errors import (
    AlreadyVerified,
    InvalidOrExpired,
    NotFound,
    ValidationError,
    WeakPassword,
)
from authgate.core.scheduler import schedule_verification_clear
from authgate.core.security import generate_opaque_token
from authgate.models.user import User
from authgate.services.credential_store import credential_store, utc_now

logger = logging.getLogger(__name__)


def new_verification_token() -> Tuple[str, datetime]:
    """Token and expiry used at signup and on resend"""
    expiry = utc_now() + timedelta(minutes=settings.VERIFICATION_TOKEN_EXPIRE_MINUTES)
    return generate_opaque_token(), expiry


class VerificationService:
    @staticmethod
    def request_verification(db: Session, email: str) -> User:
        """
        Issue a fresh verification token for an unverified account.

        The caller is responsible for handing the token to the email
        collaborator once this returns.
        """
        user = credential_store.find_by_email(db, email)
        if user is None:
            raise NotFound("No account found with this email")
        if user.is_verified:
            raise AlreadyVerified()

        user.verification_token, user.verification_token_expiry = new_verification_token()
        credential_store.save(db, user)
        logger.info(f"Issued verification token for user {user.id}")
        return user

    @staticmethod
    def consume_verification(db: Session, token: str) -> User:
        """
        Mark the owner of ``token`` as verified.

        Repeating the call with the same token while it is still stored and
        unexpired succeeds without changing anything. The token itself is
        cleared later by a scheduled job.
        """
        user = credential_store.find_by_verification_token(db, token)
        if user is None:
            raise InvalidOrExpired("Invalid or expired verification link")

        if user.is_verified:
            return user

        if credential_store.mark_verified(db, user.id):
            schedule_verification_clear(user.id, token)
            logger.info(f"User {user.id} verified their email")
        db.refresh(user)
        return user

    @staticmethod
    def request_password_reset(db: Session, email: str) -> User:
        """Issue a password-reset token valid for RESET_TOKEN_EXPIRE_MINUTES"""
        user = credential_store.find_by_email(db, email)
        if user is None:
            raise NotFound("No account found with this email")
        if user.uses_external_identity:
            raise ValidationError(
                "This account signs in through an external provider and has no password to reset"
            )

        user.reset_password_token = generate_opaque_token()
        user.reset_password_expiry = utc_now() + timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)
        credential_store.save(db, user)
        logger.info(f"Issued password reset token for user {user.id}")
        return user

    @staticmethod
    def verify_reset_token(db: Session, token: str) -> User:
        """Read-only check that a reset token exists and has not expired"""
        user = credential_store.find_by_reset_token(db, token)
        if user is None:
            raise InvalidOrExpired(
                "The password reset link has expired. Please request a new link from the login page."
            )
        return user

    @staticmethod
    def consume_reset(db: Session, token: str, new_password: Optional[str]) -> User:
        """
        Replace the password of the reset token's owner.

        Weak passwords are rejected before the token is even looked up, so
        the record is left untouched. Expiry is checked again inside the
        update that consumes the token.
        """
        if new_password is None or len(new_password) < settings.MIN_PASSWORD_LENGTH:
            raise WeakPassword(
                f"Password must be at least {settings.MIN_PASSWORD_LENGTH} characters long"
            )

        user = credential_store.find_by_reset_token(db, token)
        if user is None or not credential_store.consume_reset_token(db, user.id, token, new_password):
            raise InvalidOrExpired(
                "The password reset link is invalid or has expired. Please request a new link."
            )

        db.refresh(user)
        logger.info(f"Password reset completed for user {user.id}")
        return user


verification_service = VerificationService()
