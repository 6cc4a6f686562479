import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.orm import Session
from authgate.core.config import settings
from authgate.core.errors import TokenError, TokenExpired, Unauthenticated
from authgate.core.security import (
    issue_access_token,
    issue_refresh_token,
    new_token_id,
    verify_password,
    verify_refresh_token,
)
from authgate.models.user import ROLE_USER, ROLES, User
from authgate.services.credential_store import credential_store
from authgate.services.verification_service import new_verification_token

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


@dataclass
class IssuedSession:
    user: User
    access_token: str
    refresh_token: str


class AuthService:
    @staticmethod
    def start_session(db: Session, user: User) -> IssuedSession:
        """Mint an access/refresh pair; the new refresh token becomes the only accepted one"""
        jti = new_token_id()
        credential_store.rotate_refresh_token(db, user.id, None, jti)
        db.refresh(user)
        return IssuedSession(
            user=user,
            access_token=issue_access_token(user.id),
            refresh_token=issue_refresh_token(user.id, jti=jti),
        )

    def signup(
        self,
        db: Session,
        username: str,
        email: str,
        password: str,
        role: Optional[str] = None,
    ) -> IssuedSession:
        """
        Create an unverified account with a pending verification token and
        start a session for it.
        """
        if not settings.ALLOW_ROLE_ON_SIGNUP or role not in ROLES:
            role = ROLE_USER

        token, expiry = new_verification_token()
        user = credential_store.create(
            db,
            username=username,
            email=email,
            password=password,
            role=role,
            verification_token=token,
            verification_token_expiry=expiry,
        )
        return self.start_session(db, user)

    def login(self, db: Session, email: str, password: str) -> IssuedSession:
        user = credential_store.find_by_email(db, email)
        if user is None:
            logger.info("Login failed: unknown email")
            raise Unauthenticated(INVALID_CREDENTIALS, reason=Unauthenticated.BAD_CREDENTIALS)

        # External-identity accounts have no password to check against
        if user.uses_external_identity or not user.hashed_password:
            raise Unauthenticated(
                "This email is associated with a Google or GitHub account. "
                "Please sign in with the appropriate social login.",
                reason=Unauthenticated.BAD_CREDENTIALS,
            )

        if not verify_password(password, user.hashed_password):
            logger.info(f"Login failed: wrong password for user {user.id}")
            raise Unauthenticated(INVALID_CREDENTIALS, reason=Unauthenticated.BAD_CREDENTIALS)

        logger.info(f"User {user.id} logged in")
        return self.start_session(db, user)

    @staticmethod
    def refresh(db: Session, refresh_token: Optional[str]) -> IssuedSession:
        """
        Exchange a valid refresh token for a new access token and a new
        refresh token. The presented refresh token stops working; presenting
        an already-rotated one revokes the session outright.
        """
        if not refresh_token:
            raise Unauthenticated("No refresh token provided", reason=Unauthenticated.MISSING_TOKEN)

        try:
            payload = verify_refresh_token(refresh_token)
        except TokenExpired:
            raise Unauthenticated(reason=Unauthenticated.EXPIRED_TOKEN)
        except TokenError:
            raise Unauthenticated(reason=Unauthenticated.INVALID_TOKEN)

        user = credential_store.find_by_id(db, payload.user_id)
        if user is None:
            raise Unauthenticated(reason=Unauthenticated.USER_NOT_FOUND)

        new_jti = new_token_id()
        if not payload.jti or not credential_store.rotate_refresh_token(db, user.id, payload.jti, new_jti):
            logger.warning(f"Stale refresh token presented for user {user.id}; revoking session")
            credential_store.revoke_refresh_token(db, user.id)
            raise Unauthenticated(reason=Unauthenticated.INVALID_TOKEN)

        db.refresh(user)
        return IssuedSession(
            user=user,
            access_token=issue_access_token(user.id),
            refresh_token=issue_refresh_token(user.id, jti=new_jti),
        )

    @staticmethod
    def logout(db: Session, user: User) -> None:
        credential_store.revoke_refresh_token(db, user.id)
        logger.info(f"User {user.id} logged out")


auth_service = AuthService()
