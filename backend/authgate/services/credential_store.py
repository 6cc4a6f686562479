import logging
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from authgate.core.errors import DuplicateIdentity
from authgate.core.security import get_password_hash
from authgate.models.user import ROLE_USER, User

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _user_update():
    # Callers commit right after, which expires every loaded row anyway
    return update(User).execution_options(synchronize_session=False)


class CredentialStore:
    """
    Persistence for user records.

    Updates that can race between requests (or between server instances)
    are single conditional UPDATE statements, so the database decides who
    wins and callers look at the affected row count.
    """

    @staticmethod
    def find_by_id(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == normalize_email(email)).first()

    @staticmethod
    def find_by_email_or_username(db: Session, email: str, username: str) -> Optional[User]:
        return db.query(User).filter(
            or_(User.email == normalize_email(email), User.username == username.strip())
        ).first()

    @staticmethod
    def find_by_verification_token(db: Session, token: str) -> Optional[User]:
        """Match the exact token and only while it has not expired"""
        if not token:
            return None
        return db.query(User).filter(
            User.verification_token == token,
            User.verification_token_expiry > utc_now(),
        ).first()

    @staticmethod
    def find_by_reset_token(db: Session, token: str) -> Optional[User]:
        """Match the exact reset token and only while it has not expired"""
        if not token:
            return None
        return db.query(User).filter(
            User.reset_password_token == token,
            User.reset_password_expiry > utc_now(),
        ).first()

    def create(
        self,
        db: Session,
        username: str,
        email: str,
        password: Optional[str] = None,
        role: str = ROLE_USER,
        is_verified: bool = False,
        verification_token: Optional[str] = None,
        verification_token_expiry: Optional[datetime] = None,
        google_id: Optional[str] = None,
        github_id: Optional[str] = None,
    ) -> User:
        """
        Create a user, failing with DuplicateIdentity when the email or
        username is taken. The password is hashed before it is stored.
        """
        username = username.strip()
        email = normalize_email(email)
        self._raise_if_taken(db, email, username)

        if password is None and not (google_id or github_id):
            raise ValueError("A user needs either a password or an external identity")
        if password is not None and (google_id or github_id):
            raise ValueError("External identity accounts cannot carry a password")

        user = User(
            username=username,
            email=email,
            hashed_password=get_password_hash(password) if password is not None else None,
            role=role,
            is_verified=is_verified,
            verification_token=verification_token,
            verification_token_expiry=verification_token_expiry,
            google_id=google_id,
            github_id=github_id,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Another request created the same identity between the check and the insert
            db.rollback()
            self._raise_if_taken(db, email, username)
            raise
        db.refresh(user)
        logger.info(f"Created user {user.username} (id={user.id})")
        return user

    def _raise_if_taken(self, db: Session, email: str, username: str) -> None:
        existing = self.find_by_email_or_username(db, email, username)
        if existing is not None:
            raise DuplicateIdentity("email" if existing.email == email else "username")

    @staticmethod
    def save(db: Session, user: User, new_password: Optional[str] = None) -> User:
        """
        Persist pending changes on ``user``. The password hash is only
        rewritten when a new plaintext password is passed in.
        """
        if new_password is not None:
            user.hashed_password = get_password_hash(new_password)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def mark_verified(db: Session, user_id: int) -> bool:
        """Flip is_verified once; returns False if it was already set"""
        result = db.execute(
            _user_update()
            .where(User.id == user_id, User.is_verified.is_(False))
            .values(is_verified=True)
        )
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def clear_verification_token(db: Session, user_id: int, token: Optional[str] = None) -> bool:
        """Drop the verification token; when ``token`` is given only that token is cleared"""
        statement = _user_update().where(User.id == user_id)
        if token is not None:
            statement = statement.where(User.verification_token == token)
        result = db.execute(
            statement.values(verification_token=None, verification_token_expiry=None)
        )
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def consume_reset_token(db: Session, user_id: int, token: str, new_password: str) -> bool:
        """
        Swap in the new password hash and clear the reset fields, but only if
        the same token is still pending and unexpired. Also revokes the
        refresh session so old logins cannot be refreshed.
        """
        result = db.execute(
            _user_update()
            .where(
                User.id == user_id,
                User.reset_password_token == token,
                User.reset_password_expiry > utc_now(),
            )
            .values(
                hashed_password=get_password_hash(new_password),
                reset_password_token=None,
                reset_password_expiry=None,
                refresh_token_jti=None,
            )
        )
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def rotate_refresh_token(db: Session, user_id: int, current_jti: Optional[str], new_jti: str) -> bool:
        """
        Replace the accepted refresh token id. With ``current_jti`` set the
        swap only happens if that id is still the accepted one.
        """
        statement = _user_update().where(User.id == user_id)
        if current_jti is not None:
            statement = statement.where(User.refresh_token_jti == current_jti)
        result = db.execute(statement.values(refresh_token_jti=new_jti))
        db.commit()
        return result.rowcount == 1

    @staticmethod
    def revoke_refresh_token(db: Session, user_id: int) -> None:
        db.execute(_user_update().where(User.id == user_id).values(refresh_token_jti=None))
        db.commit()


credential_store = CredentialStore()
