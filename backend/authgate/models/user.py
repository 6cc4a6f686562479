from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.sql import func
from authgate.core.database import Base

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)


class User(Base):
    """
    User model holding credentials and the token fields of the
    verification and reset flows.

    An account logs in either with a password or through an external
    identity provider, never both: hashed_password is null exactly when
    google_id or github_id is set.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    # Stored lower-cased; lookups normalise the same way
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=True)
    role = Column(String, nullable=False, default=ROLE_USER)
    is_verified = Column(Boolean, nullable=False, default=False)

    verification_token = Column(String, index=True, nullable=True)
    verification_token_expiry = Column(DateTime(timezone=True), nullable=True)
    reset_password_token = Column(String, index=True, nullable=True)
    reset_password_expiry = Column(DateTime(timezone=True), nullable=True)

    # Id of the only refresh token currently accepted for this user
    refresh_token_jti = Column(String, nullable=True)

    google_id = Column(String, unique=True, nullable=True)
    github_id = Column(String, unique=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    @property
    def uses_external_identity(self) -> bool:
        return bool(self.google_id or self.github_id)

    def __repr__(self) -> str:
        return f"<User {self.username} ({self.email})>"
