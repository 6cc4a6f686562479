import logging
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session
from authgate.api.cookies import SessionCookies
from authgate.core.database import get_db
from authgate.core.errors import Forbidden, TokenError, TokenExpired, Unauthenticated
from authgate.core.security import verify_access_token
from authgate.models.user import User
from authgate.services.credential_store import credential_store

logger = logging.getLogger(__name__)

# An explicit bearer header wins over the access cookie
bearer_scheme = HTTPBearer(auto_error=False)


def extract_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = None,
) -> Optional[str]:
    if credentials is not None and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    session: SessionCookies = request.state.session
    return session.access_token


def authenticate(db: Session, token: Optional[str]) -> User:
    """
    Resolve the user behind an access token.

    Each failure carries its own reason (missing token, bad signature,
    expiry, deleted user) for the logs; the client always gets the same
    401 message.
    """
    if not token:
        raise Unauthenticated(reason=Unauthenticated.MISSING_TOKEN)

    try:
        payload = verify_access_token(token)
    except TokenExpired:
        raise Unauthenticated(reason=Unauthenticated.EXPIRED_TOKEN)
    except TokenError:
        raise Unauthenticated(reason=Unauthenticated.INVALID_TOKEN)

    user = credential_store.find_by_id(db, payload.user_id)
    if user is None:
        raise Unauthenticated(reason=Unauthenticated.USER_NOT_FOUND)
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current authenticated user from the access cookie or bearer header.

    Used in route handlers to require authentication.
    """
    user = authenticate(db, extract_access_token(request, credentials))
    request.state.user = user
    return user


def require_role(role: str):
    """
    Build a dependency that only lets users with ``role`` through.

    Runs after get_current_user, so unauthenticated callers still get 401
    rather than 403.
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role != role:
            logger.info(f"User {current_user.id} with role '{current_user.role}' denied '{role}' route")
            raise Forbidden()
        return current_user

    return role_checker
