import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from authgate.core.config import settings
from authgate.core.errors import TokenExpired, TokenInvalid

# bcrypt salts every hash, so equal passwords never share a stored value
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPayload:
    user_id: int
    expiry: datetime
    token_type: str
    jti: str


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def generate_opaque_token() -> str:
    """Random single-use token for email verification and password reset (32 bytes, hex)"""
    return secrets.token_hex(32)


def new_token_id() -> str:
    return uuid.uuid4().hex


def _create_token(
    user_id: int,
    token_type: str,
    secret: str,
    expires_delta: timedelta,
    jti: Optional[str] = None,
) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": str(user_id),
        "type": token_type,
        # jti keeps two tokens minted in the same second distinct
        "jti": jti or new_token_id(),
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def issue_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Sign a short-lived access token with the access secret"""
    return _create_token(
        user_id,
        ACCESS_TOKEN_TYPE,
        settings.ACCESS_TOKEN_SECRET,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def issue_refresh_token(
    user_id: int,
    jti: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign a long-lived refresh token with the refresh secret"""
    return _create_token(
        user_id,
        REFRESH_TOKEN_TYPE,
        settings.REFRESH_TOKEN_SECRET,
        expires_delta or timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
        jti=jti,
    )


def verify_token(token: str, secret: str, expected_type: Optional[str] = None) -> TokenPayload:
    """
    Decode and verify a signed token.

    Raises TokenExpired when the signature is good but ``exp`` has passed,
    and TokenInvalid for everything else (bad signature, wrong secret,
    malformed claims, unexpected token type).
    """
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenExpired("Token has expired") from exc
    except JWTError as exc:
        raise TokenInvalid("Token signature or format is invalid") from exc

    token_type = payload.get("type")
    if expected_type is not None and token_type != expected_type:
        raise TokenInvalid(f"Expected a {expected_type} token")

    try:
        user_id = int(payload["sub"])
        expiry = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenInvalid("Token claims are malformed") from exc

    return TokenPayload(
        user_id=user_id,
        expiry=expiry,
        token_type=token_type or "",
        jti=str(payload.get("jti") or ""),
    )


def verify_access_token(token: str) -> TokenPayload:
    return verify_token(token, settings.ACCESS_TOKEN_SECRET, ACCESS_TOKEN_TYPE)


def verify_refresh_token(token: str) -> TokenPayload:
    return verify_token(token, settings.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE)
