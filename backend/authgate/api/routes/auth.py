import logging
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from authgate.api.cookies import SessionCookies, clear_session_cookies, set_auth_cookies
from authgate.api.dependencies import get_current_user
from authgate.core.config import settings
from authgate.core.database import get_db
from authgate.core.errors import NotFound, ServerError, Unauthenticated
from authgate.core.rate_limit import auth_rate_limit
from authgate.models.user import User
from authgate.services.auth_service import auth_service
from authgate.services.email_service import email_service
from authgate.services.verification_service import verification_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class SignupRequest(BaseModel):
    username: str = Field(min_length=3)
    email: EmailStr
    password: str = Field(min_length=settings.MIN_PASSWORD_LENGTH)
    role: Optional[str] = None

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email", mode="after")
    @classmethod
    def lower_email(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    email: str
    password: str


class EmailRequest(BaseModel):
    email: str = Field(min_length=1)


class NewPasswordRequest(BaseModel):
    # Length is checked by the reset flow so weak passwords get their own error
    new_password: Optional[str] = Field(default=None, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    role: str
    is_verified: bool = Field(serialization_alias="isVerified")

    model_config = ConfigDict(from_attributes=True)


class AuthResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    access_token: str = Field(serialization_alias="accessToken")
    user: UserResponse


class TokenResponse(BaseModel):
    success: bool = True
    access_token: str = Field(serialization_alias="accessToken")


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class VerifyEmailResponse(BaseModel):
    success: bool = True
    status: str = "success"
    message: str
    is_verified: bool = Field(serialization_alias="isVerified")


class CsrfTokenResponse(BaseModel):
    success: bool = True
    csrf_token: str = Field(serialization_alias="csrfToken")


def _database_error(db: Session, exc: SQLAlchemyError, action: str) -> ServerError:
    # Full detail stays in the server log; the client gets the generic message
    db.rollback()
    logger.error(f"Database error during {action}: {str(exc)}")
    return ServerError()


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
@auth_rate_limit
async def signup(
    request: Request,
    payload: SignupRequest,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Create an account, start its session and send the verification email"""
    try:
        session = auth_service.signup(
            db,
            username=payload.username,
            email=payload.email,
            password=payload.password,
            role=payload.role,
        )
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "signup")

    set_auth_cookies(response, session.access_token, session.refresh_token)
    background_tasks.add_task(
        email_service.send_verification_email, session.user.email, session.user.verification_token
    )
    return {
        "message": "User created successfully. Please check your email for verification.",
        "access_token": session.access_token,
        "user": UserResponse.model_validate(session.user),
    }


@router.post("/login", response_model=AuthResponse)
@auth_rate_limit
async def login(
    request: Request,
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    """Check email and password and set the session cookies"""
    try:
        session = auth_service.login(db, payload.email, payload.password)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "login")

    set_auth_cookies(response, session.access_token, session.refresh_token)
    return {"access_token": session.access_token, "user": UserResponse.model_validate(session.user)}


@router.post("/refresh", response_model=TokenResponse)
async def refresh(request: Request, response: Response, db: Session = Depends(get_db)):
    """Trade the refresh cookie for a new access token; the refresh token is rotated too"""
    cookies: SessionCookies = request.state.session
    try:
        session = auth_service.refresh(db, cookies.refresh_token)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "refresh")

    set_auth_cookies(response, session.access_token, session.refresh_token)
    return {"access_token": session.access_token}


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Revoke the refresh session and clear every session cookie"""
    try:
        auth_service.logout(db, current_user)
    except SQLAlchemyError as exc:
        # Cookies are still cleared; the stored refresh id expires with its token
        db.rollback()
        logger.error(f"Could not revoke refresh token for user {current_user.id}: {str(exc)}")

    clear_session_cookies(response)
    return {"message": "Logged out successfully"}


@router.get("/csrf-token", response_model=CsrfTokenResponse)
async def csrf_token(request: Request):
    """Return the CSRF token minted for this response (also set as the XSRF-TOKEN cookie)"""
    return {"csrf_token": request.state.csrf_token}


@router.get("/verify-email/{token}", response_model=VerifyEmailResponse)
async def verify_email(token: str, db: Session = Depends(get_db)):
    """Confirm an email address; repeating the request with the same link also succeeds"""
    try:
        verification_service.consume_verification(db, token)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "email verification")

    return {"message": "Email verified successfully", "is_verified": True}


@router.post("/resend-verification", response_model=MessageResponse)
@auth_rate_limit
async def resend_verification(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Issue a new verification link for an unverified account"""
    try:
        user = verification_service.request_verification(db, payload.email)
    except NotFound as exc:
        raise Unauthenticated(exc.message, reason=Unauthenticated.USER_NOT_FOUND)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "resend verification")

    background_tasks.add_task(email_service.send_verification_email, user.email, user.verification_token)
    return {"message": "Verification link has been sent to your email"}


@router.post("/reset-password", response_model=MessageResponse)
@auth_rate_limit
async def request_password_reset(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Email a one-hour password reset link"""
    try:
        user = verification_service.request_password_reset(db, payload.email)
    except NotFound as exc:
        raise Unauthenticated(exc.message, reason=Unauthenticated.USER_NOT_FOUND)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "password reset request")

    background_tasks.add_task(email_service.send_reset_password_email, user.email, user.reset_password_token)
    return {"message": "Password reset link has been sent to your email"}


@router.get("/verify-reset-token/{token}", response_model=MessageResponse)
async def verify_reset_token(token: str, db: Session = Depends(get_db)):
    """Check a reset link without using it up"""
    try:
        verification_service.verify_reset_token(db, token)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "reset token check")

    return {"message": "Token is valid"}


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(token: str, payload: NewPasswordRequest, db: Session = Depends(get_db)):
    """Set a new password with a reset link; the link cannot be used again"""
    try:
        verification_service.consume_reset(db, token, payload.new_password)
    except SQLAlchemyError as exc:
        raise _database_error(db, exc, "password reset")

    return {
        "message": "Your password has been successfully reset. Please login with your new password."
    }
