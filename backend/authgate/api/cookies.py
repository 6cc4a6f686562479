"""
Session cookies.

Four cookies make up a browser session: the access token, the refresh
token, and the CSRF pair (a readable token the client echoes back and the
httpOnly secret it is derived from).
"""

from dataclasses import dataclass
from typing import Optional
from fastapi import Request, Response
from authgate.core.config import settings

ACCESS_TOKEN_COOKIE = "token"
REFRESH_TOKEN_COOKIE = "refreshToken"
CSRF_TOKEN_COOKIE = "XSRF-TOKEN"
CSRF_SECRET_COOKIE = "_csrf"

SESSION_COOKIES = (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, CSRF_TOKEN_COOKIE, CSRF_SECRET_COOKIE)


@dataclass
class SessionCookies:
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    csrf_secret: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "SessionCookies":
        return cls(
            access_token=request.cookies.get(ACCESS_TOKEN_COOKIE) or None,
            refresh_token=request.cookies.get(REFRESH_TOKEN_COOKIE) or None,
            csrf_secret=request.cookies.get(CSRF_SECRET_COOKIE) or None,
        )


def set_access_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        path="/",
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    set_access_cookie(response, access_token)
    set_refresh_cookie(response, refresh_token)


def set_csrf_cookies(response: Response, token: str, secret: Optional[str] = None) -> None:
    """Readable token cookie (strict) and, when newly minted, the httpOnly secret"""
    response.set_cookie(
        CSRF_TOKEN_COOKIE,
        token,
        path="/",
        secure=settings.cookie_secure,
        httponly=False,
        samesite="strict",
    )
    if secret is not None:
        response.set_cookie(
            CSRF_SECRET_COOKIE,
            secret,
            path="/",
            secure=settings.cookie_secure,
            httponly=True,
            samesite="lax",
        )


def clear_session_cookies(response: Response) -> None:
    """Expire every session cookie whether or not the client still holds it"""
    for name in SESSION_COOKIES:
        response.delete_cookie(
            name,
            path="/",
            secure=settings.cookie_secure,
            httponly=name != CSRF_TOKEN_COOKIE,
            samesite="strict" if name == CSRF_TOKEN_COOKIE else "lax",
        )
