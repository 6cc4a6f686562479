"""
CSRF protection using a per-session secret and derived tokens.

The secret lives in an httpOnly cookie. Tokens are ``<salt>.<mac>`` where
the mac is an HMAC over the salt and the secret keyed with the server's
CSRF_SECRET, so a token is only valid next to the secret it came from and
a new token can be minted for every response without server-side state.
"""

import base64
import hashlib
import hmac
import logging
import secrets
from typing import Iterable, Optional
from fastapi import Request, Response
from authgate.api.cookies import SessionCookies, set_csrf_cookies
from authgate.core.config import settings
from authgate.core.errors import CSRFError, error_response

logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"
# Header names accepted from clients, in lookup order
CSRF_REQUEST_HEADERS = ("x-csrf-token", "x-xsrf-token", "csrf-token")
SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE"})


def generate_secret() -> str:
    return secrets.token_urlsafe(18)


def _mac(salt: str, secret: str) -> str:
    digest = hmac.new(
        settings.CSRF_SECRET.encode("utf-8"),
        f"{salt}:{secret}".encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def create_token(secret: str) -> str:
    salt = secrets.token_urlsafe(8)
    return f"{salt}.{_mac(salt, secret)}"


def verify_token(secret: Optional[str], token: Optional[str]) -> bool:
    if not secret or not token or "." not in token:
        return False
    salt, mac = token.split(".", 1)
    # Header values arrive latin-1 decoded, so compare bytes rather than str
    return hmac.compare_digest(mac.encode("utf-8"), _mac(salt, secret).encode("utf-8"))


def token_from_request(request: Request) -> Optional[str]:
    for header in CSRF_REQUEST_HEADERS:
        value = request.headers.get(header)
        if value:
            return value
    return None


class CSRFGuard:
    """
    Rejects mutating requests that do not echo a valid token and hands out
    a fresh token on every response it guards.

    Paths starting with one of ``exempt_paths`` are not guarded at all.
    """

    name = "csrf"

    def __init__(self, exempt_paths: Optional[Iterable[str]] = None):
        if exempt_paths is None:
            exempt_paths = settings.get_csrf_exempt_paths()
        self.exempt_paths = tuple(exempt_paths)

    def is_exempt(self, path: str) -> bool:
        return any(path == prefix or path.startswith(prefix.rstrip("/") + "/") for prefix in self.exempt_paths)

    def check(self, request: Request) -> Optional[Response]:
        if self.is_exempt(request.url.path):
            request.state.csrf_exempt = True
            return None
        request.state.csrf_exempt = False

        session: SessionCookies = request.state.session
        if request.method not in SAFE_METHODS:
            # Same answer whether the secret cookie is missing or the token is wrong
            if not verify_token(session.csrf_secret, token_from_request(request)):
                logger.warning(f"[CSRF] Validation failed for {request.method} {request.url.path}")
                return error_response(CSRFError())

        secret = session.csrf_secret
        request.state.csrf_new_secret = None
        if not secret:
            secret = generate_secret()
            request.state.csrf_new_secret = secret
        request.state.csrf_token = create_token(secret)
        return None

    def after(self, request: Request, response: Response) -> None:
        if getattr(request.state, "csrf_exempt", True):
            return
        token = request.state.csrf_token
        set_csrf_cookies(response, token, request.state.csrf_new_secret)
        response.headers[CSRF_HEADER] = token
