"""
Request rate limiting for the pre-authentication routes.

Limits are counted per client address in memory, so each server instance
keeps its own counters.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from authgate.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.RATE_LIMIT_ENABLED,
    headers_enabled=False,
)

# Login, signup and the email-sending routes are the brute-forceable surface
auth_rate_limit = limiter.limit(settings.AUTH_RATE_LIMIT)
