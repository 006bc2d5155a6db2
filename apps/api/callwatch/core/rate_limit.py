"""
Rate limiting for the Call Watch API.

Buckets are per session user when the request carries a valid session, so a
team of callers behind one office address does not share a limit. Other
requests fall back to the client address.
"""

import jwt
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from callwatch.core.config import settings
from callwatch.core.deps import extract_token
from callwatch.core.security import decode_session_token


def rate_limit_key(request: Request) -> str:
    token = extract_token(request)
    if token:
        try:
            return f"user:{decode_session_token(token)['sub']}"
        except (jwt.InvalidTokenError, KeyError):
            pass
    return f"ip:{get_remote_address(request)}"


def default_limits() -> list[str]:
    if settings.TESTING or settings.RATE_LIMIT_API <= 0:
        return []
    return [f"{settings.RATE_LIMIT_API}/minute"]


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri="memory://" if settings.TESTING else settings.RATE_LIMIT_STORAGE_URI,
    default_limits=default_limits(),
)
