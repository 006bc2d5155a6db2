"""
Session tokens for the Call Watch API.

Sign-in happens in the surrounding product; this service only verifies the
session JWT it is handed (cookie or Bearer header). Tokens are minted here
for the CLI and for tests.
"""

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from callwatch.core.config import settings

SESSION_ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "role", "exp"]


def create_session_token(user_id: UUID, role: str, token_version: int) -> str:
    """Sign a session for user_id with the current JWT_SECRET."""
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "token_version": token_version,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=SESSION_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session JWT and return its claims.

    Each configured secret is tried in order (current, then previous) so
    sessions survive a secret rotation. Raises jwt.InvalidTokenError when
    none of them verifies the token.
    """
    failure: jwt.InvalidTokenError | None = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[SESSION_ALGORITHM],
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            # Signature matched, so another secret will not help
            raise
        except jwt.InvalidTokenError as exc:
            failure = exc
    raise failure or jwt.InvalidTokenError("No JWT secret configured")
