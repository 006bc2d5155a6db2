"""
Request dependencies: database session, session auth, role and CSRF guards,
and the reminder objects held on app.state.
"""

from typing import Generator

import jwt
from fastapi import Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from callwatch.core.config import settings
from callwatch.core.security import decode_session_token
from callwatch.db.session import SessionLocal

COOKIE_NAME = "callwatch_session"
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def get_db() -> Generator[Session, None, None]:
    """One session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def extract_token(request: Request) -> str | None:
    """Session token from the cookie (browser) or a Bearer header (tools)."""
    token = request.cookies.get(COOKIE_NAME)
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def get_current_user(request: Request, db: Session = Depends(get_db)):
    """
    Resolve the signed-in user.

    Every failure is a 401: no token, bad signature or expiry, malformed
    claims, unknown or deactivated user, or a token_version that no longer
    matches (sessions are revoked by bumping the user's version).
    """
    from callwatch.db.models import User
    from callwatch.schemas.auth import TokenPayload

    token = extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        claims = TokenPayload.model_validate(decode_session_token(token))
    except (jwt.InvalidTokenError, ValidationError):
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.get(User, claims.sub)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account disabled")
    if user.token_version != claims.token_version:
        raise HTTPException(status_code=401, detail="Session revoked")
    return user


def get_current_session(request: Request, db: Session = Depends(get_db)):
    """The caller's identity and role, as used by every authenticated route."""
    from callwatch.db.enums import Role
    from callwatch.schemas.auth import UserSession

    user = get_current_user(request, db)

    # A role written outside the app should read as forbidden, not crash
    if not Role.has_value(user.role):
        raise HTTPException(status_code=403, detail=f"Unknown role '{user.role}'")

    return UserSession(
        user_id=user.id,
        role=Role(user.role),
        email=user.email,
        display_name=user.display_name,
    )


def require_roles(allowed_roles: list):
    """
    Route guard: only the listed roles may call the endpoint.

        @router.get("", dependencies=[Depends(require_roles([Role.ADMIN]))])
    """
    def dependency(request: Request, db: Session = Depends(get_db)):
        session = get_current_session(request, db)
        if session.role not in allowed_roles:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' may not perform this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """Mutating routes demand the XHR header; plain cross-site forms cannot set it."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Include '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


# =============================================================================
# Reminder wiring (overridable in tests)
# =============================================================================

def get_scheduler_registry(request: Request):
    """Per-viewer reminder schedulers owned by this app instance."""
    return request.app.state.scheduler_registry


def get_notification_inbox(request: Request):
    return request.app.state.notification_inbox


def get_call_provider_factory():
    """Returns a callable viewer_id -> call provider for new schedulers."""
    from callwatch.services.visible_call_service import build_call_provider
    return build_call_provider


def get_scheduler_config():
    from callwatch.services.notification_scheduler import SchedulerConfig
    return SchedulerConfig.from_settings()


def get_notification_channels() -> list[str]:
    return settings.notification_channels_list
