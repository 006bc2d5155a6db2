"""Visible call set - the calls a viewer is currently allowed to see."""

from __future__ import annotations

import logging
from typing import Callable, Iterable
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from callwatch.db.enums import CallStatus
from callwatch.db.models import Call
from callwatch.db.session import SessionLocal
from callwatch.services import call_service, permission_service
from callwatch.services.call_service import CallSnapshot
from callwatch.services.notification_scheduler import TransientFetchError
from callwatch.services.permission_service import TargetScope

logger = logging.getLogger(__name__)


# Statuses the reminder scheduler cares about; terminal calls are left out of its fetch
REMINDER_CALL_STATUSES = (
    CallStatus.SCHEDULED,
    CallStatus.IN_PROGRESS,
    CallStatus.RESCHEDULED,
)


def visible_calls(
    db: Session,
    viewer_id: UUID,
    statuses: Iterable[CallStatus] | None = None,
) -> list[Call]:
    """
    Calls viewer_id may see, soonest first.

    A viewer with no grants gets only their own calls. That is not an
    error; callers use has_granted_targets() to explain the empty view.
    """
    scope = permission_service.active_targets_for(db, viewer_id)
    owner_ids = None if scope.is_wildcard else scope.user_ids
    return call_service.fetch_calls(db, owner_ids, statuses)


def visible_call_snapshots(
    db: Session,
    viewer_id: UUID,
    statuses: Iterable[CallStatus] | None = REMINDER_CALL_STATUSES,
) -> list[CallSnapshot]:
    return [call_service.to_snapshot(c) for c in visible_calls(db, viewer_id, statuses)]


def is_call_visible(db: Session, viewer_id: UUID, call: Call) -> bool:
    return call.owner_id in permission_service.active_targets_for(db, viewer_id)


def has_granted_targets(scope: TargetScope, viewer_id: UUID) -> bool:
    """True if the scope reaches beyond the viewer's own schedule."""
    return scope.is_wildcard or bool(scope.user_ids - {viewer_id})


def build_call_provider(
    viewer_id: UUID,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Callable[[], list[CallSnapshot]]:
    """
    Read path for a NotificationScheduler.

    Opens a short-lived session per fetch; database errors surface as
    TransientFetchError so the scheduler skips the tick instead of dying.
    """

    def fetch() -> list[CallSnapshot]:
        try:
            with session_factory() as db:
                return visible_call_snapshots(db, viewer_id)
        except SQLAlchemyError as exc:
            raise TransientFetchError(f"Visible call fetch failed: {type(exc).__name__}") from exc

    return fetch
