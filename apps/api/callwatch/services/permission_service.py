"""Schedule permission registry - who may view whose call schedule.

Grants are directed (viewer -> target) and never hard-deleted: revoking
flips is_active, restoring flips it back and stamps the new grantor.
Admins implicitly see every schedule.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from callwatch.core.structured_logging import build_log_context
from callwatch.db.enums import (
    GrantFailureCode,
    GrantOutcome,
    ROLES_SEE_ALL_SCHEDULES,
)
from callwatch.db.models import SchedulePermission, User
from callwatch.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class PermissionServiceError(Exception):
    """Base exception for schedule permission errors."""

    pass


class SelfGrantInvalidError(PermissionServiceError):
    """A user cannot be granted access to their own schedule."""

    def __init__(self, user_id: UUID):
        super().__init__("Cannot grant a user access to their own schedule")
        self.user_id = user_id


class PermissionNotFoundError(PermissionServiceError):
    """Grant id does not exist."""

    def __init__(self, permission_id: UUID):
        super().__init__(f"Permission {permission_id} not found")
        self.permission_id = permission_id


class UserNotFoundError(PermissionServiceError):
    """Referenced user does not exist."""

    def __init__(self, user_id: UUID):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class PermissionPersistenceError(PermissionServiceError):
    """The permission store rejected a write."""

    pass


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class TargetScope:
    """Set of schedule owners a viewer may see. Wildcard means everyone."""

    user_ids: frozenset[UUID] = frozenset()
    is_wildcard: bool = False

    def __contains__(self, user_id: object) -> bool:
        return self.is_wildcard or user_id in self.user_ids


ALL_USERS = TargetScope(is_wildcard=True)


@dataclass(frozen=True)
class GrantFailure:
    target_id: UUID
    code: GrantFailureCode
    error: str


@dataclass
class GrantResult:
    """Per-target outcome of a grant batch."""

    viewer_id: UUID
    created: list[UUID] = field(default_factory=list)
    restored: list[UUID] = field(default_factory=list)
    already_exists: list[UUID] = field(default_factory=list)
    failed: list[GrantFailure] = field(default_factory=list)

    @property
    def successful(self) -> list[UUID]:
        return self.created + self.restored

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.already_exists) + len(self.failed)

    @property
    def all_failed(self) -> bool:
        return self.total > 0 and len(self.failed) == self.total

    @property
    def message(self) -> str:
        ok = len(self.successful)
        if ok and not self.failed and not self.already_exists:
            return f"Successfully granted {ok} permission(s)"
        if not ok and not self.failed and self.already_exists:
            return f"All {len(self.already_exists)} permission(s) already exist for this user"
        return (
            f"Granted {ok} permission(s), {len(self.failed)} failed, "
            f"{len(self.already_exists)} already existed"
        )


# =============================================================================
# Data layer
# =============================================================================

def _get_pair(db: Session, viewer_id: UUID, target_id: UUID) -> SchedulePermission | None:
    return (
        db.query(SchedulePermission)
        .filter(
            SchedulePermission.viewer_id == viewer_id,
            SchedulePermission.target_id == target_id,
        )
        .first()
    )


def fetch_active_permissions(db: Session, viewer_id: UUID) -> list[SchedulePermission]:
    """Active grants where viewer_id is the viewer."""
    return (
        db.query(SchedulePermission)
        .filter(
            SchedulePermission.viewer_id == viewer_id,
            SchedulePermission.is_active.is_(True),
        )
        .all()
    )


def upsert_permission(
    db: Session,
    viewer_id: UUID,
    target_id: UUID,
    granted_by_id: UUID | None,
    *,
    now: datetime | None = None,
) -> tuple[GrantOutcome, SchedulePermission]:
    """
    Create or reactivate the grant for (viewer, target).

    Commits on its own so one bad pair never takes a batch down with it.
    """
    if viewer_id == target_id:
        raise SelfGrantInvalidError(viewer_id)

    now = now or utcnow()
    existing = _get_pair(db, viewer_id, target_id)
    if existing and existing.is_active:
        return GrantOutcome.ALREADY_EXISTS, existing

    if existing:
        existing.is_active = True
        existing.granted_by_id = granted_by_id
        existing.granted_at = now
        outcome, permission = GrantOutcome.RESTORED, existing
    else:
        permission = SchedulePermission(
            viewer_id=viewer_id,
            target_id=target_id,
            granted_by_id=granted_by_id,
            granted_at=now,
            is_active=True,
        )
        db.add(permission)
        outcome = GrantOutcome.CREATED

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        # Lost a race with a concurrent grant for the same pair
        raced = _get_pair(db, viewer_id, target_id)
        if raced and raced.is_active:
            return GrantOutcome.ALREADY_EXISTS, raced
        raise PermissionPersistenceError("Failed to save permission") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise PermissionPersistenceError("Failed to save permission") from exc

    db.refresh(permission)
    return outcome, permission


def set_permission_active(
    db: Session,
    permission_id: UUID,
    is_active: bool,
    *,
    changed_by_id: UUID | None = None,
    now: datetime | None = None,
) -> SchedulePermission:
    """Flip a grant on or off. Idempotent."""
    permission = db.get(SchedulePermission, permission_id)
    if not permission:
        raise PermissionNotFoundError(permission_id)

    if permission.is_active == is_active:
        return permission

    permission.is_active = is_active
    if is_active:
        permission.granted_by_id = changed_by_id
        permission.granted_at = now or utcnow()

    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PermissionPersistenceError("Failed to update permission") from exc

    db.refresh(permission)
    return permission


# =============================================================================
# Registry operations
# =============================================================================

def grant(
    db: Session,
    viewer_id: UUID,
    target_ids: Iterable[UUID],
    granted_by_id: UUID | None,
    *,
    now: datetime | None = None,
) -> GrantResult:
    """
    Grant viewer_id access to each target schedule.

    Each target is processed independently; failures are reported per
    entry instead of aborting the batch.

    Raises:
        UserNotFoundError: viewer does not exist
    """
    if db.get(User, viewer_id) is None:
        raise UserNotFoundError(viewer_id)

    result = GrantResult(viewer_id=viewer_id)
    seen: set[UUID] = set()
    for target_id in target_ids:
        if target_id in seen:
            continue
        seen.add(target_id)

        if target_id == viewer_id:
            result.failed.append(
                GrantFailure(
                    target_id,
                    GrantFailureCode.SELF_GRANT_INVALID,
                    "Cannot grant a user access to their own schedule",
                )
            )
            continue

        if db.get(User, target_id) is None:
            result.failed.append(
                GrantFailure(target_id, GrantFailureCode.NOT_FOUND, "Target user not found")
            )
            continue

        try:
            outcome, _ = upsert_permission(db, viewer_id, target_id, granted_by_id, now=now)
        except PermissionPersistenceError as exc:
            logger.warning(
                "Grant failed viewer=%s target=%s: %s", viewer_id, target_id, exc
            )
            result.failed.append(
                GrantFailure(target_id, GrantFailureCode.PERSISTENCE_ERROR, str(exc))
            )
            continue

        if outcome == GrantOutcome.CREATED:
            result.created.append(target_id)
        elif outcome == GrantOutcome.RESTORED:
            result.restored.append(target_id)
        else:
            result.already_exists.append(target_id)

    logger.info(
        "Schedule grant viewer=%s created=%d restored=%d existing=%d failed=%d",
        viewer_id,
        len(result.created),
        len(result.restored),
        len(result.already_exists),
        len(result.failed),
    )
    return result


def revoke(db: Session, permission_id: UUID) -> SchedulePermission:
    """Deactivate a grant. Revoking an inactive grant is a no-op."""
    permission = set_permission_active(db, permission_id, False)
    logger.info(
        "Schedule permission revoked id=%s viewer=%s target=%s",
        permission_id,
        permission.viewer_id,
        permission.target_id,
        extra=build_log_context(permission_id=permission_id, viewer_id=permission.viewer_id),
    )
    return permission


def restore(
    db: Session,
    permission_id: UUID,
    restored_by_id: UUID | None,
    *,
    now: datetime | None = None,
) -> SchedulePermission:
    """Reactivate a revoked grant, recording who restored it."""
    permission = set_permission_active(
        db, permission_id, True, changed_by_id=restored_by_id, now=now
    )
    logger.info(
        "Schedule permission restored id=%s by=%s",
        permission_id,
        restored_by_id,
        extra=build_log_context(permission_id=permission_id, viewer_id=permission.viewer_id),
    )
    return permission


def user_exists(db: Session, user_id: UUID) -> bool:
    return db.get(User, user_id) is not None


def is_admin(db: Session, user_id: UUID) -> bool:
    user = db.get(User, user_id)
    return bool(user and user.role in {r.value for r in ROLES_SEE_ALL_SCHEDULES})


def active_targets_for(db: Session, viewer_id: UUID) -> TargetScope:
    """
    Owners whose calls viewer_id may see.

    Admins get ALL_USERS; everyone else gets themselves plus their
    active grants. Revoked grants never contribute.
    """
    if is_admin(db, viewer_id):
        return ALL_USERS
    targets = {p.target_id for p in fetch_active_permissions(db, viewer_id)}
    targets.add(viewer_id)
    return TargetScope(user_ids=frozenset(targets))


# =============================================================================
# Admin listing
# =============================================================================

def list_grants(
    db: Session,
    *,
    viewer_id: UUID | None = None,
    active_only: bool = False,
) -> list[SchedulePermission]:
    query = db.query(SchedulePermission).options(
        selectinload(SchedulePermission.viewer),
        selectinload(SchedulePermission.target),
        selectinload(SchedulePermission.granted_by),
    )
    if viewer_id:
        query = query.filter(SchedulePermission.viewer_id == viewer_id)
    if active_only:
        query = query.filter(SchedulePermission.is_active.is_(True))
    return query.order_by(SchedulePermission.granted_at.desc()).all()


def list_grantable_users(db: Session) -> list[User]:
    """Active users that can appear on either side of a grant."""
    return (
        db.query(User)
        .filter(User.is_active.is_(True))
        .order_by(User.email.asc())
        .all()
    )


def permission_stats(db: Session) -> dict[str, int]:
    total = db.query(func.count(SchedulePermission.id)).scalar() or 0
    active = (
        db.query(func.count(SchedulePermission.id))
        .filter(SchedulePermission.is_active.is_(True))
        .scalar()
        or 0
    )
    viewers = (
        db.query(func.count(func.distinct(SchedulePermission.viewer_id)))
        .filter(SchedulePermission.is_active.is_(True))
        .scalar()
        or 0
    )
    return {
        "total": total,
        "active": active,
        "revoked": total - active,
        "viewers_with_access": viewers,
    }
