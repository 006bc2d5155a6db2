"""
Tests for the schedule permission registry.

Coverage:
- Batch grant outcomes (created / restored / already exists / failed)
- Self-grant and unknown users
- Revoke and restore idempotency
- One row per (viewer, target) across grant/revoke/restore cycles
- Target scope resolution (admin wildcard, revoked grants)
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from callwatch.db.enums import GrantFailureCode, Role
from callwatch.db.models import SchedulePermission
from callwatch.services import permission_service
from callwatch.services.permission_service import (
    PermissionNotFoundError,
    SelfGrantInvalidError,
    UserNotFoundError,
)


def _rows_for(db, viewer, target) -> list[SchedulePermission]:
    return (
        db.query(SchedulePermission)
        .filter(
            SchedulePermission.viewer_id == viewer.id,
            SchedulePermission.target_id == target.id,
        )
        .all()
    )


# =============================================================================
# Grant
# =============================================================================

def test_grant_creates_permissions(db, admin_user, caller_user, target_user, other_user):
    result = permission_service.grant(
        db, caller_user.id, [target_user.id, other_user.id], admin_user.id
    )

    assert result.created == [target_user.id, other_user.id]
    assert result.failed == []
    assert result.message == "Successfully granted 2 permission(s)"

    permission = _rows_for(db, caller_user, target_user)[0]
    assert permission.is_active is True
    assert permission.granted_by_id == admin_user.id


def test_grant_existing_reports_already_exists(db, admin_user, caller_user, target_user):
    permission_service.grant(db, caller_user.id, [target_user.id], admin_user.id)

    result = permission_service.grant(db, caller_user.id, [target_user.id], admin_user.id)

    assert result.already_exists == [target_user.id]
    assert result.successful == []
    assert result.all_failed is False
    assert result.message == "All 1 permission(s) already exist for this user"


def test_grant_rejects_self_grant_per_entry(db, admin_user, caller_user, target_user):
    result = permission_service.grant(
        db, caller_user.id, [caller_user.id, target_user.id], admin_user.id
    )

    assert result.created == [target_user.id]
    [failure] = result.failed
    assert failure.target_id == caller_user.id
    assert failure.code == GrantFailureCode.SELF_GRANT_INVALID
    assert result.message == "Granted 1 permission(s), 1 failed, 0 already existed"
    assert _rows_for(db, caller_user, caller_user) == []


def test_grant_unknown_target_fails_entry(db, admin_user, caller_user):
    missing = uuid4()

    result = permission_service.grant(db, caller_user.id, [missing], admin_user.id)

    assert result.all_failed is True
    assert result.failed[0].code == GrantFailureCode.NOT_FOUND


def test_grant_unknown_viewer_raises(db, admin_user, target_user):
    with pytest.raises(UserNotFoundError):
        permission_service.grant(db, uuid4(), [target_user.id], admin_user.id)


def test_grant_deduplicates_targets(db, admin_user, caller_user, target_user):
    result = permission_service.grant(
        db, caller_user.id, [target_user.id, target_user.id], admin_user.id
    )

    assert result.created == [target_user.id]
    assert result.total == 1
    assert len(_rows_for(db, caller_user, target_user)) == 1


def test_grant_after_revoke_restores_same_row(
    db, admin_user, caller_user, target_user, create_user
):
    permission_service.grant(db, caller_user.id, [target_user.id], admin_user.id)
    original = _rows_for(db, caller_user, target_user)[0]
    permission_service.revoke(db, original.id)

    second_admin = create_user(Role.ADMIN, "Second Admin")
    result = permission_service.grant(db, caller_user.id, [target_user.id], second_admin.id)

    assert result.restored == [target_user.id]
    [row] = _rows_for(db, caller_user, target_user)
    assert row.id == original.id
    assert row.is_active is True
    assert row.granted_by_id == second_admin.id


def test_single_row_across_grant_revoke_restore_cycles(db, admin_user, caller_user, target_user):
    for _ in range(3):
        permission_service.grant(db, caller_user.id, [target_user.id], admin_user.id)
        permission = _rows_for(db, caller_user, target_user)[0]
        permission_service.revoke(db, permission.id)
        permission_service.restore(db, permission.id, admin_user.id)
        permission_service.revoke(db, permission.id)

    rows = _rows_for(db, caller_user, target_user)
    assert len(rows) == 1
    assert rows[0].is_active is False


def test_upsert_rejects_self_grant(db, admin_user, caller_user):
    with pytest.raises(SelfGrantInvalidError):
        permission_service.upsert_permission(db, caller_user.id, caller_user.id, admin_user.id)


# =============================================================================
# Revoke / restore
# =============================================================================

def test_revoke_is_idempotent(db, admin_user, caller_user, target_user, grant_access):
    permission = grant_access(caller_user, target_user, admin_user)

    first = permission_service.revoke(db, permission.id)
    second = permission_service.revoke(db, permission.id)

    assert first.is_active is False
    assert second.is_active is False
    assert second.id == permission.id


def test_revoke_unknown_raises(db):
    with pytest.raises(PermissionNotFoundError):
        permission_service.revoke(db, uuid4())


def test_restore_records_new_grantor(db, admin_user, caller_user, target_user, grant_access):
    permission = grant_access(caller_user, target_user)
    permission_service.revoke(db, permission.id)
    restored_at = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)

    restored = permission_service.restore(db, permission.id, admin_user.id, now=restored_at)

    assert restored.is_active is True
    assert restored.granted_by_id == admin_user.id
    assert restored.granted_at.replace(tzinfo=timezone.utc) == restored_at


def test_restore_active_grant_is_noop(db, admin_user, caller_user, target_user, grant_access):
    permission = grant_access(caller_user, target_user)

    restored = permission_service.restore(db, permission.id, admin_user.id)

    assert restored.is_active is True
    assert restored.granted_by_id is None


def test_restore_unknown_raises(db, admin_user):
    with pytest.raises(PermissionNotFoundError):
        permission_service.restore(db, uuid4(), admin_user.id)


# =============================================================================
# Target scope
# =============================================================================

def test_scope_without_grants_is_self_only(db, caller_user, target_user):
    scope = permission_service.active_targets_for(db, caller_user.id)

    assert scope.is_wildcard is False
    assert scope.user_ids == frozenset({caller_user.id})
    assert target_user.id not in scope


def test_scope_includes_active_grants_only(
    db, admin_user, caller_user, target_user, other_user, grant_access
):
    grant_access(caller_user, target_user, admin_user)
    revoked = grant_access(caller_user, other_user, admin_user)
    permission_service.revoke(db, revoked.id)

    scope = permission_service.active_targets_for(db, caller_user.id)

    assert target_user.id in scope
    assert other_user.id not in scope


def test_grants_are_directed(db, admin_user, caller_user, target_user, grant_access):
    grant_access(caller_user, target_user, admin_user)

    scope = permission_service.active_targets_for(db, target_user.id)

    assert caller_user.id not in scope


def test_admin_scope_is_wildcard(db, admin_user, target_user):
    scope = permission_service.active_targets_for(db, admin_user.id)

    assert scope.is_wildcard is True
    assert target_user.id in scope
    assert uuid4() in scope


# =============================================================================
# Admin listing
# =============================================================================

def test_list_grants_filters(db, admin_user, caller_user, target_user, other_user, grant_access):
    grant_access(caller_user, target_user, admin_user)
    revoked = grant_access(caller_user, other_user, admin_user)
    grant_access(target_user, other_user, admin_user)
    permission_service.revoke(db, revoked.id)

    assert len(permission_service.list_grants(db)) == 3
    assert len(permission_service.list_grants(db, viewer_id=caller_user.id)) == 2
    active = permission_service.list_grants(db, viewer_id=caller_user.id, active_only=True)
    assert [p.target_id for p in active] == [target_user.id]


def test_permission_stats(db, admin_user, caller_user, target_user, other_user, grant_access):
    grant_access(caller_user, target_user, admin_user)
    grant_access(target_user, other_user, admin_user)
    revoked = grant_access(caller_user, other_user, admin_user)
    permission_service.revoke(db, revoked.id)

    assert permission_service.permission_stats(db) == {
        "total": 3,
        "active": 2,
        "revoked": 1,
        "viewers_with_access": 2,
    }


def test_list_grantable_users_skips_inactive(db, caller_user, target_user):
    target_user.is_active = False
    db.commit()

    users = permission_service.list_grantable_users(db)

    assert caller_user.id in {u.id for u in users}
    assert target_user.id not in {u.id for u in users}
