"""Schedule permissions router - admin endpoints for schedule view grants.

Endpoints for:
- Listing grants with summary stats
- Listing users that can be granted or targeted
- Granting, revoking, and restoring schedule access
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from callwatch.core.deps import get_db, require_csrf_header, require_roles
from callwatch.db.enums import GrantFailureCode, ROLES_CAN_MANAGE_SCHEDULE_PERMISSIONS
from callwatch.schemas.auth import UserSession
from callwatch.schemas.permission import (
    GrantFailureRead,
    GrantRequest,
    GrantResultRead,
    PermissionChangeResponse,
    PermissionIdRequest,
    PermissionListResponse,
    PermissionRead,
    PermissionStats,
    UserSummary,
)
from callwatch.services import permission_service


router = APIRouter(prefix="/admin/schedule-permissions", tags=["Schedule Permissions"])

require_admin = require_roles(list(ROLES_CAN_MANAGE_SCHEDULE_PERMISSIONS))


def _user_to_summary(user) -> UserSummary:
    return UserSummary(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        role=user.role,
    )


def _permission_to_read(permission) -> PermissionRead:
    return PermissionRead(
        id=permission.id,
        viewer_id=permission.viewer_id,
        target_id=permission.target_id,
        granted_by_id=permission.granted_by_id,
        granted_at=permission.granted_at,
        is_active=permission.is_active,
        viewer=_user_to_summary(permission.viewer),
        target=_user_to_summary(permission.target),
        granted_by=_user_to_summary(permission.granted_by) if permission.granted_by else None,
    )


@router.get("", response_model=PermissionListResponse)
def list_permissions(
    viewer_id: UUID | None = Query(None),
    active_only: bool = Query(False),
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List schedule grants (newest first) with summary stats."""
    grants = permission_service.list_grants(db, viewer_id=viewer_id, active_only=active_only)
    stats = permission_service.permission_stats(db)
    return PermissionListResponse(
        items=[_permission_to_read(g) for g in grants],
        stats=PermissionStats(**stats),
    )


@router.get("/users", response_model=list[UserSummary])
def list_users(
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Active users available on either side of a grant."""
    return [_user_to_summary(u) for u in permission_service.list_grantable_users(db)]


@router.post(
    "/grant",
    response_model=GrantResultRead,
    dependencies=[Depends(require_csrf_header)],
)
def grant_permissions(
    data: GrantRequest,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Grant a viewer access to one or more schedules.

    Partial success returns 200 with per-target outcomes; only a batch where
    every entry failed is an error.
    """
    try:
        result = permission_service.grant(
            db,
            viewer_id=data.viewer_id,
            target_ids=data.target_user_ids,
            granted_by_id=session.user_id,
        )
    except permission_service.UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    body = GrantResultRead(
        message=result.message,
        viewer_id=result.viewer_id,
        successful=result.successful,
        created=result.created,
        restored=result.restored,
        already_exists=result.already_exists,
        failed=[
            GrantFailureRead(target_user_id=f.target_id, code=f.code.value, error=f.error)
            for f in result.failed
        ],
    )
    if result.all_failed:
        store_failed = any(
            f.code == GrantFailureCode.PERSISTENCE_ERROR for f in result.failed
        )
        raise HTTPException(
            status_code=500 if store_failed else 400,
            detail=body.model_dump(mode="json"),
        )
    return body


@router.post(
    "/revoke",
    response_model=PermissionChangeResponse,
    dependencies=[Depends(require_csrf_header)],
)
def revoke_permission(
    data: PermissionIdRequest,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Revoke a grant. Revoking an already revoked grant succeeds."""
    try:
        permission = permission_service.revoke(db, data.permission_id)
    except permission_service.PermissionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except permission_service.PermissionPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return PermissionChangeResponse(
        message="Permission revoked",
        permission=_permission_to_read(permission),
    )


@router.post(
    "/restore",
    response_model=PermissionChangeResponse,
    dependencies=[Depends(require_csrf_header)],
)
def restore_permission(
    data: PermissionIdRequest,
    session: UserSession = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Reactivate a revoked grant in place."""
    try:
        permission = permission_service.restore(db, data.permission_id, session.user_id)
    except permission_service.PermissionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except permission_service.PermissionPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return PermissionChangeResponse(
        message="Permission restored",
        permission=_permission_to_read(permission),
    )
