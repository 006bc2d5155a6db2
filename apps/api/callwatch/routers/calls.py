"""Calls router - visible calls and lifecycle actions.

Every lifecycle action is forwarded to CallLifecycle, which writes the new
status and then tells the running reminder schedulers about it.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from callwatch.core.deps import (
    get_current_session,
    get_db,
    get_scheduler_registry,
    require_csrf_header,
)
from callwatch.db.enums import CallStatus, ROLES_CAN_SCHEDULE_FOR_OTHERS
from callwatch.schemas.auth import UserSession
from callwatch.schemas.call import (
    CallComplete,
    CallCreate,
    CallFail,
    CallListResponse,
    CallRead,
    CallReschedule,
)
from callwatch.services import (
    call_lifecycle,
    call_service,
    permission_service,
    visible_call_service,
)
from callwatch.utils.datetime_utils import ensure_utc

router = APIRouter()


# =============================================================================
# Helper Functions
# =============================================================================

def _call_to_read(call) -> CallRead:
    """Convert Call model to read schema."""
    return CallRead(
        id=call.id,
        owner_id=call.owner_id,
        created_by_id=call.created_by_id,
        contact_name=call.contact_name,
        company=call.company,
        phone_number=call.phone_number,
        email=call.email,
        call_type=call.call_type,
        scheduled_time=ensure_utc(call.scheduled_time),
        duration_minutes=call.duration_minutes,
        status=call.status,
        priority=call.priority,
        notes=call.notes,
        preparation_notes=call.preparation_notes,
        outcome_notes=call.outcome_notes,
        failed_reason=call.failed_reason,
        started_at=ensure_utc(call.started_at) if call.started_at else None,
        completed_at=ensure_utc(call.completed_at) if call.completed_at else None,
        created_at=ensure_utc(call.created_at),
    )


def _lifecycle_error(e: Exception) -> HTTPException:
    """Map lifecycle/service errors to HTTP errors."""
    if isinstance(e, call_service.CallNotFoundError):
        return HTTPException(status_code=404, detail="Call not found")
    if isinstance(e, call_lifecycle.CallAccessDeniedError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, call_lifecycle.InvalidTransitionError):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


LIFECYCLE_ERRORS = (
    call_service.CallServiceError,
    call_lifecycle.CallLifecycleError,
)


# =============================================================================
# Calls
# =============================================================================

@router.get("", response_model=CallListResponse)
def list_calls(
    status: list[CallStatus] | None = Query(None),
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Calls the current user may see, soonest first."""
    calls = visible_call_service.visible_calls(db, session.user_id, statuses=status)
    scope = permission_service.active_targets_for(db, session.user_id)
    return CallListResponse(
        items=[_call_to_read(c) for c in calls],
        total=len(calls),
        has_granted_access=visible_call_service.has_granted_targets(scope, session.user_id),
    )


@router.post(
    "",
    response_model=CallRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
def create_call(
    data: CallCreate,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Schedule a call on your own schedule (admins may schedule for anyone)."""
    owner_id = data.owner_id or session.user_id
    if owner_id != session.user_id:
        if session.role not in ROLES_CAN_SCHEDULE_FOR_OTHERS:
            raise HTTPException(status_code=403, detail="Cannot schedule calls for other users")
        if not permission_service.user_exists(db, owner_id):
            raise HTTPException(status_code=404, detail="Owner not found")

    try:
        call = call_service.create_call(
            db,
            owner_id=owner_id,
            created_by_id=session.user_id,
            contact_name=data.contact_name,
            scheduled_time=data.scheduled_time,
            company=data.company,
            phone_number=data.phone_number,
            email=data.email,
            call_type=data.call_type,
            duration_minutes=data.duration_minutes,
            priority=data.priority,
            notes=data.notes,
            preparation_notes=data.preparation_notes,
        )
    except call_service.CallPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _call_to_read(call)


@router.get("/{call_id}", response_model=CallRead)
def get_call(
    call_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
):
    """Get a call. Calls outside your visible set are reported as missing."""
    call = call_service.get_call(db, call_id)
    if not call or not visible_call_service.is_call_visible(db, session.user_id, call):
        raise HTTPException(status_code=404, detail="Call not found")
    return _call_to_read(call)


@router.delete(
    "/{call_id}",
    status_code=204,
    dependencies=[Depends(require_csrf_header)],
)
def delete_call(
    call_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call_lifecycle.delete(
            db, call_id, session.user_id, session.role, commands=registry
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)


# =============================================================================
# Lifecycle
# =============================================================================

@router.post(
    "/{call_id}/start",
    response_model=CallRead,
    dependencies=[Depends(require_csrf_header)],
)
def start_call(
    call_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call = call_lifecycle.start(
            db, call_id, session.user_id, session.role, commands=registry
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)
    return _call_to_read(call)


@router.post(
    "/{call_id}/complete",
    response_model=CallRead,
    dependencies=[Depends(require_csrf_header)],
)
def complete_call(
    call_id: UUID,
    data: CallComplete | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call = call_lifecycle.complete(
            db,
            call_id,
            session.user_id,
            session.role,
            outcome_notes=data.outcome_notes if data else None,
            commands=registry,
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)
    return _call_to_read(call)


@router.post(
    "/{call_id}/fail",
    response_model=CallRead,
    dependencies=[Depends(require_csrf_header)],
)
def fail_call(
    call_id: UUID,
    data: CallFail | None = None,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call = call_lifecycle.fail(
            db,
            call_id,
            session.user_id,
            session.role,
            reason=data.reason if data else None,
            commands=registry,
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)
    return _call_to_read(call)


@router.post(
    "/{call_id}/cancel",
    response_model=CallRead,
    dependencies=[Depends(require_csrf_header)],
)
def cancel_call(
    call_id: UUID,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call = call_lifecycle.cancel(
            db, call_id, session.user_id, session.role, commands=registry
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)
    return _call_to_read(call)


@router.post(
    "/{call_id}/reschedule",
    response_model=CallRead,
    dependencies=[Depends(require_csrf_header)],
)
def reschedule_call(
    call_id: UUID,
    data: CallReschedule,
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    registry=Depends(get_scheduler_registry),
):
    try:
        call = call_lifecycle.reschedule(
            db,
            call_id,
            session.user_id,
            session.role,
            data.scheduled_time,
            commands=registry,
        )
    except LIFECYCLE_ERRORS as e:
        raise _lifecycle_error(e)
    return _call_to_read(call)
