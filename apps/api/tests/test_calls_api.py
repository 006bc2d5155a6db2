"""
Tests for the calls API.

Coverage:
- Creating calls (own schedule, admin on behalf of others)
- Visible call listing and detail
- Lifecycle endpoints and their error mapping
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from callwatch.db.enums import CallStatus


def _future(minutes: int = 60) -> str:
    return (datetime.now(timezone.utc) + timedelta(minutes=minutes)).isoformat()


# =============================================================================
# Create
# =============================================================================

async def test_create_call_on_own_schedule(caller_client, caller_user):
    response = await caller_client.post(
        "/calls",
        json={
            "contact_name": "Jordan Lee",
            "company": "Acme",
            "phone_number": "555-0100",
            "scheduled_time": _future(),
            "preparation_notes": "Review resume",
        },
    )

    assert response.status_code == 201
    data = response.json()
    assert data["owner_id"] == str(caller_user.id)
    assert data["created_by_id"] == str(caller_user.id)
    assert data["status"] == CallStatus.SCHEDULED.value
    assert data["call_type"] == "interview"


async def test_create_call_for_other_user_requires_admin(caller_client, target_user):
    response = await caller_client.post(
        "/calls",
        json={
            "contact_name": "Jordan Lee",
            "scheduled_time": _future(),
            "owner_id": str(target_user.id),
        },
    )
    assert response.status_code == 403


async def test_admin_creates_call_for_other_user(admin_client, admin_user, target_user):
    response = await admin_client.post(
        "/calls",
        json={
            "contact_name": "Jordan Lee",
            "scheduled_time": _future(),
            "owner_id": str(target_user.id),
        },
    )

    assert response.status_code == 201
    assert response.json()["owner_id"] == str(target_user.id)
    assert response.json()["created_by_id"] == str(admin_user.id)


async def test_admin_create_for_unknown_owner(admin_client):
    response = await admin_client.post(
        "/calls",
        json={"contact_name": "Jordan Lee", "scheduled_time": _future(), "owner_id": str(uuid4())},
    )
    assert response.status_code == 404


async def test_create_call_validates_duration(caller_client):
    response = await caller_client.post(
        "/calls",
        json={"contact_name": "Jordan Lee", "scheduled_time": _future(), "duration_minutes": 1},
    )
    assert response.status_code == 422


# =============================================================================
# Read
# =============================================================================

async def test_list_calls_shows_visible_set(
    caller_client, admin_user, caller_user, target_user, other_user, make_call, grant_access
):
    own = make_call(caller_user, 40)
    make_call(other_user, 10)

    response = await caller_client.get("/calls")
    data = response.json()
    assert [c["id"] for c in data["items"]] == [str(own.id)]
    assert data["has_granted_access"] is False

    shared = make_call(target_user, 20)
    grant_access(caller_user, target_user, admin_user)

    data = (await caller_client.get("/calls")).json()
    assert [c["id"] for c in data["items"]] == [str(shared.id), str(own.id)]
    assert data["total"] == 2
    assert data["has_granted_access"] is True


async def test_list_calls_status_filter(caller_client, caller_user, make_call):
    make_call(caller_user, 10, status=CallStatus.CANCELLED.value)
    scheduled = make_call(caller_user, 20)

    response = await caller_client.get("/calls", params={"status": ["scheduled"]})

    assert [c["id"] for c in response.json()["items"]] == [str(scheduled.id)]


async def test_get_invisible_call_is_404(caller_client, target_user, make_call):
    call = make_call(target_user, 10)

    response = await caller_client.get(f"/calls/{call.id}")

    assert response.status_code == 404


async def test_get_granted_call(caller_client, caller_user, target_user, make_call, grant_access):
    call = make_call(target_user, 10)
    grant_access(caller_user, target_user)

    response = await caller_client.get(f"/calls/{call.id}")

    assert response.status_code == 200
    assert response.json()["contact_name"] == "Jordan Lee"


# =============================================================================
# Lifecycle
# =============================================================================

async def test_start_then_complete(caller_client, caller_user, make_call):
    call = make_call(caller_user, 2)

    response = await caller_client.post(f"/calls/{call.id}/start")
    assert response.status_code == 200
    assert response.json()["status"] == CallStatus.IN_PROGRESS.value
    assert response.json()["started_at"] is not None

    response = await caller_client.post(
        f"/calls/{call.id}/complete", json={"outcome_notes": "Moving forward"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == CallStatus.COMPLETED.value
    assert response.json()["outcome_notes"] == "Moving forward"


async def test_invalid_transition_returns_409(caller_client, caller_user, make_call):
    call = make_call(caller_user, 10)

    response = await caller_client.post(f"/calls/{call.id}/complete")

    assert response.status_code == 409


async def test_fail_with_reason(caller_client, caller_user, make_call):
    call = make_call(caller_user, 1)
    await caller_client.post(f"/calls/{call.id}/start")

    response = await caller_client.post(f"/calls/{call.id}/fail", json={"reason": "No answer"})

    assert response.status_code == 200
    assert response.json()["status"] == CallStatus.FAILED.value
    assert response.json()["failed_reason"] == "No answer"


async def test_cancel(caller_client, caller_user, make_call):
    call = make_call(caller_user, 30)

    response = await caller_client.post(f"/calls/{call.id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == CallStatus.CANCELLED.value


async def test_reschedule(caller_client, caller_user, make_call):
    call = make_call(caller_user, 30)
    new_time = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=2)

    response = await caller_client.post(
        f"/calls/{call.id}/reschedule", json={"scheduled_time": new_time.isoformat()}
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == CallStatus.SCHEDULED.value
    assert datetime.fromisoformat(data["scheduled_time"]) == new_time


async def test_viewer_cannot_change_granted_call(
    caller_client, caller_user, target_user, make_call, grant_access
):
    call = make_call(target_user, 10)
    grant_access(caller_user, target_user)

    response = await caller_client.post(f"/calls/{call.id}/start")

    assert response.status_code == 403


async def test_lifecycle_on_unknown_call(caller_client):
    response = await caller_client.post(f"/calls/{uuid4()}/start")
    assert response.status_code == 404


async def test_delete_call(caller_client, caller_user, make_call):
    call = make_call(caller_user, 30)

    response = await caller_client.delete(f"/calls/{call.id}")
    assert response.status_code == 204

    response = await caller_client.get(f"/calls/{call.id}")
    assert response.status_code == 404
