"""
Test configuration and fixtures.

Provides:
- In-memory SQLite database, rebuilt for each test
- Users in each role and a call factory
- JWT token minting for authenticated tests
- HTTPX AsyncClient with proper headers
- A controllable clock for reminder scheduler tests
"""
import os
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Generator

# Settings are read at import time; point everything at an in-memory database
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ.setdefault("NOTIFICATION_CHANNELS", "in_app")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.orm import Session

from callwatch.main import app
from callwatch.db.base import Base
from callwatch.db.session import engine, SessionLocal
from callwatch.core.deps import get_call_provider_factory, get_db
from callwatch.core.security import create_session_token
from callwatch.db.enums import CallStatus, Role
from callwatch.db.models import Call, SchedulePermission, User
from callwatch.services.call_service import CallSnapshot


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """
    Fresh schema per test.

    Services commit for real (grants commit per entry), so isolation comes
    from dropping the tables rather than rolling back a savepoint.
    """
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


def make_user(db: Session, role: Role = Role.USER, name: str = "User") -> User:
    user = User(
        id=uuid.uuid4(),
        email=f"{name.lower().replace(' ', '-')}-{uuid.uuid4().hex[:8]}@test.com",
        display_name=name,
        role=role.value,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture(scope="function")
def create_user(db: Session):
    """Factory: create_user(role=Role.USER, name="User") -> User."""

    def _create(role: Role = Role.USER, name: str = "User") -> User:
        return make_user(db, role, name)

    return _create


@pytest.fixture(scope="function")
def admin_user(db: Session) -> User:
    return make_user(db, Role.ADMIN, "Admin")


@pytest.fixture(scope="function")
def caller_user(db: Session) -> User:
    return make_user(db, Role.CALLER, "Caller")


@pytest.fixture(scope="function")
def target_user(db: Session) -> User:
    """A standard user whose schedule gets shared."""
    return make_user(db, Role.USER, "Target")


@pytest.fixture(scope="function")
def other_user(db: Session) -> User:
    return make_user(db, Role.USER, "Other")


@pytest.fixture(scope="function")
def make_call(db: Session):
    """Factory: make_call(owner, minutes_from_now=30, **fields) -> Call."""

    def _make(owner: User, minutes_from_now: float = 30, **fields) -> Call:
        now = fields.pop("now", datetime.now(timezone.utc))
        call = Call(
            id=uuid.uuid4(),
            owner_id=owner.id,
            created_by_id=owner.id,
            contact_name=fields.pop("contact_name", "Jordan Lee"),
            company=fields.pop("company", "Acme"),
            call_type=fields.pop("call_type", "interview"),
            scheduled_time=now + timedelta(minutes=minutes_from_now),
            duration_minutes=fields.pop("duration_minutes", 30),
            status=fields.pop("status", CallStatus.SCHEDULED.value),
            priority=fields.pop("priority", "medium"),
            **fields,
        )
        db.add(call)
        db.commit()
        return call

    return _make


@pytest.fixture(scope="function")
def grant_access(db: Session):
    """Factory: grant_access(viewer, target, granted_by=None) -> SchedulePermission."""

    def _grant(viewer: User, target: User, granted_by: User | None = None) -> SchedulePermission:
        permission = SchedulePermission(
            id=uuid.uuid4(),
            viewer_id=viewer.id,
            target_id=target.id,
            granted_by_id=granted_by.id if granted_by else None,
            granted_at=datetime.now(timezone.utc),
            is_active=True,
        )
        db.add(permission)
        db.commit()
        return permission

    return _grant


# =============================================================================
# Scheduler Fixtures
# =============================================================================

class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(minutes=minutes, seconds=seconds)
        return self.now


class RecordingSink:
    """Collects delivered events."""

    def __init__(self):
        self.events = []

    def deliver(self, event) -> None:
        self.events.append(event)

    @property
    def offsets(self) -> list[int]:
        return [e.trigger.offset_minutes for e in self.events]

    def clear(self) -> None:
        self.events.clear()


class StaticProvider:
    """Call provider backed by an editable list of snapshots."""

    def __init__(self, calls: list[CallSnapshot] | None = None):
        self.calls = list(calls or [])
        self.fetches = 0

    def __call__(self) -> list[CallSnapshot]:
        self.fetches += 1
        return sorted(self.calls, key=lambda c: (c.scheduled_time, c.id))

    def replace(self, call: CallSnapshot) -> None:
        self.calls = [c for c in self.calls if c.id != call.id] + [call]

    def remove(self, call_id) -> None:
        self.calls = [c for c in self.calls if c.id != call_id]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def provider() -> StaticProvider:
    return StaticProvider()


def snapshot(
    scheduled_time: datetime,
    status: CallStatus = CallStatus.SCHEDULED,
    call_id: uuid.UUID | None = None,
    owner_id: uuid.UUID | None = None,
    contact_name: str = "Jordan Lee",
) -> CallSnapshot:
    return CallSnapshot(
        id=call_id or uuid.uuid4(),
        owner_id=owner_id or uuid.uuid4(),
        contact_name=contact_name,
        company="Acme",
        phone_number="555-0100",
        call_type="interview",
        scheduled_time=scheduled_time,
        duration_minutes=30,
        status=status.value,
        priority="high",
    )


@pytest.fixture
def make_snapshot():
    """Factory: make_snapshot(scheduled_time, status=SCHEDULED, ...) -> CallSnapshot."""
    return snapshot


# =============================================================================
# Auth Fixtures
# =============================================================================

@dataclass
class TestAuth:
    """Test authentication context."""
    user: User
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "X-Requested-With": "XMLHttpRequest",  # CSRF header
        }


def auth_for(user: User) -> TestAuth:
    token = create_session_token(
        user_id=user.id,
        role=user.role,
        token_version=user.token_version,
    )
    return TestAuth(user=user, token=token)


# =============================================================================
# Client Fixtures
# =============================================================================

class ProviderFactory:
    """
    Provider factory for API tests: one StaticProvider per viewer.

    Keeps the background scheduler off the test's database session.
    """

    def __init__(self):
        self.providers: dict = {}

    def __call__(self, viewer_id) -> StaticProvider:
        return self.providers.setdefault(viewer_id, StaticProvider())


@pytest.fixture(scope="function")
def providers() -> ProviderFactory:
    return ProviderFactory()


@pytest.fixture(scope="function")
async def api(db: Session, providers: ProviderFactory) -> AsyncGenerator[None, None]:
    """Wire the app to the test session; stop any schedulers afterwards."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_call_provider_factory] = lambda: providers
    yield
    await app.state.scheduler_registry.shutdown()
    app.dependency_overrides.clear()


@asynccontextmanager
async def client_for(user: User | None) -> AsyncGenerator[AsyncClient, None]:
    headers = auth_for(user).headers if user else {"X-Requested-With": "XMLHttpRequest"}
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers=headers,
    ) as c:
        yield c


@pytest.fixture(scope="function")
async def client(api) -> AsyncGenerator[AsyncClient, None]:
    """Unauthenticated client."""
    async with client_for(None) as c:
        yield c


@pytest.fixture(scope="function")
async def admin_client(api, admin_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with client_for(admin_user) as c:
        yield c


@pytest.fixture(scope="function")
async def caller_client(api, caller_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with client_for(caller_user) as c:
        yield c


@pytest.fixture(scope="function")
async def target_client(api, target_user: User) -> AsyncGenerator[AsyncClient, None]:
    async with client_for(target_user) as c:
        yield c


@pytest.fixture(scope="function")
def make_client(api):
    """Factory: `async with make_client(user) as c:` for users without a named fixture."""
    return client_for
