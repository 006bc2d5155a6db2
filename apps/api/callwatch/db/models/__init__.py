"""SQLAlchemy ORM models."""

from callwatch.db.models.auth import User
from callwatch.db.models.calls import Call
from callwatch.db.models.permissions import SchedulePermission

__all__ = [
    "Call",
    "SchedulePermission",
    "User",
]
