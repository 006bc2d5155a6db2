"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from callwatch.db.base import Base, TimestampMixin
from callwatch.db.enums import (
    DEFAULT_CALL_PRIORITY,
    DEFAULT_CALL_STATUS,
    DEFAULT_CALL_TYPE,
)

if TYPE_CHECKING:
    from callwatch.db.models import User


class Call(TimestampMixin, Base):
    """
    A scheduled call or interview on one user's schedule.

    owner_id and id never change after creation. scheduled_time only
    changes through a reschedule; it is meaningful while the call is
    scheduled or in progress.
    """

    __tablename__ = "calls"
    __table_args__ = (
        Index("idx_calls_owner_time", "owner_id", "scheduled_time"),
        Index("idx_calls_status", "status"),
        Index("idx_calls_scheduled_time", "scheduled_time"),
        CheckConstraint("duration_minutes > 0", name="ck_calls_positive_duration"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Contact / subject
    contact_name: Mapped[str] = mapped_column(String(100), nullable=False)
    company: Mapped[str | None] = mapped_column(String(100), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    email: Mapped[str | None] = mapped_column(String(100), nullable=True)
    call_type: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CALL_TYPE.value, nullable=False
    )

    # Scheduling
    scheduled_time: Mapped[datetime] = mapped_column(nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CALL_STATUS.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(
        String(10), default=DEFAULT_CALL_PRIORITY.value, nullable=False
    )

    # Notes
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    preparation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    outcome_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    failed_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Relationships
    owner: Mapped["User"] = relationship(foreign_keys=[owner_id])
    created_by: Mapped["User | None"] = relationship(foreign_keys=[created_by_id])
