"""SQLAlchemy ORM models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    UniqueConstraint,
    Uuid,
    func,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from callwatch.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from callwatch.db.models import User


class SchedulePermission(TimestampMixin, Base):
    """
    Grant letting one user (viewer) see another user's (target) call schedule.

    One row per (viewer, target) pair for its whole life: revoke flips
    is_active off, a later grant or restore flips it back on in place and
    overwrites granted_by/granted_at. Self-grants are rejected.
    """

    __tablename__ = "schedule_permissions"
    __table_args__ = (
        UniqueConstraint("viewer_id", "target_id", name="uq_schedule_permission_pair"),
        CheckConstraint("viewer_id <> target_id", name="ck_schedule_permission_not_self"),
        Index("idx_schedule_permissions_viewer_active", "viewer_id", "is_active"),
        Index("idx_schedule_permissions_target", "target_id"),
        Index("idx_schedule_permissions_granted_by", "granted_by_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    viewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    target_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    granted_by_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    granted_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )

    # Relationships
    viewer: Mapped["User"] = relationship(foreign_keys=[viewer_id])
    target: Mapped["User"] = relationship(foreign_keys=[target_id])
    granted_by: Mapped["User | None"] = relationship(foreign_keys=[granted_by_id])
