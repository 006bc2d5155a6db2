"""SQLAlchemy ORM models."""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Index, Integer, String, Uuid, true
from sqlalchemy.orm import Mapped, mapped_column

from callwatch.db.base import Base, TimestampMixin
from callwatch.db.enums import Role


class User(TimestampMixin, Base):
    """
    A person who can sign in.

    Role lives on the user (admin, user, caller). Admins see every schedule;
    everyone else sees their own schedule plus schedules granted to them.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_active", "role", "is_active"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), default=Role.USER.value, server_default=Role.USER.value, nullable=False
    )
    token_version: Mapped[int] = mapped_column(
        Integer, default=1, server_default="1", nullable=False
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value
