"""Schedule permission schemas - Pydantic models for the admin grant API."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


# =============================================================================
# Requests
# =============================================================================

class GrantRequest(BaseModel):
    """Grant a viewer access to one or more target schedules."""
    viewer_id: UUID
    target_user_ids: list[UUID] = Field(default_factory=list, max_length=200)
    target_user_id: UUID | None = None  # Single-target shorthand

    @model_validator(mode="after")
    def _collect_targets(self) -> "GrantRequest":
        if self.target_user_id and self.target_user_id not in self.target_user_ids:
            self.target_user_ids.append(self.target_user_id)
        if not self.target_user_ids:
            raise ValueError("At least one target user is required")
        return self


class PermissionIdRequest(BaseModel):
    """Revoke or restore a grant by id."""
    permission_id: UUID


# =============================================================================
# Responses
# =============================================================================

class UserSummary(BaseModel):
    """Minimal user info for the grant UI."""
    id: UUID
    email: str
    display_name: str
    role: str


class PermissionRead(BaseModel):
    """A grant row with both ends resolved."""
    id: UUID
    viewer_id: UUID
    target_id: UUID
    granted_by_id: UUID | None
    granted_at: datetime
    is_active: bool
    viewer: UserSummary
    target: UserSummary
    granted_by: UserSummary | None = None


class PermissionStats(BaseModel):
    total: int
    active: int
    revoked: int
    viewers_with_access: int


class PermissionListResponse(BaseModel):
    items: list[PermissionRead]
    stats: PermissionStats


class GrantFailureRead(BaseModel):
    target_user_id: UUID
    code: str
    error: str


class GrantResultRead(BaseModel):
    """Per-target outcome of a grant batch."""
    message: str
    viewer_id: UUID
    successful: list[UUID]
    created: list[UUID]
    restored: list[UUID]
    already_exists: list[UUID]
    failed: list[GrantFailureRead]


class PermissionChangeResponse(BaseModel):
    message: str
    permission: PermissionRead
