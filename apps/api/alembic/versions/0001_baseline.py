"""Baseline migration - users, schedule permissions, calls

Revision ID: 0001_baseline
Revises:
Create Date: 2026-10-18

Creates the three tables behind schedule permissions and call reminders.
Column types are portable (PostgreSQL in production, SQLite in tests).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create users, schedule_permissions and calls."""

    # ==========================================================================
    # Users
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), server_default='user', nullable=False),
        sa.Column('token_version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
    )
    op.create_index('idx_users_role_active', 'users', ['role', 'is_active'])

    # ==========================================================================
    # Schedule permissions (viewer may see target's schedule)
    # ==========================================================================
    op.create_table(
        'schedule_permissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('viewer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('target_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('granted_by_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('viewer_id', 'target_id', name='uq_schedule_permission_pair'),
        sa.CheckConstraint('viewer_id <> target_id', name='ck_schedule_permission_not_self'),
    )
    op.create_index('idx_schedule_permissions_viewer_active', 'schedule_permissions', ['viewer_id', 'is_active'])
    op.create_index('idx_schedule_permissions_target', 'schedule_permissions', ['target_id'])
    op.create_index('idx_schedule_permissions_granted_by', 'schedule_permissions', ['granted_by_id'])

    # ==========================================================================
    # Calls
    # ==========================================================================
    op.create_table(
        'calls',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_by_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('contact_name', sa.String(100), nullable=False),
        sa.Column('company', sa.String(100), nullable=True),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('email', sa.String(100), nullable=True),
        sa.Column('call_type', sa.String(20), nullable=False),
        sa.Column('scheduled_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('priority', sa.String(10), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('preparation_notes', sa.Text(), nullable=True),
        sa.Column('outcome_notes', sa.Text(), nullable=True),
        sa.Column('failed_reason', sa.String(255), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('duration_minutes > 0', name='ck_calls_positive_duration'),
    )
    op.create_index('idx_calls_owner_time', 'calls', ['owner_id', 'scheduled_time'])
    op.create_index('idx_calls_status', 'calls', ['status'])
    op.create_index('idx_calls_scheduled_time', 'calls', ['scheduled_time'])


def downgrade() -> None:
    op.drop_table('calls')
    op.drop_table('schedule_permissions')
    op.drop_table('users')
