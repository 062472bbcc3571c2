"""Initial schema with profiles, levels, access requests, grants and notifications.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create profiles table (enums will be created automatically)
    op.create_table(
        'profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('full_name', sa.String(255)),
        sa.Column('email', sa.String(255), unique=True),
        sa.Column('role', sa.Enum('student', 'teacher', 'admin', name='userrole'), nullable=False, server_default='student'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_profiles_role', 'profiles', ['role'])

    # Create levels table
    op.create_table(
        'levels',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('level_number', sa.Integer, nullable=False, server_default='1'),
        sa.Column('access_policy', sa.Enum('public', 'restricted', name='accesspolicy'), nullable=False, server_default='restricted'),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )

    # Create level_access_requests table
    op.create_table(
        'level_access_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('levels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('message', sa.Text),
        sa.Column('status', sa.Enum('pending', 'approved', 'rejected', name='accessrequeststatus'), nullable=False, server_default='pending'),
        sa.Column('feedback', sa.Text),
        sa.Column('reviewed_at', sa.DateTime),
        sa.Column('reviewed_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_level_access_requests_user', 'level_access_requests', ['user_id'])
    op.create_index('idx_level_access_requests_level', 'level_access_requests', ['level_id'])
    op.create_index('idx_level_access_requests_status', 'level_access_requests', ['status'])
    op.create_index('idx_level_access_requests_created_at', 'level_access_requests', ['created_at'], postgresql_ops={'created_at': 'DESC'})
    # At most one pending request per (user, level)
    op.create_index(
        'uq_level_access_requests_pending',
        'level_access_requests',
        ['user_id', 'level_id'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )

    # Create level_access (grants) table
    op.create_table(
        'level_access',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('level_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('levels.id', ondelete='CASCADE'), nullable=False),
        sa.Column('granted_by', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='SET NULL')),
        sa.Column('granted_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('expires_at', sa.DateTime),
        sa.Column('reason', sa.String(100), nullable=False, server_default='manual'),
        sa.UniqueConstraint('user_id', 'level_id', name='uq_level_access_user_level'),
    )
    op.create_index('idx_level_access_user', 'level_access', ['user_id'])
    op.create_index('idx_level_access_level', 'level_access', ['level_id'])

    # Create notifications table
    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('profiles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.Enum('lesson', 'achievement', 'reminder', 'announcement', 'assignment', name='notificationtype'), nullable=False, server_default='announcement'),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('data', postgresql.JSONB),
        sa.Column('read', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('idx_notifications_user', 'notifications', ['user_id'])
    op.create_index('idx_notifications_read', 'notifications', ['read'])
    op.create_index('idx_notifications_created_at', 'notifications', ['created_at'], postgresql_ops={'created_at': 'DESC'})


def downgrade() -> None:
    # Drop tables
    op.drop_table('notifications')
    op.drop_table('level_access')
    op.drop_table('level_access_requests')
    op.drop_table('levels')
    op.drop_table('profiles')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS notificationtype')
    op.execute('DROP TYPE IF EXISTS accessrequeststatus')
    op.execute('DROP TYPE IF EXISTS accesspolicy')
    op.execute('DROP TYPE IF EXISTS userrole')
