"""initial rbac tables

Revision ID: 0001_initial_rbac
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_rbac'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    op.create_table('permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=100), nullable=True, server_default='General'),
        *_timestamps()
    )
    op.create_index('ix_permissions_name', 'permissions', ['name'])
    op.create_index('ix_permissions_category', 'permissions', ['category'])

    op.create_table('roles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False, unique=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('redirect_url', sa.String(length=255), nullable=True),
        sa.Column('is_super_admin', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps()
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=64)),
        sa.Column('last_name', sa.String(length=64)),
        sa.Column('email', sa.String(length=128), unique=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id'), nullable=True),
        sa.Column('last_login', sa.DateTime(timezone=True)),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_email', 'users', ['email'])
    op.create_index('ix_users_role_id', 'users', ['role_id'])

    op.create_table('role_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission_id', sa.Integer(), sa.ForeignKey('permissions.id', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission')
    )

    op.create_table('menu_sections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('section_key', sa.String(length=64), nullable=False, unique=True),
        sa.Column('section_name', sa.String(length=128), nullable=False),
        sa.Column('section_icon', sa.String(length=64)),
        sa.Column('section_description', sa.Text()),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_menu_sections_section_key', 'menu_sections', ['section_key'])

    op.create_table('role_menu_access',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('menu_section_id', sa.Integer(), sa.ForeignKey('menu_sections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('is_priority', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.UniqueConstraint('role_id', 'menu_section_id', name='uq_role_menu_section')
    )

    op.create_table('activity_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('action_code', sa.String(length=64)),
        sa.Column('entity', sa.String(length=64)),
        sa.Column('entity_id', sa.String(length=64)),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))
    )
    op.create_index('ix_activity_logs_user_id', 'activity_logs', ['user_id'])
    op.create_index('ix_activity_logs_action_code', 'activity_logs', ['action_code'])


def downgrade():
    for tbl in ['activity_logs', 'role_menu_access', 'menu_sections', 'role_permissions', 'users', 'roles', 'permissions']:
        op.drop_table(tbl)
