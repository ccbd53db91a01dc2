"""Initial schema - roles, accounts, refresh tokens

Revision ID: 0001
Revises: 
Create Date: 2026-10-19

"""
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Roles table
    roles = op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), unique=True, nullable=False),
        sa.Column('description', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Accounts table
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False, index=True),
        sa.Column('email', sa.String(100), nullable=False, index=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(50), nullable=False),
        sa.Column('last_name', sa.String(50), nullable=False),
        sa.Column('profile_picture', sa.String(2048), nullable=True),
        sa.Column('role_id', sa.Integer(), sa.ForeignKey('roles.id', ondelete='RESTRICT'), nullable=False, index=True),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Username/email unique among active accounts, case-insensitive
    active_only = sa.text('is_active = true')
    op.create_index(
        'uq_accounts_username_active',
        'accounts',
        [sa.text('lower(username)')],
        unique=True,
        sqlite_where=active_only,
        postgresql_where=active_only,
    )
    op.create_index(
        'uq_accounts_email_active',
        'accounts',
        [sa.text('lower(email)')],
        unique=True,
        sqlite_where=active_only,
        postgresql_where=active_only,
    )

    # Refresh tokens table
    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('account_id', sa.Uuid(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('token_hash', sa.String(64), unique=True, nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('invalidated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # Built-in roles
    now = datetime.now(timezone.utc)
    op.bulk_insert(
        roles,
        [
            {'name': 'Admin', 'description': 'System administrator', 'is_active': True, 'created_at': now, 'updated_at': now},
            {'name': 'User', 'description': 'Regular portal user', 'is_active': True, 'created_at': now, 'updated_at': now},
        ],
    )


def downgrade() -> None:
    op.drop_table('refresh_tokens')
    op.drop_index('uq_accounts_email_active', table_name='accounts')
    op.drop_index('uq_accounts_username_active', table_name='accounts')
    op.drop_table('accounts')
    op.drop_table('roles')
