"""create_passwordless_auth_tables

Revision ID: 3f9a1c2d7e41
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2d7e41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create accounts, organization memberships and the tables owned by the
    passwordless sign-in flow.
    """
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing = set(inspector.get_table_names())

    # Account tables are shared with the rest of the platform; only create them if missing
    if 'users' not in existing:
        op.create_table(
            'users',
            sa.Column('id', sa.UUID(), nullable=False),
            sa.Column('username', sa.String(length=255), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('phone', sa.String(length=16), nullable=True),
            sa.Column('first_name', sa.String(), nullable=True),
            sa.Column('middle_name', sa.String(), nullable=True),
            sa.Column('last_name', sa.String(), nullable=True),
            sa.Column('role', sa.String(length=50), server_default='Customer', nullable=False),
            sa.Column('status', sa.String(length=20), server_default='active', nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
            sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint('id'),
            sa.CheckConstraint('email IS NOT NULL OR phone IS NOT NULL', name='ck_users_has_identity'),
        )
        op.create_index('ix_users_id', 'users', ['id'])
        op.create_index('ix_users_email', 'users', ['email'], unique=True)
        op.create_index('ix_users_phone', 'users', ['phone'], unique=True)

    if 'organizations' not in existing:
        op.create_table(
            'organizations',
            sa.Column('org_id', sa.UUID(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('org_type', sa.String(length=50), nullable=False),
            sa.PrimaryKeyConstraint('org_id'),
        )

    if 'organization_users' not in existing:
        op.create_table(
            'organization_users',
            sa.Column('org_id', sa.UUID(), nullable=False),
            sa.Column('user_id', sa.UUID(), nullable=False),
            sa.Column('org_role', sa.String(length=50), nullable=False),
            sa.PrimaryKeyConstraint('org_id', 'user_id'),
            sa.ForeignKeyConstraint(['org_id'], ['organizations.org_id'], ondelete='CASCADE'),
            sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        )
        op.create_index('ix_organization_users_user_id', 'organization_users', ['user_id'])

    op.create_table(
        'verification_codes',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('actor_type', sa.String(length=5), nullable=False),
        sa.Column('channel_type', sa.String(length=5), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_verification_codes_id', 'verification_codes', ['id'])
    op.create_index(
        'ix_verification_codes_subject_valid',
        'verification_codes',
        ['channel_type', 'subject', 'used', 'expires_at', 'created_at'],
    )
    op.create_index('ix_verification_codes_actor_subject', 'verification_codes', ['actor_type', 'channel_type', 'subject'])
    op.create_index('ix_verification_codes_expires_at', 'verification_codes', ['expires_at'])
    op.create_index('ix_verification_codes_ip_created', 'verification_codes', ['ip_address', 'created_at'])

    op.create_table(
        'rate_limits',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('actor_type', sa.String(length=5), nullable=False),
        sa.Column('channel_type', sa.String(length=5), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=False),
        sa.Column('request_count', sa.Integer(), server_default='1', nullable=False),
        sa.Column('window_start', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('actor_type', 'channel_type', 'ip_address', 'window_start', name='uq_rate_limits_bucket'),
    )
    op.create_index('ix_rate_limits_ip_window', 'rate_limits', ['ip_address', 'window_start'])

    op.create_table(
        'refresh_tokens',
        sa.Column('id', sa.UUID(), nullable=False),
        sa.Column('user_id', sa.UUID(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('revoked', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_refresh_tokens_id', 'refresh_tokens', ['id'])
    op.create_index('ix_refresh_tokens_user_id', 'refresh_tokens', ['user_id'])
    op.create_index('ix_refresh_tokens_token_hash', 'refresh_tokens', ['token_hash'], unique=True)
    op.create_index('ix_refresh_tokens_user_active', 'refresh_tokens', ['user_id', 'revoked'])
    op.create_index('ix_refresh_tokens_expires_at', 'refresh_tokens', ['expires_at'])


def downgrade() -> None:
    """
    Drop the sign-in tables. Account and organization tables are left in place.
    """
    op.drop_index('ix_refresh_tokens_expires_at', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_user_active', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_token_hash', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_user_id', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_id', table_name='refresh_tokens')
    op.drop_table('refresh_tokens')

    op.drop_index('ix_rate_limits_ip_window', table_name='rate_limits')
    op.drop_table('rate_limits')

    op.drop_index('ix_verification_codes_ip_created', table_name='verification_codes')
    op.drop_index('ix_verification_codes_expires_at', table_name='verification_codes')
    op.drop_index('ix_verification_codes_actor_subject', table_name='verification_codes')
    op.drop_index('ix_verification_codes_subject_valid', table_name='verification_codes')
    op.drop_index('ix_verification_codes_id', table_name='verification_codes')
    op.drop_table('verification_codes')
