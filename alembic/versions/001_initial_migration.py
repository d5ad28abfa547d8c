"""Initial migration - admin backend tables and change triggers

Revision ID: 001
Revises: 
Create Date: 2026-10-17 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from bigwin_admin.core.database import WATCHED_TABLES, change_trigger_statements

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CHANGE_CHANNEL = 'admin_changes'


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False, comment='Last modification time'),
    ]


def upgrade() -> None:
    # Create users table
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Unique user identifier'),
        sa.Column('username', sa.String(length=64), nullable=False, comment='Display username'),
        sa.Column('email', sa.String(length=255), nullable=True, comment='Contact email'),
        sa.Column('assigned_admin', sa.String(length=64), nullable=True, comment='Username of the admin responsible for this user'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False),
        *timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_assigned_admin', 'users', ['assigned_admin'])

    # Create admins table
    op.create_table('admins',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, comment='admin or superadmin'),
        sa.Column('api_key_hash', sa.String(length=64), nullable=False, comment='SHA-256 hex digest of the bearer API key'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
        sa.UniqueConstraint('api_key_hash')
    )
    op.create_index('idx_admin_active', 'admins', ['is_active'])

    # Create wallets table
    op.create_table('wallets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False, comment='Owning user'),
        sa.Column('total_balance_usd', sa.Numeric(precision=18, scale=2), nullable=False, comment='Spendable balance in USD'),
        sa.Column('last_updated', sa.DateTime(), nullable=False, comment='Last balance or transaction change'),
        *timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    # Create wallet_transactions table
    op.create_table('wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('game_name', sa.String(length=64), nullable=True),
        sa.Column('asset', sa.String(length=16), nullable=True),
        sa.Column('network', sa.String(length=32), nullable=True),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False, comment='Signed amount, negative holds or debits'),
        sa.Column('requested_amount', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('tips', sa.Numeric(precision=18, scale=2), nullable=False, comment='Tip withheld from a redeem payout'),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('withdrawal_address', sa.String(length=128), nullable=True),
        sa.Column('tx_hash', sa.String(length=128), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id'])
    op.create_index('idx_wallet_tx_type_status', 'wallet_transactions', ['type', 'status'])
    op.create_index(
        'uq_wallet_tx_pending_game_request',
        'wallet_transactions',
        ['wallet_id', 'type', 'game_name'],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND type IN ('game_credit', 'game_withdrawal')")
    )

    # Create game_profiles table
    op.create_table('game_profiles',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('game_name', sa.String(length=64), nullable=False),
        sa.Column('game_id', sa.String(length=128), nullable=True, comment='Login assigned by an admin on activation'),
        sa.Column('game_password', sa.String(length=128), nullable=True),
        sa.Column('profile_status', sa.String(length=20), nullable=False),
        sa.Column('credit_amount', sa.Numeric(precision=18, scale=2), nullable=False, comment='Credit currently loaded in the game'),
        sa.Column('credit_status', sa.String(length=20), nullable=False),
        sa.Column('requested_amount', sa.Numeric(precision=18, scale=2), nullable=False, comment='Amount of the open credit or redeem request'),
        *timestamps(),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'game_name', name='uq_game_profile_user_game')
    )
    op.create_index('ix_game_profiles_user_id', 'game_profiles', ['user_id'])
    op.create_index('idx_game_profile_credit_status', 'game_profiles', ['credit_status'])

    # Change notification triggers for the dashboard watcher
    for statement in change_trigger_statements(CHANGE_CHANNEL):
        op.execute(statement)


def downgrade() -> None:
    for table in WATCHED_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS {table}_admin_change ON {table}")
    op.execute("DROP FUNCTION IF EXISTS notify_admin_change()")

    op.drop_index('idx_game_profile_credit_status', table_name='game_profiles')
    op.drop_index('ix_game_profiles_user_id', table_name='game_profiles')
    op.drop_table('game_profiles')

    op.drop_index('uq_wallet_tx_pending_game_request', table_name='wallet_transactions')
    op.drop_index('idx_wallet_tx_type_status', table_name='wallet_transactions')
    op.drop_index('ix_wallet_transactions_wallet_id', table_name='wallet_transactions')
    op.drop_table('wallet_transactions')

    op.drop_table('wallets')

    op.drop_index('idx_admin_active', table_name='admins')
    op.drop_table('admins')

    op.drop_index('ix_users_assigned_admin', table_name='users')
    op.drop_table('users')
