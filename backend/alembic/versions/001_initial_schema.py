"""Initial schema

This migration creates the trading simulator schema.

Tables:
    - users: Accounts holding a virtual cash balance
    - transactions: Append-only ledger of accepted BUY/SELL orders

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ==========================================================================
    # USERS
    # ==========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('username', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('cash_balance', sa.Numeric(18, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )

    # ==========================================================================
    # TRANSACTIONS (append-only ledger)
    # ==========================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('symbol', sa.String(), nullable=False, index=True),
        sa.Column('transaction_type', sa.Enum('BUY', 'SELL', name='transactiontype'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(18, 8), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        'ix_transaction_user_timestamp_id',
        'transactions',
        ['user_id', 'timestamp', 'id'],
    )


def downgrade() -> None:
    op.drop_index('ix_transaction_user_timestamp_id', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('users')

    # Named enum types only exist on PostgreSQL
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TYPE IF EXISTS transactiontype')
