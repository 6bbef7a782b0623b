"""initial schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema - create all tables."""
    # Create cart_items table
    op.create_table('cart_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('cart_id', sa.String(length=64), nullable=False),
        sa.Column('item_id', sa.String(length=128), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('cart_id', 'item_id', name='uq_cart_items_cart_item')
    )
    op.create_index(op.f('ix_cart_items_cart_id'), 'cart_items', ['cart_id'], unique=False)

    # Create cart_snapshots table
    op.create_table('cart_snapshots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('cart_id', sa.String(length=64), nullable=False),
        sa.Column('lines', sa.JSON(), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cart_snapshots_cart_id'), 'cart_snapshots', ['cart_id'], unique=False)

    # Create payment_intents table
    op.create_table('payment_intents',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('cart_id', sa.String(length=64), nullable=False),
        sa.Column('provider', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('provider_ref', sa.String(length=128), nullable=True),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('cart_snapshot_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('settled_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['cart_snapshot_id'], ['cart_snapshots.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_ref')
    )
    op.create_index('ix_payment_intents_cart_status', 'payment_intents', ['cart_id', 'status'], unique=False)
    op.create_index('ix_payment_intents_status_created', 'payment_intents', ['status', 'created_at'], unique=False)
    op.create_index('ix_payment_intents_status_settled', 'payment_intents', ['status', 'settled_at'], unique=False)

    # Create webhook_events table
    op.create_table('webhook_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('provider', sa.String(length=16), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_webhook_events_provider'), 'webhook_events', ['provider'], unique=False)


def downgrade() -> None:
    """Downgrade schema - drop all tables."""
    op.drop_index(op.f('ix_webhook_events_provider'), table_name='webhook_events')
    op.drop_table('webhook_events')
    op.drop_index('ix_payment_intents_status_settled', table_name='payment_intents')
    op.drop_index('ix_payment_intents_status_created', table_name='payment_intents')
    op.drop_index('ix_payment_intents_cart_status', table_name='payment_intents')
    op.drop_table('payment_intents')
    op.drop_index(op.f('ix_cart_snapshots_cart_id'), table_name='cart_snapshots')
    op.drop_table('cart_snapshots')
    op.drop_index(op.f('ix_cart_items_cart_id'), table_name='cart_items')
    op.drop_table('cart_items')
