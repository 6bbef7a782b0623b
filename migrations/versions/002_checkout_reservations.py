"""checkout reservations and one pending intent per cart

Revision ID: 002_checkout_reservations
Revises: 001_initial_schema
Create Date: 2026-10-19 16:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_checkout_reservations'
down_revision: Union[str, Sequence[str], None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('checkout_reservations',
        sa.Column('cart_id', sa.String(length=64), nullable=False),
        sa.Column('intent_id', sa.String(length=36), nullable=False),
        sa.Column('reserved_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('cart_id')
    )
    op.create_index(
        'uq_payment_intents_cart_pending',
        'payment_intents',
        ['cart_id'],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('uq_payment_intents_cart_pending', table_name='payment_intents')
    op.drop_table('checkout_reservations')
