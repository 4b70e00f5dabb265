"""Initial migration

Revision ID: 001_initial
Revises: 
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'gold_price',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('source', sa.String(length=512), nullable=True),
        sa.Column('currency', sa.String(length=10), nullable=False, server_default='USD'),
        sa.Column('time_period', sa.String(length=20), nullable=True),
        # Multi-source fields
        sa.Column('ny_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('xau_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('sh_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('price > 0', name='ck_gold_price_positive'),
    )

    op.create_index('idx_gold_price_created_at', 'gold_price', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_gold_price_created_at', table_name='gold_price')
    op.drop_table('gold_price')
