"""Create commission rule, ledger and payout tables

Revision ID: create_revsplit_tables
Revises:
Create Date: 2026-10-17

Creates commission_rules, payouts and ledger_entries. The orders, order_items,
skus and campaigns tables belong to the ingestion and catalog services and are
expected to exist already.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'create_revsplit_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create commission_rules, payouts and ledger_entries."""

    op.create_table(
        'commission_rules',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(200), nullable=False, server_default=''),
        sa.Column('scope_type', sa.String(50), nullable=False, comment='CAMPAIGN, SKU, PRODUCT, DEFAULT'),
        sa.Column('scope_id', postgresql.UUID(as_uuid=True), nullable=True,
                  comment='Campaign/SKU/product id, NULL for DEFAULT'),
        sa.Column('creator_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('platform_fee_percent', sa.Numeric(5, 2), nullable=False),
        sa.Column('min_commission', sa.Numeric(14, 2), nullable=True),
        sa.Column('max_commission', sa.Numeric(14, 2), nullable=True),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True, comment='NULL = open ended'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_commission_rules_organization_id', 'commission_rules', ['organization_id'])
    op.create_index(
        'ix_commission_rules_lookup',
        'commission_rules',
        ['organization_id', 'scope_type', 'scope_id', 'is_active'],
    )

    op.create_table(
        'payouts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('recipient_type', sa.String(50), nullable=False, server_default='CREATOR'),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False, comment='Gross sum of settled entries'),
        sa.Column('fee', sa.Numeric(14, 2), nullable=False, server_default='0'),
        sa.Column('net_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('status', sa.String(50), nullable=False, server_default='PROCESSING'),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('processed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('provider_reference', sa.String(200), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_payouts_organization_id', 'payouts', ['organization_id'])
    op.create_index('ix_payouts_recipient_status', 'payouts', ['recipient_id', 'status'])

    op.create_table(
        'ledger_entries',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('organization_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('order_item_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('payout_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('payouts.id'), nullable=True,
                  comment='Claiming/settling payout'),
        sa.Column('entry_type', sa.String(50), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default='RESERVED'),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=True, comment='Set on COMMISSION entries'),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('cleared_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_ledger_entries_order_item_id', 'ledger_entries', ['order_item_id'])
    op.create_index('ix_ledger_entries_payout_id', 'ledger_entries', ['payout_id'])
    op.create_index('ix_ledger_entries_creator_id', 'ledger_entries', ['creator_id'])
    op.create_index('ix_ledger_entries_order_status', 'ledger_entries', ['order_id', 'status'])
    op.create_index('ix_ledger_entries_type_status', 'ledger_entries', ['entry_type', 'status'])
    op.create_index('ix_ledger_entries_org_created', 'ledger_entries', ['organization_id', 'created_at'])

    # FIFO payout feed: cleared, unclaimed commissions of a creator
    op.execute("""
        CREATE INDEX ix_ledger_entries_payable_commissions
        ON ledger_entries (creator_id, created_at)
        WHERE entry_type = 'COMMISSION' AND status = 'CLEARED' AND payout_id IS NULL
    """)

    # At most one live entry of each type per order item
    op.execute("""
        CREATE UNIQUE INDEX uq_ledger_entries_live_split
        ON ledger_entries (order_item_id, entry_type)
        WHERE status <> 'CANCELLED'
    """)


def downgrade() -> None:
    """Drop the engine tables."""

    op.execute("DROP INDEX IF EXISTS uq_ledger_entries_live_split")
    op.execute("DROP INDEX IF EXISTS ix_ledger_entries_payable_commissions")
    op.drop_table('ledger_entries')
    op.drop_table('payouts')
    op.drop_table('commission_rules')
