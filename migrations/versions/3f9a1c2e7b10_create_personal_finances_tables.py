"""create personal finances tables

Revision ID: 3f9a1c2e7b10
Revises:
Create Date: 2026-03-02 10:14:52.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9a1c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # 1. app_settings (migration markers, legacy blob, daily refresh date)
    op.create_table(
        'app_settings',
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('value', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('key')
    )

    # 2. pf_credit_cards
    op.create_table(
        'pf_credit_cards',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('bank', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('last4', sa.String(length=4), nullable=False, server_default='0000'),
        sa.Column('network', sa.String(length=32), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='ARS'),
        sa.Column('closing_day', sa.SmallInteger(), nullable=False),
        sa.Column('due_day', sa.SmallInteger(), nullable=False),
        sa.Column('default_account_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    # 3. pf_card_consumptions
    op.create_table(
        'pf_card_consumptions',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('card_id', sa.String(length=64), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='ARS'),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('closing_year_month', sa.String(length=7), nullable=True),
        sa.Column('posted_year_month', sa.String(length=7), nullable=True),
        sa.Column('installment_total', sa.Integer(), nullable=True),
        sa.Column('installment_index', sa.Integer(), nullable=True),
        sa.Column('category', sa.String(length=64), nullable=True),
        sa.Column('is_recurring', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('recurring_until', sa.Date(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['card_id'], ['pf_credit_cards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pf_card_consumptions_card_id', 'pf_card_consumptions', ['card_id'])
    op.create_index('ix_pf_card_consumptions_closing_year_month', 'pf_card_consumptions', ['closing_year_month'])
    op.create_index('ix_pf_card_consumptions_posted_year_month', 'pf_card_consumptions', ['posted_year_month'])
    op.create_index('ix_pf_consumption_card_closing', 'pf_card_consumptions', ['card_id', 'closing_year_month'])

    # 4. pf_statements
    op.create_table(
        'pf_statements',
        sa.Column('id', sa.String(length=128), nullable=False),
        sa.Column('card_id', sa.String(length=64), nullable=False),
        sa.Column('closing_year_month', sa.String(length=7), nullable=False),
        sa.Column('due_year_month', sa.String(length=7), nullable=False),
        sa.Column('close_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='UNPAID'),
        sa.Column('paid_at', sa.Date(), nullable=True),
        sa.Column('paid_amount', sa.Float(), nullable=True),
        sa.Column('movement_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['card_id'], ['pf_credit_cards.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('card_id', 'closing_year_month', name='uq_pf_statement_card_month')
    )
    op.create_index('ix_pf_statements_card_id', 'pf_statements', ['card_id'])
    op.create_index('ix_pf_statements_closing_year_month', 'pf_statements', ['closing_year_month'])
    op.create_index('ix_pf_statements_due_year_month', 'pf_statements', ['due_year_month'])

    # 5. pf_debts
    op.create_table(
        'pf_debts',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('counterparty', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('total_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('remaining_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('installments_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('installment_amount', sa.Float(), nullable=True),
        sa.Column('monthly_value', sa.Float(), nullable=False, server_default='0'),
        sa.Column('current_installment', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('due_day', sa.SmallInteger(), nullable=True),
        sa.Column('start_year_month', sa.String(length=7), nullable=True),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='otro'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('interest_mode', sa.String(length=16), nullable=False, server_default='none'),
        sa.Column('payments', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('prepayments', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('default_account_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pf_debts_start_year_month', 'pf_debts', ['start_year_month'])

    # 6. pf_fixed_expenses
    op.create_table(
        'pf_fixed_expenses',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('due_day', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='service'),
        sa.Column('recurrence', sa.String(length=16), nullable=False, server_default='MONTHLY'),
        sa.Column('start_year_month', sa.String(length=7), nullable=False),
        sa.Column('end_year_month', sa.String(length=7), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('auto_debit', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('default_account_id', sa.String(length=64), nullable=True),
        sa.Column('executions', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    # 7. pf_incomes
    op.create_table(
        'pf_incomes',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('date_expected', sa.SmallInteger(), nullable=False, server_default='1'),
        sa.Column('year_month', sa.String(length=7), nullable=False),
        sa.Column('is_guaranteed', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('effective_date', sa.Date(), nullable=True),
        sa.Column('account_id', sa.String(length=64), nullable=True),
        sa.Column('movement_id', sa.String(length=64), nullable=True),
        sa.Column('default_account_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pf_incomes_year_month', 'pf_incomes', ['year_month'])

    # 8. pf_budgets
    op.create_table(
        'pf_budgets',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('estimated_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('spent_amount', sa.Float(), nullable=False, server_default='0'),
        sa.Column('year_month', sa.String(length=7), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_pf_budgets_year_month', 'pf_budgets', ['year_month'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_pf_budgets_year_month', table_name='pf_budgets')
    op.drop_table('pf_budgets')
    op.drop_index('ix_pf_incomes_year_month', table_name='pf_incomes')
    op.drop_table('pf_incomes')
    op.drop_table('pf_fixed_expenses')
    op.drop_index('ix_pf_debts_start_year_month', table_name='pf_debts')
    op.drop_table('pf_debts')
    op.drop_index('ix_pf_statements_due_year_month', table_name='pf_statements')
    op.drop_index('ix_pf_statements_closing_year_month', table_name='pf_statements')
    op.drop_index('ix_pf_statements_card_id', table_name='pf_statements')
    op.drop_table('pf_statements')
    op.drop_index('ix_pf_consumption_card_closing', table_name='pf_card_consumptions')
    op.drop_index('ix_pf_card_consumptions_posted_year_month', table_name='pf_card_consumptions')
    op.drop_index('ix_pf_card_consumptions_closing_year_month', table_name='pf_card_consumptions')
    op.drop_index('ix_pf_card_consumptions_card_id', table_name='pf_card_consumptions')
    op.drop_table('pf_card_consumptions')
    op.drop_table('pf_credit_cards')
    op.drop_table('app_settings')
