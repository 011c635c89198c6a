"""
SQLAlchemy ORM models (personal finances tables + app settings)
"""
from datetime import date as date_type, datetime
from typing import Any
from sqlalchemy import (
    String, Integer, SmallInteger, Float, Boolean, Date, TIMESTAMP, Text,
    ForeignKey, UniqueConstraint, Index, func,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from app.infrastructure.db.session import Base


class AppSetting(Base):
    """
    Small process-wide key/value store.

    Holds migration markers ("<namespace>.v3.migrated"), the legacy flat
    store blob ("<namespace>.v2") and the daily-refresh last run date.
    """
    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONB, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ============================================================================
# Credit cards
# ============================================================================


class CreditCardModel(Base):
    __tablename__ = "pf_credit_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    bank: Mapped[str] = mapped_column(String(128), nullable=False, server_default="")
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    last4: Mapped[str] = mapped_column(String(4), nullable=False, server_default="0000")
    network: Mapped[str | None] = mapped_column(String(32), nullable=True)  # VISA, MASTERCARD, AMEX
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS", server_default="ARS")
    closing_day: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1..31
    due_day: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1..31
    default_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)


class CardConsumptionModel(Base):
    """
    One posting on a card: a single purchase or one installment of it.

    closing_year_month: statement that accrues the spend ("devengado")
    posted_year_month:  statement in which it falls due
    """
    __tablename__ = "pf_card_consumptions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    card_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("pf_credit_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ARS", server_default="ARS")
    purchase_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    closing_year_month: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)
    posted_year_month: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)

    installment_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    installment_index: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 1-based
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Monthly repetition of the same purchase (subscriptions charged to the card)
    is_recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    recurring_until: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_pf_consumption_card_closing", "card_id", "closing_year_month"),
    )


class StatementModel(Base):
    """
    Cached aggregate of one card's consumptions for one closing month.

    total_amount is always recomputed from scratch (sum of consumptions),
    never adjusted by deltas. It is not split by currency.
    """
    __tablename__ = "pf_statements"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    card_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("pf_credit_cards.id", ondelete="CASCADE"), nullable=False, index=True
    )
    closing_year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    due_year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    close_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    due_date: Mapped[date_type] = mapped_column(Date, nullable=False)
    period_start: Mapped[date_type] = mapped_column(Date, nullable=False)
    period_end: Mapped[date_type] = mapped_column(Date, nullable=False)
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="UNPAID", server_default="UNPAID")
    paid_at: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    paid_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    movement_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("card_id", "closing_year_month", name="uq_pf_statement_card_month"),
    )


# ============================================================================
# Debts, fixed expenses, incomes, budgets
# ============================================================================


class DebtModel(Base):
    __tablename__ = "pf_debts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    counterparty: Mapped[str] = mapped_column(String(255), nullable=False, server_default="")
    total_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    remaining_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    installments_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    installment_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    monthly_value: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    # Cached convenience field; the schedule derives from start_year_month only
    current_installment: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    due_day: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    start_year_month: Mapped[str | None] = mapped_column(String(7), nullable=True, index=True)

    # credit_card, banco, profesional, familiar, comercio, otro
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="otro", server_default="otro")
    # active, overdue, paid, completed
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    interest_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="none", server_default="none")

    # [{"date": "YYYY-MM-DD", "amount": 200.0, "installment_index": 2, "movement_id": "..."}]
    payments: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    # [{"date": "YYYY-MM-DD", "amount": 30000.0, "strategy": "reduce_count"}]
    prepayments: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")

    default_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class FixedExpenseModel(Base):
    __tablename__ = "pf_fixed_expenses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    due_day: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1, server_default="1")
    # service, subscription, education, housing, insurance
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="service", server_default="service")
    recurrence: Mapped[str] = mapped_column(String(16), nullable=False, default="MONTHLY", server_default="MONTHLY")
    start_year_month: Mapped[str] = mapped_column(String(7), nullable=False)
    end_year_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    auto_debit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    default_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # [{"year_month": "YYYY-MM", "effective_date": "YYYY-MM-DD", "amount": 300.0,
    #   "account_id": "...", "movement_id": "..."}]
    executions: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class IncomeModel(Base):
    """One expected income for exactly one month (recurring incomes are separate rows)."""
    __tablename__ = "pf_incomes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    date_expected: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1, server_default="1")
    year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    is_guaranteed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", server_default="pending")
    effective_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    movement_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class BudgetCategoryModel(Base):
    __tablename__ = "pf_budgets"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    estimated_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    spent_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0, server_default="0")
    year_month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
