"""
Month overview: loads the records of one month and hands them to the KPI aggregator.
"""
from sqlalchemy.orm import Session

from app.application.budgets import budgets_for_month
from app.application.cards import get_consumptions_closing_in, get_statements_due_in
from app.application.fixed_expenses import fixed_expenses_for_month
from app.application.incomes import incomes_for_month
from app.application.kpis import MonthlyKpiSnapshot, compute_monthly_kpis
from app.domain.installments import expand_recurring_consumptions
from app.domain.period import add_months
from app.infrastructure.db.models import (
    CardConsumptionModel, CreditCardModel, DebtModel, IncomeModel, StatementModel,
)
from app.infrastructure.store.repository import RecordRepository


def build_month_kpis(db: Session, year_month: str, fx_rate: float | None = None) -> MonthlyKpiSnapshot:
    cards = RecordRepository(db, CreditCardModel).get_all()
    recurring = RecordRepository(db, CardConsumptionModel).find_by(is_recurring=True)

    consumptions = list(get_consumptions_closing_in(db, year_month))
    consumptions.extend(expand_recurring_consumptions(recurring, cards, year_month))

    return compute_monthly_kpis(
        year_month,
        incomes_for_month=incomes_for_month(db, year_month),
        all_incomes=RecordRepository(db, IncomeModel).get_all(),
        fixed_expenses=fixed_expenses_for_month(db, year_month),
        consumptions_closing=consumptions,
        statements_due_next_month=get_statements_due_in(db, add_months(year_month, 1)),
        statements_due_this_month=get_statements_due_in(db, year_month),
        statements=RecordRepository(db, StatementModel).get_all(),
        debts=RecordRepository(db, DebtModel).get_all(),
        budgets=budgets_for_month(db, year_month),
        fx_rate=fx_rate,
    )
