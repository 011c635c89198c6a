"""
Monthly KPI snapshot: Plan vs Actual for one month, in two currencies.

Pure read-layer: takes already-loaded records, returns a snapshot. No I/O.

Policies:
- incomes: estimated = rows scheduled for the month; collected = any row
  (whatever its month) whose effective date falls in the month
- cards accrued: consumptions whose *closing* month is the month, split by
  currency; the foreign part is valued only with a usable FX rate
- cards due this/next month: stored statement totals (not currency split)
- Plan commitments = cards accrued + debt installments (accrual view, so a
  statement is never counted twice across months)
- Actual commitments = statements paid in the month + debt payments dated in it
- ratios are percentages of Plan income, 0 when Plan income is 0
"""
from dataclasses import dataclass, asdict

from app.config import get_settings
from app.domain.debt import installment_for_month, payments_in_month
from app.domain.period import is_date_in_year_month
from app.domain.recurrence import execution_for_month, income_effective_date

STATEMENT_PAID = "PAID"


@dataclass(frozen=True)
class MonthlyKpiSnapshot:
    year_month: str

    # Legacy fields (read by the original month overview)
    incomes_estimated: float
    incomes_collected: float
    expenses_estimated: float
    expenses_paid: float
    cards_accrued: float
    cards_due_next_month: float
    cards_paid: float
    commitments_estimated: float
    commitments_paid: float
    savings_estimated: float
    savings_actual: float

    # Budgets
    budgets_estimated: float
    budgets_spent: float

    # Cards due this month
    cards_due_this_month: float

    # Debts
    debt_installments_this_month: float
    debt_paid_this_month: float

    # Combined Plan / Actual totals
    total_expenses_plan: float
    total_expenses_real: float
    total_commitments_plan: float
    total_commitments_real: float

    # Ratios (0..100)
    coverage_ratio: float
    fixed_expense_ratio: float
    debt_load_ratio: float
    available_to_budget: float

    # Currency split of accrued card spend
    cards_accrued_ars: float
    cards_accrued_usd: float

    def to_dict(self) -> dict:
        return asdict(self)


def paid_statements_in_month(statements, year_month: str) -> float:
    return sum(
        (s.paid_amount if s.paid_amount is not None else s.total_amount) or 0
        for s in statements
        if s.status == STATEMENT_PAID and is_date_in_year_month(s.paid_at, year_month)
    )


def _ratio(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0


def compute_monthly_kpis(
    year_month: str,
    incomes_for_month,
    all_incomes,
    fixed_expenses,
    consumptions_closing,
    statements_due_next_month,
    statements_due_this_month,
    statements,
    debts,
    budgets,
    fx_rate: float | None = None,
) -> MonthlyKpiSnapshot:
    cfg = get_settings()
    local_ccy = cfg.LOCAL_CURRENCY
    foreign_ccy = cfg.FOREIGN_CURRENCY

    # Incomes
    incomes_estimated = sum(i.amount or 0 for i in incomes_for_month)
    incomes_collected = sum(
        i.amount or 0 for i in all_incomes
        if is_date_in_year_month(income_effective_date(i), year_month)
    )

    # Fixed expenses
    expenses_estimated = sum(e.amount or 0 for e in fixed_expenses)
    expenses_paid = 0
    for e in fixed_expenses:
        execution = execution_for_month(e, year_month)
        if execution:
            expenses_paid += execution.get("amount") or 0

    # Budgets
    budgets_estimated = sum(b.estimated_amount or 0 for b in budgets)
    budgets_spent = sum(b.spent_amount or 0 for b in budgets)

    # Cards: accrued by closing month, split by currency
    cards_accrued_ars = sum(
        c.amount or 0 for c in consumptions_closing
        if not c.currency or c.currency == local_ccy
    )
    cards_accrued_usd = sum(c.amount or 0 for c in consumptions_closing if c.currency == foreign_ccy)

    # Without a usable rate the foreign part is left out of the blended total
    if cards_accrued_usd > 0 and fx_rate is not None and fx_rate > 0:
        cards_accrued_usd_valued = cards_accrued_usd * fx_rate
    else:
        cards_accrued_usd_valued = 0
    cards_accrued = cards_accrued_ars + cards_accrued_usd_valued

    cards_due_next_month = sum(s.total_amount or 0 for s in statements_due_next_month)
    cards_due_this_month = sum(s.total_amount or 0 for s in statements_due_this_month)
    cards_paid = paid_statements_in_month(statements, year_month)

    # Debts
    debt_installments = sum(installment_for_month(d, year_month) for d in debts)
    debt_paid = sum(payments_in_month(d, year_month) for d in debts)

    # Legacy commitment fields
    commitments_estimated = debt_installments + cards_due_next_month
    commitments_paid = debt_paid + cards_paid

    total_expenses_plan = expenses_estimated + budgets_estimated
    total_expenses_real = expenses_paid + budgets_spent
    total_commitments_plan = cards_accrued + debt_installments
    total_commitments_real = cards_paid + debt_paid

    savings_estimated = incomes_estimated - total_expenses_plan - total_commitments_plan
    savings_actual = incomes_collected - total_expenses_real - total_commitments_real

    return MonthlyKpiSnapshot(
        year_month=year_month,
        incomes_estimated=incomes_estimated,
        incomes_collected=incomes_collected,
        expenses_estimated=expenses_estimated,
        expenses_paid=expenses_paid,
        cards_accrued=cards_accrued,
        cards_due_next_month=cards_due_next_month,
        cards_paid=cards_paid,
        commitments_estimated=commitments_estimated,
        commitments_paid=commitments_paid,
        savings_estimated=savings_estimated,
        savings_actual=savings_actual,
        budgets_estimated=budgets_estimated,
        budgets_spent=budgets_spent,
        cards_due_this_month=cards_due_this_month,
        debt_installments_this_month=debt_installments,
        debt_paid_this_month=debt_paid,
        total_expenses_plan=total_expenses_plan,
        total_expenses_real=total_expenses_real,
        total_commitments_plan=total_commitments_plan,
        total_commitments_real=total_commitments_real,
        coverage_ratio=_ratio(total_expenses_plan + total_commitments_plan, incomes_estimated),
        fixed_expense_ratio=_ratio(expenses_estimated, incomes_estimated),
        debt_load_ratio=_ratio(total_commitments_plan, incomes_estimated),
        available_to_budget=(
            incomes_estimated - expenses_estimated - total_commitments_plan - budgets_estimated
        ),
        cards_accrued_ars=cards_accrued_ars,
        cards_accrued_usd=cards_accrued_usd,
    )
