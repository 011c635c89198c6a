"""
Upcoming maturities: the next things to pay, soonest first.

Covers open debts, fixed expenses not yet executed this month and unpaid
card statements due this month. Overdue debts always come first; items whose
due day already passed this month are treated as falling next month.
"""
from dataclasses import asdict, dataclass
from datetime import date

from sqlalchemy.orm import Session

from app.application.cards import STATEMENT_PAID
from app.domain.debt import (
    CATEGORY_CREDIT_CARD, CLOSED_STATUSES, DEBT_OVERDUE, installment_number_for_month,
    resolve_installment_amount,
)
from app.domain.period import year_month_key
from app.domain.recurrence import execution_for_month, is_fixed_expense_active_in_month
from app.infrastructure.db.models import CreditCardModel, DebtModel, FixedExpenseModel, StatementModel
from app.infrastructure.store.repository import RecordRepository

MATURITY_DEBT = "debt"
MATURITY_EXPENSE = "expense"
MATURITY_CARD = "card"

_OVERDUE_RANK = -100
_DAYS_IN_CYCLE = 30


@dataclass(frozen=True)
class UpcomingItem:
    id: str
    type: str
    title: str
    amount: float
    due_day: int
    status: str
    counterparty: str | None = None
    installment_info: str | None = None
    category: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _rank(item: UpcomingItem, today: date) -> int:
    if item.status == DEBT_OVERDUE:
        return _OVERDUE_RANK
    distance = item.due_day - today.day
    return distance + _DAYS_IN_CYCLE if distance < 0 else distance


def _debt_items(db: Session, year_month: str) -> list[UpcomingItem]:
    items = []
    for debt in RecordRepository(db, DebtModel).get_all():
        if debt.status in CLOSED_STATUSES or debt.category == CATEGORY_CREDIT_CARD:
            continue
        number = installment_number_for_month(debt, year_month)
        items.append(UpcomingItem(
            id=debt.id,
            type=MATURITY_DEBT,
            title=debt.title,
            amount=resolve_installment_amount(debt),
            due_day=debt.due_day or 1,
            status=debt.status,
            counterparty=debt.counterparty or None,
            installment_info=f"{number or debt.current_installment}/{debt.installments_count}",
            category=debt.category,
        ))
    return items


def _expense_items(db: Session, year_month: str) -> list[UpcomingItem]:
    return [
        UpcomingItem(
            id=e.id,
            type=MATURITY_EXPENSE,
            title=e.title,
            amount=e.amount,
            due_day=e.due_day,
            status="pending",
            category=e.category,
        )
        for e in RecordRepository(db, FixedExpenseModel).get_all()
        if is_fixed_expense_active_in_month(e, year_month) and execution_for_month(e, year_month) is None
    ]


def _card_items(db: Session, year_month: str) -> list[UpcomingItem]:
    cards = {c.id: c for c in RecordRepository(db, CreditCardModel).get_all()}
    items = []
    for stmt in RecordRepository(db, StatementModel).find_by(due_year_month=year_month):
        card = cards.get(stmt.card_id)
        if card is None or stmt.status == STATEMENT_PAID:
            continue
        items.append(UpcomingItem(
            id=stmt.id,
            type=MATURITY_CARD,
            title=card.name,
            amount=stmt.total_amount or 0,
            due_day=stmt.due_date.day if stmt.due_date else card.due_day,
            status="pending",
            counterparty=card.bank or None,
        ))
    return items


def upcoming_maturities(db: Session, today: date, limit: int = 5) -> list[UpcomingItem]:
    year_month = year_month_key(today)
    items = _debt_items(db, year_month) + _expense_items(db, year_month) + _card_items(db, year_month)
    items.sort(key=lambda item: _rank(item, today))
    return items[:limit]
