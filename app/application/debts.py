"""
Debt use cases: CRUD, payments and prepayments.
"""
import logging
import uuid
from datetime import date

from sqlalchemy.orm import Session

from app.domain.debt import (
    CATEGORY_CREDIT_CARD, DEBT_ACTIVE, DEBT_CATEGORIES, DEBT_OVERDUE, DEBT_PAID, DebtValidationError,
    apply_prepayment, is_in_range, resolve_installment_amount,
)
from app.domain.period import parse_iso_date, parse_year_month
from app.infrastructure.db.models import DebtModel
from app.infrastructure.store.repository import RecordRepository

logger = logging.getLogger(__name__)

_DEBT_FIELDS = {
    "title", "counterparty", "total_amount", "remaining_amount", "installments_count",
    "installment_amount", "monthly_value", "current_installment", "due_day",
    "start_year_month", "category", "status", "interest_mode", "default_account_id",
}


def _validate_category(category: str) -> str:
    if category not in DEBT_CATEGORIES:
        raise DebtValidationError(f"Unknown debt category: {category}")
    return category


class CreateDebtUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.debts = RecordRepository(db, DebtModel, "Debt")

    def execute(
        self,
        title: str,
        total_amount: float,
        installments_count: int,
        start_year_month: str,
        counterparty: str = "",
        category: str = "otro",
        monthly_value: float = 0,
        installment_amount: float | None = None,
        due_day: int = 10,
        interest_mode: str = "none",
        default_account_id: str | None = None,
    ) -> str:
        title = (title or "").strip()
        if not title:
            raise DebtValidationError("Debt title is required")
        if total_amount is None or total_amount <= 0:
            raise DebtValidationError("Total amount must be positive")
        if not installments_count or installments_count < 1:
            raise DebtValidationError("installments_count must be >= 1")
        parse_year_month(start_year_month)

        debt = DebtModel(
            id=str(uuid.uuid4()),
            title=title,
            counterparty=counterparty,
            total_amount=total_amount,
            remaining_amount=total_amount,
            installments_count=installments_count,
            monthly_value=monthly_value or 0,
            installment_amount=installment_amount,
            current_installment=1,
            due_day=due_day,
            start_year_month=start_year_month,
            category=_validate_category(category),
            status=DEBT_ACTIVE,
            interest_mode=interest_mode,
            payments=[],
            prepayments=[],
            default_account_id=default_account_id,
        )
        if not debt.installment_amount:
            debt.installment_amount = resolve_installment_amount(debt)
        if not debt.monthly_value:
            debt.monthly_value = debt.installment_amount
        self.debts.put(debt)
        self.db.commit()
        return debt.id


class UpdateDebtUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.debts = RecordRepository(db, DebtModel, "Debt")

    def execute(self, debt_id: str, **changes) -> None:
        unknown = set(changes) - _DEBT_FIELDS
        if unknown:
            raise DebtValidationError(f"Unknown debt fields: {sorted(unknown)}")
        if "category" in changes:
            _validate_category(changes["category"])
        if "installments_count" in changes and (changes["installments_count"] or 0) < 1:
            raise DebtValidationError("installments_count must be >= 1")
        if changes.get("start_year_month"):
            parse_year_month(changes["start_year_month"])
        self.debts.update(debt_id, **changes)
        self.db.commit()


class DeleteDebtUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.debts = RecordRepository(db, DebtModel, "Debt")

    def execute(self, debt_id: str) -> None:
        self.debts.delete(debt_id)
        self.db.commit()


class RegisterDebtPaymentUseCase:
    """Record one installment payment against a debt."""

    def __init__(self, db: Session):
        self.db = db
        self.debts = RecordRepository(db, DebtModel, "Debt")

    def execute(
        self,
        debt_id: str,
        amount: float,
        paid_on: date,
        movement_id: str | None = None,
    ) -> DebtModel:
        if amount is None or amount <= 0:
            raise DebtValidationError("Payment amount must be positive")
        debt = self.debts.require(debt_id)
        if debt.status == DEBT_PAID:
            raise DebtValidationError("Debt is already paid")

        paid_on = parse_iso_date(paid_on)
        current = debt.current_installment or 1
        # JSON columns do not track in-place mutation: assign a new list
        debt.payments = list(debt.payments or []) + [{
            "date": paid_on.isoformat(),
            "amount": amount,
            "installment_index": current,
            "movement_id": movement_id,
        }]
        debt.remaining_amount = max(0, (debt.remaining_amount or 0) - amount)
        debt.current_installment = min(current + 1, max(1, debt.installments_count or 1))
        if debt.remaining_amount == 0:
            debt.status = DEBT_PAID
        elif debt.status == DEBT_OVERDUE:
            debt.status = DEBT_ACTIVE
        self.db.commit()
        logger.info("Debt %s payment %.2f, remaining %.2f", debt_id, amount, debt.remaining_amount)
        return debt


class RegisterPrepaymentUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.debts = RecordRepository(db, DebtModel, "Debt")

    def execute(self, debt_id: str, amount: float, strategy: str, on_date: date) -> DebtModel:
        debt = self.debts.require(debt_id)
        result = apply_prepayment(debt, amount, strategy, parse_iso_date(on_date))
        debt.remaining_amount = result.remaining_amount
        debt.installments_count = result.installments_count
        debt.monthly_value = result.monthly_value
        if result.monthly_value > 0:
            debt.installment_amount = result.monthly_value
        debt.prepayments = result.prepayments
        if result.remaining_amount == 0:
            debt.status = DEBT_PAID
        self.db.commit()
        return debt


def debts_for_month(db: Session, year_month: str, include_card_debts: bool = False) -> list[DebtModel]:
    """Debts whose installment schedule covers year_month."""
    out = []
    for debt in RecordRepository(db, DebtModel).get_all():
        if debt.category == CATEGORY_CREDIT_CARD and not include_card_debts:
            continue
        if is_in_range(debt, year_month):
            out.append(debt)
    return out
