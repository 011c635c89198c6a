"""
Income use cases.
"""
import uuid
from datetime import date

from sqlalchemy.orm import Session

from app.domain.errors import FinanceValidationError
from app.domain.period import parse_iso_date, parse_year_month
from app.domain.recurrence import INCOME_PENDING, income_receipt_update
from app.infrastructure.db.models import IncomeModel
from app.infrastructure.store.repository import RecordRepository

_INCOME_FIELDS = {
    "title", "amount", "date_expected", "year_month", "is_guaranteed", "status",
    "effective_date", "account_id", "movement_id", "default_account_id",
}


class IncomeValidationError(FinanceValidationError):
    pass


class CreateIncomeUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.incomes = RecordRepository(db, IncomeModel, "Income")

    def execute(
        self,
        title: str,
        amount: float,
        year_month: str,
        date_expected: int = 1,
        is_guaranteed: bool = True,
        default_account_id: str | None = None,
    ) -> str:
        title = (title or "").strip()
        if not title:
            raise IncomeValidationError("Title is required")
        if amount is None or amount < 0:
            raise IncomeValidationError("Amount cannot be negative")
        if not 1 <= (date_expected or 0) <= 31:
            raise IncomeValidationError("date_expected must be between 1 and 31")
        parse_year_month(year_month)

        income = IncomeModel(
            id=str(uuid.uuid4()),
            title=title,
            amount=amount,
            date_expected=date_expected,
            year_month=year_month,
            is_guaranteed=is_guaranteed,
            status=INCOME_PENDING,
            default_account_id=default_account_id,
        )
        self.incomes.put(income)
        self.db.commit()
        return income.id


class UpdateIncomeUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.incomes = RecordRepository(db, IncomeModel, "Income")

    def execute(self, income_id: str, **changes) -> None:
        unknown = set(changes) - _INCOME_FIELDS
        if unknown:
            raise IncomeValidationError(f"Unknown income fields: {sorted(unknown)}")
        if "amount" in changes and (changes["amount"] is None or changes["amount"] < 0):
            raise IncomeValidationError("Amount cannot be negative")
        if changes.get("year_month"):
            parse_year_month(changes["year_month"])
        if "effective_date" in changes:
            changes["effective_date"] = parse_iso_date(changes["effective_date"])
        self.incomes.update(income_id, **changes)
        self.db.commit()


class DeleteIncomeUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.incomes = RecordRepository(db, IncomeModel, "Income")

    def execute(self, income_id: str) -> None:
        self.incomes.delete(income_id)
        self.db.commit()


class MarkIncomeReceivedUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.incomes = RecordRepository(db, IncomeModel, "Income")

    def execute(
        self,
        income_id: str,
        effective_date: date,
        account_id: str | None = None,
        movement_id: str | None = None,
    ) -> IncomeModel:
        income = self.incomes.require(income_id)
        changes = income_receipt_update(
            parse_iso_date(effective_date),
            account_id=account_id or income.default_account_id,
            movement_id=movement_id,
        )
        income = self.incomes.update(income_id, **changes)
        self.db.commit()
        return income


class MarkIncomePendingUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.incomes = RecordRepository(db, IncomeModel, "Income")

    def execute(self, income_id: str) -> None:
        self.incomes.update(
            income_id, status=INCOME_PENDING, effective_date=None, account_id=None, movement_id=None,
        )
        self.db.commit()


def incomes_for_month(db: Session, year_month: str) -> list[IncomeModel]:
    return RecordRepository(db, IncomeModel).find_by(year_month=year_month)
