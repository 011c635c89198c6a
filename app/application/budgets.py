"""
Budget category use cases (one row per category per month).
"""
import uuid

from sqlalchemy.orm import Session

from app.domain.errors import FinanceValidationError
from app.domain.period import parse_year_month
from app.infrastructure.db.models import BudgetCategoryModel
from app.infrastructure.store.repository import RecordRepository

_BUDGET_FIELDS = {"name", "estimated_amount", "spent_amount", "year_month", "note"}


class BudgetValidationError(FinanceValidationError):
    pass


class CreateBudgetUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.budgets = RecordRepository(db, BudgetCategoryModel, "Budget")

    def execute(self, name: str, estimated_amount: float, year_month: str, note: str | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise BudgetValidationError("Budget name is required")
        if estimated_amount is None or estimated_amount < 0:
            raise BudgetValidationError("Estimated amount cannot be negative")
        parse_year_month(year_month)

        budget = BudgetCategoryModel(
            id=str(uuid.uuid4()),
            name=name,
            estimated_amount=estimated_amount,
            spent_amount=0.0,
            year_month=year_month,
            note=note,
        )
        self.budgets.put(budget)
        self.db.commit()
        return budget.id


class UpdateBudgetUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.budgets = RecordRepository(db, BudgetCategoryModel, "Budget")

    def execute(self, budget_id: str, **changes) -> None:
        unknown = set(changes) - _BUDGET_FIELDS
        if unknown:
            raise BudgetValidationError(f"Unknown budget fields: {sorted(unknown)}")
        for key in ("estimated_amount", "spent_amount"):
            if key in changes and (changes[key] is None or changes[key] < 0):
                raise BudgetValidationError(f"{key} cannot be negative")
        if changes.get("year_month"):
            parse_year_month(changes["year_month"])
        self.budgets.update(budget_id, **changes)
        self.db.commit()


class DeleteBudgetUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.budgets = RecordRepository(db, BudgetCategoryModel, "Budget")

    def execute(self, budget_id: str) -> None:
        self.budgets.delete(budget_id)
        self.db.commit()


class AddBudgetSpendingUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.budgets = RecordRepository(db, BudgetCategoryModel, "Budget")

    def execute(self, budget_id: str, amount: float) -> BudgetCategoryModel:
        if amount is None or amount <= 0:
            raise BudgetValidationError("Spending amount must be positive")
        budget = self.budgets.require(budget_id)
        budget.spent_amount = (budget.spent_amount or 0) + amount
        self.db.commit()
        return budget


def budgets_for_month(db: Session, year_month: str) -> list[BudgetCategoryModel]:
    return RecordRepository(db, BudgetCategoryModel).find_by(year_month=year_month)
