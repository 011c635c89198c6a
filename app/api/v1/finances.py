"""
Personal finances API endpoints
"""
from contextlib import contextmanager
from datetime import date
from typing import Annotated, Literal, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_fx_provider
from app.application.budgets import (
    AddBudgetSpendingUseCase, CreateBudgetUseCase, DeleteBudgetUseCase, UpdateBudgetUseCase,
    budgets_for_month,
)
from app.application.cards import (
    CreateConsumptionUseCase, CreateCreditCardUseCase, DeleteConsumptionUseCase,
    DeleteCreditCardUseCase, MarkStatementPaidUseCase, MarkStatementUnpaidUseCase,
    RecalculateStatementUseCase, UpdateConsumptionUseCase, UpdateCreditCardUseCase,
    get_consumptions_by_card, get_statements_due_in,
)
from app.application.debts import (
    CreateDebtUseCase, DeleteDebtUseCase, RegisterDebtPaymentUseCase, RegisterPrepaymentUseCase,
    UpdateDebtUseCase, debts_for_month,
)
from app.application.fixed_expenses import (
    CreateFixedExpenseUseCase, DeleteFixedExpenseUseCase, ExecuteFixedExpenseUseCase,
    UndoFixedExpenseExecutionUseCase, UpdateFixedExpenseUseCase, fixed_expenses_for_month,
)
from app.application.incomes import (
    CreateIncomeUseCase, DeleteIncomeUseCase, MarkIncomePendingUseCase, MarkIncomeReceivedUseCase,
    UpdateIncomeUseCase, incomes_for_month,
)
from app.application.daily_guard import local_today
from app.application.items import create_new_item
from app.application.maturities import upcoming_maturities
from app.application.month_view import build_month_kpis
from app.domain.debt import build_schedule
from app.domain.errors import NotFoundError
from app.domain.installments import ConsumptionInput
from app.domain.new_item import NewAdHocExpense, NewBudget, NewDebt, NewFixedExpense, NewIncome
from app.infrastructure.db.models import (
    BudgetCategoryModel, CreditCardModel, DebtModel, FixedExpenseModel, IncomeModel, StatementModel,
)
from app.infrastructure.fx.dolar_api import DolarApiFxProvider, usable_rate
from app.infrastructure.store.repository import RecordRepository


router = APIRouter(prefix="/api/v1/finances", tags=["finances"])

YEAR_MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"
YearMonth = Annotated[str, Field(pattern=YEAR_MONTH_PATTERN)]
YearMonthPath = Annotated[str, Path(pattern=YEAR_MONTH_PATTERN)]


@contextmanager
def _http_errors():
    """Map domain errors onto HTTP status codes."""
    try:
        yield
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# === Request/Response models ===

class CardRequest(BaseModel):
    name: str
    closing_day: int = Field(ge=1, le=31)
    due_day: int = Field(ge=1, le=31)
    bank: str = ""
    last4: str = Field("0000", min_length=4, max_length=4)
    network: str | None = None
    currency: str = "ARS"
    default_account_id: str | None = None


class CardUpdateRequest(BaseModel):
    name: str | None = None
    bank: str | None = None
    last4: str | None = Field(None, min_length=4, max_length=4)
    network: str | None = None
    currency: str | None = None
    closing_day: int | None = Field(None, ge=1, le=31)
    due_day: int | None = Field(None, ge=1, le=31)
    default_account_id: str | None = None


class CardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    bank: str
    name: str
    last4: str
    network: str | None
    currency: str
    closing_day: int
    due_day: int
    default_account_id: str | None


class ConsumptionRequest(BaseModel):
    description: str
    amount: float = Field(gt=0)
    purchase_date: date
    currency: str = "ARS"
    category: str | None = None
    installment_total: int = Field(1, ge=1)
    create_all_installments: bool = False
    is_recurring: bool = False
    recurring_until: date | None = None


class ConsumptionUpdateRequest(BaseModel):
    description: str | None = None
    amount: float | None = Field(None, gt=0)
    currency: str | None = None
    purchase_date: date | None = None
    category: str | None = None
    is_recurring: bool | None = None
    recurring_until: date | None = None


class ConsumptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    card_id: str
    description: str
    amount: float
    currency: str
    purchase_date: date
    closing_year_month: str | None
    posted_year_month: str | None
    installment_total: int | None
    installment_index: int | None
    category: str | None
    is_recurring: bool


class StatementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    card_id: str
    closing_year_month: str
    due_year_month: str
    close_date: date
    due_date: date
    period_start: date
    period_end: date
    total_amount: float
    status: str
    paid_at: date | None
    paid_amount: float | None
    movement_id: str | None


class StatementPaymentRequest(BaseModel):
    paid_at: date
    paid_amount: float | None = Field(None, ge=0)
    movement_id: str | None = None


class DebtRequest(BaseModel):
    title: str
    total_amount: float = Field(gt=0)
    installments_count: int = Field(ge=1)
    start_year_month: YearMonth
    counterparty: str = ""
    category: str = "otro"
    monthly_value: float = 0
    installment_amount: float | None = None
    due_day: int = Field(10, ge=1, le=31)
    interest_mode: str = "none"
    default_account_id: str | None = None


class DebtUpdateRequest(BaseModel):
    title: str | None = None
    counterparty: str | None = None
    total_amount: float | None = Field(None, gt=0)
    remaining_amount: float | None = Field(None, ge=0)
    installments_count: int | None = Field(None, ge=1)
    installment_amount: float | None = None
    monthly_value: float | None = None
    due_day: int | None = Field(None, ge=1, le=31)
    start_year_month: YearMonth | None = None
    category: str | None = None
    status: str | None = None
    default_account_id: str | None = None


class DebtResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    counterparty: str
    total_amount: float
    remaining_amount: float
    installments_count: int
    installment_amount: float | None
    monthly_value: float
    current_installment: int
    due_day: int | None
    start_year_month: str | None
    category: str
    status: str
    payments: list
    prepayments: list


class DebtPaymentRequest(BaseModel):
    amount: float = Field(gt=0)
    paid_on: date
    movement_id: str | None = None


class PrepaymentRequest(BaseModel):
    amount: float = Field(gt=0)
    strategy: Literal["reduce_count", "reduce_amount"]
    on_date: date


class FixedExpenseRequest(BaseModel):
    title: str
    amount: float = Field(ge=0)
    start_year_month: YearMonth
    due_day: int = Field(1, ge=1, le=31)
    category: str = "service"
    recurrence: Literal["MONTHLY", "ONCE"] = "MONTHLY"
    end_year_month: YearMonth | None = None
    auto_debit: bool = False
    default_account_id: str | None = None


class FixedExpenseUpdateRequest(BaseModel):
    title: str | None = None
    amount: float | None = Field(None, ge=0)
    due_day: int | None = Field(None, ge=1, le=31)
    category: str | None = None
    recurrence: Literal["MONTHLY", "ONCE"] | None = None
    start_year_month: YearMonth | None = None
    end_year_month: YearMonth | None = None
    status: str | None = None
    auto_debit: bool | None = None
    default_account_id: str | None = None


class FixedExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: float
    due_day: int
    category: str
    recurrence: str
    start_year_month: str
    end_year_month: str | None
    status: str
    auto_debit: bool
    executions: list


class ExecutionRequest(BaseModel):
    year_month: YearMonth
    effective_date: date
    amount: float | None = Field(None, ge=0)
    account_id: str | None = None
    movement_id: str | None = None


class IncomeRequest(BaseModel):
    title: str
    amount: float = Field(ge=0)
    year_month: YearMonth
    date_expected: int = Field(1, ge=1, le=31)
    is_guaranteed: bool = True
    default_account_id: str | None = None


class IncomeUpdateRequest(BaseModel):
    title: str | None = None
    amount: float | None = Field(None, ge=0)
    date_expected: int | None = Field(None, ge=1, le=31)
    year_month: YearMonth | None = None
    is_guaranteed: bool | None = None
    default_account_id: str | None = None


class IncomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    amount: float
    date_expected: int
    year_month: str
    is_guaranteed: bool
    status: str
    effective_date: date | None
    account_id: str | None
    movement_id: str | None


class IncomeReceiptRequest(BaseModel):
    effective_date: date
    account_id: str | None = None
    movement_id: str | None = None


class BudgetRequest(BaseModel):
    name: str
    estimated_amount: float = Field(ge=0)
    year_month: YearMonth
    note: str | None = None


class BudgetUpdateRequest(BaseModel):
    name: str | None = None
    estimated_amount: float | None = Field(None, ge=0)
    spent_amount: float | None = Field(None, ge=0)
    note: str | None = None


class BudgetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    estimated_amount: float
    spent_amount: float
    year_month: str
    note: str | None


class SpendingRequest(BaseModel):
    amount: float = Field(gt=0)


# New items: tagged by "kind"

class NewDebtItem(BaseModel):
    kind: Literal["debt"]
    title: str
    total_amount: float = Field(gt=0)
    installments_count: int = Field(ge=1)
    counterparty: str = ""
    category: str = "otro"
    monthly_value: float = 0
    installment_amount: float | None = None
    due_day: int = Field(10, ge=1, le=31)
    start_year_month: YearMonth | None = None


class NewFixedExpenseItem(BaseModel):
    kind: Literal["fixed_expense"]
    title: str
    amount: float = Field(ge=0)
    due_day: int = Field(1, ge=1, le=31)
    category: str = "service"
    recurrence: Literal["MONTHLY", "ONCE"] = "MONTHLY"
    end_year_month: YearMonth | None = None
    auto_debit: bool = False


class NewIncomeItem(BaseModel):
    kind: Literal["income"]
    title: str
    amount: float = Field(ge=0)
    date_expected: int = Field(1, ge=1, le=31)
    is_guaranteed: bool = True


class NewBudgetItem(BaseModel):
    kind: Literal["budget"]
    name: str
    estimated_amount: float = Field(ge=0)


class NewAdHocExpenseItem(BaseModel):
    kind: Literal["ad_hoc_expense"]
    title: str
    amount: float = Field(gt=0)
    spent_on: date
    category: str = ""
    budget_id: str | None = None


# The "kind" literal selects exactly one variant
NewItemRequest = Union[NewDebtItem, NewFixedExpenseItem, NewIncomeItem, NewBudgetItem, NewAdHocExpenseItem]

_ITEM_TYPES = {
    "debt": NewDebt,
    "fixed_expense": NewFixedExpense,
    "income": NewIncome,
    "budget": NewBudget,
    "ad_hoc_expense": NewAdHocExpense,
}


def _changes(req: BaseModel) -> dict:
    return req.model_dump(exclude_unset=True)


# === Month overview ===

@router.get("/months/{year_month}/kpis")
def get_month_kpis(
    year_month: YearMonthPath,
    fx_rate: float | None = Query(None, gt=0),
    db: Session = Depends(get_db),
    fx_provider: DolarApiFxProvider = Depends(get_fx_provider),
):
    """KPI snapshot of one month; the FX rate is fetched when not given."""
    if fx_rate is None:
        fx_rate = usable_rate(fx_provider.get_rate())
    return build_month_kpis(db, year_month, fx_rate=fx_rate).to_dict()


@router.get("/fx")
def get_fx(fx_provider: DolarApiFxProvider = Depends(get_fx_provider)):
    rate = fx_provider.get_rate()
    return {
        "buy": rate.buy if rate else None,
        "sell": rate.sell if rate else None,
        "usable": usable_rate(rate),
    }


@router.post("/months/{year_month}/items", status_code=201)
def add_item(
    year_month: YearMonthPath,
    req: NewItemRequest = Body(...),
    db: Session = Depends(get_db),
):
    """Add a debt, fixed expense, income, budget or ad hoc expense in the context of a month"""
    fields = req.model_dump(exclude={"kind"})
    item = _ITEM_TYPES[req.kind](**fields)
    with _http_errors():
        record_id = create_new_item(db, item, year_month)
    return {"id": record_id, "kind": req.kind}


@router.get("/maturities")
def get_upcoming_maturities(
    limit: int = Query(5, ge=1, le=50),
    today: date | None = Query(None),
    db: Session = Depends(get_db),
):
    """Next debts, fixed expenses and card statements to pay, overdue first"""
    return [item.to_dict() for item in upcoming_maturities(db, today or local_today(), limit)]


# === Cards ===

@router.post("/cards", response_model=CardResponse, status_code=201)
def create_card(req: CardRequest, db: Session = Depends(get_db)):
    with _http_errors():
        card_id = CreateCreditCardUseCase(db).execute(**req.model_dump())
    return db.get(CreditCardModel, card_id)


@router.get("/cards", response_model=list[CardResponse])
def list_cards(db: Session = Depends(get_db)):
    return RecordRepository(db, CreditCardModel).get_all()


@router.patch("/cards/{card_id}", response_model=CardResponse)
def update_card(card_id: str, req: CardUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateCreditCardUseCase(db).execute(card_id, **_changes(req))
    return db.get(CreditCardModel, card_id)


@router.delete("/cards/{card_id}", status_code=204)
def delete_card(card_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteCreditCardUseCase(db).execute(card_id)


@router.post("/cards/{card_id}/consumptions", status_code=201)
def create_consumption(card_id: str, req: ConsumptionRequest, db: Session = Depends(get_db)):
    with _http_errors():
        ids = CreateConsumptionUseCase(db).execute(ConsumptionInput(card_id=card_id, **req.model_dump()))
    return {"ids": ids}


@router.get("/cards/{card_id}/consumptions", response_model=list[ConsumptionResponse])
def list_consumptions(card_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        return get_consumptions_by_card(db, card_id)


@router.patch("/consumptions/{consumption_id}", status_code=204)
def update_consumption(consumption_id: str, req: ConsumptionUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateConsumptionUseCase(db).execute(consumption_id, **_changes(req))


@router.delete("/consumptions/{consumption_id}", status_code=204)
def delete_consumption(consumption_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteConsumptionUseCase(db).execute(consumption_id)


# === Statements ===

@router.get("/statements", response_model=list[StatementResponse])
def list_statements(
    due_year_month: str | None = Query(None, pattern=YEAR_MONTH_PATTERN),
    db: Session = Depends(get_db),
):
    if due_year_month:
        return get_statements_due_in(db, due_year_month)
    return RecordRepository(db, StatementModel).get_all()


@router.post("/cards/{card_id}/statements/{year_month}/recalculate", response_model=StatementResponse | None)
def recalculate_statement(card_id: str, year_month: YearMonthPath, db: Session = Depends(get_db)):
    with _http_errors():
        return RecalculateStatementUseCase(db).execute(card_id, year_month)


@router.post("/statements/{statement_id}/pay", response_model=StatementResponse)
def pay_statement(statement_id: str, req: StatementPaymentRequest, db: Session = Depends(get_db)):
    with _http_errors():
        MarkStatementPaidUseCase(db).execute(statement_id, **req.model_dump())
    return db.get(StatementModel, statement_id)


@router.post("/statements/{statement_id}/unpay", response_model=StatementResponse)
def unpay_statement(statement_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        MarkStatementUnpaidUseCase(db).execute(statement_id)
    return db.get(StatementModel, statement_id)


# === Debts ===

@router.post("/debts", response_model=DebtResponse, status_code=201)
def create_debt(req: DebtRequest, db: Session = Depends(get_db)):
    with _http_errors():
        debt_id = CreateDebtUseCase(db).execute(**req.model_dump())
    return db.get(DebtModel, debt_id)


@router.get("/debts", response_model=list[DebtResponse])
def list_debts(
    year_month: str | None = Query(None, pattern=YEAR_MONTH_PATTERN),
    db: Session = Depends(get_db),
):
    if year_month:
        return debts_for_month(db, year_month, include_card_debts=True)
    return RecordRepository(db, DebtModel).get_all()


@router.get("/debts/{debt_id}/schedule")
def get_debt_schedule(debt_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        debt = RecordRepository(db, DebtModel, "Debt").require(debt_id)
    return [
        {
            "index": s.index,
            "year_month": s.year_month,
            "due_date": s.due_date.isoformat(),
            "amount": s.amount,
            "status": s.status,
        }
        for s in build_schedule(debt, fallback_start=debt.start_year_month or "")
    ]


@router.patch("/debts/{debt_id}", response_model=DebtResponse)
def update_debt(debt_id: str, req: DebtUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateDebtUseCase(db).execute(debt_id, **_changes(req))
    return db.get(DebtModel, debt_id)


@router.delete("/debts/{debt_id}", status_code=204)
def delete_debt(debt_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteDebtUseCase(db).execute(debt_id)


@router.post("/debts/{debt_id}/payments", response_model=DebtResponse)
def register_debt_payment(debt_id: str, req: DebtPaymentRequest, db: Session = Depends(get_db)):
    with _http_errors():
        return RegisterDebtPaymentUseCase(db).execute(debt_id, **req.model_dump())


@router.post("/debts/{debt_id}/prepayments", response_model=DebtResponse)
def register_prepayment(debt_id: str, req: PrepaymentRequest, db: Session = Depends(get_db)):
    with _http_errors():
        return RegisterPrepaymentUseCase(db).execute(debt_id, **req.model_dump())


# === Fixed expenses ===

@router.post("/fixed-expenses", response_model=FixedExpenseResponse, status_code=201)
def create_fixed_expense(req: FixedExpenseRequest, db: Session = Depends(get_db)):
    with _http_errors():
        expense_id = CreateFixedExpenseUseCase(db).execute(**req.model_dump())
    return db.get(FixedExpenseModel, expense_id)


@router.get("/fixed-expenses", response_model=list[FixedExpenseResponse])
def list_fixed_expenses(
    year_month: str | None = Query(None, pattern=YEAR_MONTH_PATTERN),
    db: Session = Depends(get_db),
):
    if year_month:
        return fixed_expenses_for_month(db, year_month)
    return RecordRepository(db, FixedExpenseModel).get_all()


@router.patch("/fixed-expenses/{expense_id}", response_model=FixedExpenseResponse)
def update_fixed_expense(expense_id: str, req: FixedExpenseUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateFixedExpenseUseCase(db).execute(expense_id, **_changes(req))
    return db.get(FixedExpenseModel, expense_id)


@router.delete("/fixed-expenses/{expense_id}", status_code=204)
def delete_fixed_expense(expense_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteFixedExpenseUseCase(db).execute(expense_id)


@router.post("/fixed-expenses/{expense_id}/executions", response_model=FixedExpenseResponse)
def execute_fixed_expense(expense_id: str, req: ExecutionRequest, db: Session = Depends(get_db)):
    with _http_errors():
        return ExecuteFixedExpenseUseCase(db).execute(expense_id, **req.model_dump())


@router.delete("/fixed-expenses/{expense_id}/executions/{year_month}", status_code=204)
def undo_fixed_expense_execution(expense_id: str, year_month: YearMonthPath, db: Session = Depends(get_db)):
    with _http_errors():
        UndoFixedExpenseExecutionUseCase(db).execute(expense_id, year_month)


# === Incomes ===

@router.post("/incomes", response_model=IncomeResponse, status_code=201)
def create_income(req: IncomeRequest, db: Session = Depends(get_db)):
    with _http_errors():
        income_id = CreateIncomeUseCase(db).execute(**req.model_dump())
    return db.get(IncomeModel, income_id)


@router.get("/incomes", response_model=list[IncomeResponse])
def list_incomes(year_month: str = Query(..., pattern=YEAR_MONTH_PATTERN), db: Session = Depends(get_db)):
    return incomes_for_month(db, year_month)


@router.patch("/incomes/{income_id}", response_model=IncomeResponse)
def update_income(income_id: str, req: IncomeUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateIncomeUseCase(db).execute(income_id, **_changes(req))
    return db.get(IncomeModel, income_id)


@router.delete("/incomes/{income_id}", status_code=204)
def delete_income(income_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteIncomeUseCase(db).execute(income_id)


@router.post("/incomes/{income_id}/receive", response_model=IncomeResponse)
def receive_income(income_id: str, req: IncomeReceiptRequest, db: Session = Depends(get_db)):
    with _http_errors():
        return MarkIncomeReceivedUseCase(db).execute(income_id, **req.model_dump())


@router.post("/incomes/{income_id}/unreceive", response_model=IncomeResponse)
def unreceive_income(income_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        MarkIncomePendingUseCase(db).execute(income_id)
    return db.get(IncomeModel, income_id)


# === Budgets ===

@router.post("/budgets", response_model=BudgetResponse, status_code=201)
def create_budget(req: BudgetRequest, db: Session = Depends(get_db)):
    with _http_errors():
        budget_id = CreateBudgetUseCase(db).execute(**req.model_dump())
    return db.get(BudgetCategoryModel, budget_id)


@router.get("/budgets", response_model=list[BudgetResponse])
def list_budgets(year_month: str = Query(..., pattern=YEAR_MONTH_PATTERN), db: Session = Depends(get_db)):
    return budgets_for_month(db, year_month)


@router.patch("/budgets/{budget_id}", response_model=BudgetResponse)
def update_budget(budget_id: str, req: BudgetUpdateRequest, db: Session = Depends(get_db)):
    with _http_errors():
        UpdateBudgetUseCase(db).execute(budget_id, **_changes(req))
    return db.get(BudgetCategoryModel, budget_id)


@router.delete("/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_db)):
    with _http_errors():
        DeleteBudgetUseCase(db).execute(budget_id)


@router.post("/budgets/{budget_id}/spending", response_model=BudgetResponse)
def add_budget_spending(budget_id: str, req: SpendingRequest, db: Session = Depends(get_db)):
    with _http_errors():
        return AddBudgetSpendingUseCase(db).execute(budget_id, req.amount)
