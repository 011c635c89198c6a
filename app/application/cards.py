"""
Credit card use cases: cards, consumptions and statements.

Works directly on the keyed record store (no event sourcing). Every mutation
of a consumption recomputes the statements it touches from scratch.
"""
import logging
import threading
import uuid
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from app.domain.errors import FinanceValidationError
from app.domain.installments import ConsumptionInput, expand_consumption, restate_consumption
from app.domain.period import parse_iso_date
from app.domain.statement import statement_closing_in_month
from app.infrastructure.db.models import CreditCardModel, CardConsumptionModel, StatementModel
from app.infrastructure.store.repository import RecordRepository

logger = logging.getLogger(__name__)

STATEMENT_UNPAID = "UNPAID"
STATEMENT_PAID = "PAID"

_CARD_FIELDS = {"bank", "name", "last4", "network", "currency", "closing_day", "due_day", "default_account_id"}
_CONSUMPTION_FIELDS = {
    "description", "amount", "currency", "purchase_date", "category", "is_recurring", "recurring_until",
}


class CardValidationError(FinanceValidationError):
    pass


def statement_id(card_id: str, closing_year_month: str) -> str:
    return f"{card_id}:{closing_year_month}"


def _validate_day(value, label: str) -> int:
    if not isinstance(value, int) or not 1 <= value <= 31:
        raise CardValidationError(f"{label} must be a day between 1 and 31")
    return value


# ---------------------------------------------------------------------------
# Per-card serialization
# ---------------------------------------------------------------------------

# One lock per card, held by the writing use case until it commits
_locks_guard = threading.Lock()
_card_locks: dict[str, threading.RLock] = {}


def _card_lock(card_id: str) -> threading.RLock:
    with _locks_guard:
        lock = _card_locks.get(card_id)
        if lock is None:
            lock = _card_locks[card_id] = threading.RLock()
        return lock


def _forget_card_lock(card_id: str) -> None:
    with _locks_guard:
        _card_locks.pop(card_id, None)


# ============================================================================
# Cards CRUD
# ============================================================================


class CreateCreditCardUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.cards = RecordRepository(db, CreditCardModel, "CreditCard")

    def execute(
        self,
        name: str,
        closing_day: int,
        due_day: int,
        bank: str = "",
        last4: str = "0000",
        network: str | None = None,
        currency: str = "ARS",
        default_account_id: str | None = None,
    ) -> str:
        name = (name or "").strip()
        if not name:
            raise CardValidationError("Card name is required")
        card = CreditCardModel(
            id=str(uuid.uuid4()),
            bank=bank,
            name=name,
            last4=last4,
            network=network,
            currency=currency,
            closing_day=_validate_day(closing_day, "closing_day"),
            due_day=_validate_day(due_day, "due_day"),
            default_account_id=default_account_id,
        )
        self.cards.put(card)
        self.db.commit()
        return card.id


class UpdateCreditCardUseCase:
    """Edit a card. Statement dates of the card are refreshed; consumptions keep their months."""

    def __init__(self, db: Session):
        self.db = db
        self.cards = RecordRepository(db, CreditCardModel, "CreditCard")
        self.statements = RecordRepository(db, StatementModel, "Statement")

    def execute(self, card_id: str, **changes) -> None:
        unknown = set(changes) - _CARD_FIELDS
        if unknown:
            raise CardValidationError(f"Unknown card fields: {sorted(unknown)}")
        if "closing_day" in changes:
            _validate_day(changes["closing_day"], "closing_day")
        if "due_day" in changes:
            _validate_day(changes["due_day"], "due_day")

        with _card_lock(card_id):
            self.cards.update(card_id, updated_at=datetime.now(timezone.utc), **changes)

            if "closing_day" in changes or "due_day" in changes:
                for stmt in self.statements.find_by(card_id=card_id):
                    recalculate_statement(self.db, card_id, stmt.closing_year_month)
            self.db.commit()


class DeleteCreditCardUseCase:
    """Delete a card together with its consumptions and statements."""

    def __init__(self, db: Session):
        self.db = db
        self.cards = RecordRepository(db, CreditCardModel, "CreditCard")

    def execute(self, card_id: str) -> None:
        self.cards.require(card_id)
        with _card_lock(card_id):
            removed = RecordRepository(db=self.db, model=CardConsumptionModel).delete_by(card_id=card_id)
            RecordRepository(db=self.db, model=StatementModel).delete_by(card_id=card_id)
            self.cards.delete(card_id)
            self.db.commit()
        _forget_card_lock(card_id)
        logger.info("Card %s deleted with %d consumptions", card_id, removed)


# ============================================================================
# Statements
# ============================================================================


def recalculate_statement(db: Session, card_id: str, closing_year_month: str) -> StatementModel | None:
    """
    Rebuild one statement from the card's current consumptions.

    The total is summed from scratch, so running it twice gives the same
    result. Payment fields are kept. Returns None when there is neither a
    statement nor any consumption for that month. Callers hold the card lock
    until they commit.
    """
    card = RecordRepository(db, CreditCardModel, "CreditCard").require(card_id)
    statements = RecordRepository(db, StatementModel, "Statement")

    consumptions = RecordRepository(db, CardConsumptionModel).find_by(
        card_id=card_id, closing_year_month=closing_year_month,
    )
    stmt = statements.get_by_id(statement_id(card_id, closing_year_month))
    if stmt is None and not consumptions:
        return None

    period = statement_closing_in_month(card.closing_day, card.due_day, closing_year_month)
    total = sum(c.amount or 0 for c in consumptions)

    if stmt is None:
        stmt = StatementModel(
            id=statement_id(card_id, closing_year_month),
            card_id=card_id,
            closing_year_month=closing_year_month,
            status=STATEMENT_UNPAID,
        )
    stmt.due_year_month = period.due_year_month
    stmt.close_date = period.close_date
    stmt.due_date = period.due_date
    stmt.period_start = period.period_start
    stmt.period_end = period.period_end
    stmt.total_amount = total
    return statements.put(stmt)


def refresh_card_statements(db: Session, card_id: str, closing_year_months) -> None:
    """Recompute the given statements of one card and commit them together."""
    with _card_lock(card_id):
        for ym in sorted(closing_year_months):
            recalculate_statement(db, card_id, ym)
        db.commit()


class RecalculateStatementUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, card_id: str, closing_year_month: str) -> StatementModel | None:
        with _card_lock(card_id):
            stmt = recalculate_statement(self.db, card_id, closing_year_month)
            self.db.commit()
        return stmt


class MarkStatementPaidUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.statements = RecordRepository(db, StatementModel, "Statement")

    def execute(
        self,
        statement_id: str,
        paid_at: date,
        paid_amount: float | None = None,
        movement_id: str | None = None,
    ) -> None:
        if paid_amount is not None and paid_amount < 0:
            raise CardValidationError("paid_amount cannot be negative")
        self.statements.update(
            statement_id,
            status=STATEMENT_PAID,
            paid_at=parse_iso_date(paid_at),
            paid_amount=paid_amount,
            movement_id=movement_id,
        )
        self.db.commit()


class MarkStatementUnpaidUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.statements = RecordRepository(db, StatementModel, "Statement")

    def execute(self, statement_id: str) -> None:
        self.statements.update(
            statement_id, status=STATEMENT_UNPAID, paid_at=None, paid_amount=None, movement_id=None,
        )
        self.db.commit()


# ============================================================================
# Consumptions
# ============================================================================


class CreateConsumptionUseCase:
    """Expand a purchase into installments, persist them and refresh their statements."""

    def __init__(self, db: Session):
        self.db = db
        self.cards = RecordRepository(db, CreditCardModel, "CreditCard")
        self.consumptions = RecordRepository(db, CardConsumptionModel, "CardConsumption")

    def execute(self, data: ConsumptionInput) -> list[str]:
        card = self.cards.require(data.card_id)
        if data.amount is None or data.amount <= 0:
            raise CardValidationError("Amount must be positive")
        if data.installment_total is not None and data.installment_total < 1:
            raise CardValidationError("installment_total must be >= 1")

        created: list[str] = []
        touched: set[str] = set()
        with _card_lock(card.id):
            for posting in expand_consumption(data, card):
                row = CardConsumptionModel(
                    id=str(uuid.uuid4()),
                    card_id=posting.card_id,
                    description=posting.description,
                    amount=posting.amount,
                    currency=posting.currency,
                    purchase_date=posting.purchase_date,
                    closing_year_month=posting.closing_year_month,
                    posted_year_month=posting.posted_year_month,
                    installment_total=posting.installment_total,
                    installment_index=posting.installment_index,
                    category=posting.category,
                    is_recurring=posting.is_recurring,
                    recurring_until=posting.recurring_until,
                )
                self.consumptions.put(row)
                created.append(row.id)
                touched.add(posting.closing_year_month)

            for ym in sorted(touched):
                recalculate_statement(self.db, card.id, ym)
            self.db.commit()
        return created


class UpdateConsumptionUseCase:
    """
    Edit one consumption row.

    Closing/posted months are recomputed from the (possibly new) purchase
    date, keeping the row's installment offset. Sibling installments of the
    same purchase are not touched.
    """

    def __init__(self, db: Session):
        self.db = db
        self.cards = RecordRepository(db, CreditCardModel, "CreditCard")
        self.consumptions = RecordRepository(db, CardConsumptionModel, "CardConsumption")

    def execute(self, consumption_id: str, **changes) -> None:
        unknown = set(changes) - _CONSUMPTION_FIELDS
        if unknown:
            raise CardValidationError(f"Unknown consumption fields: {sorted(unknown)}")
        if "amount" in changes and (changes["amount"] is None or changes["amount"] <= 0):
            raise CardValidationError("Amount must be positive")

        cons = self.consumptions.require(consumption_id)
        card = self.cards.require(cons.card_id)
        old_closing = cons.closing_year_month

        if "purchase_date" in changes:
            changes["purchase_date"] = parse_iso_date(changes["purchase_date"])

        with _card_lock(card.id):
            for name, value in changes.items():
                setattr(cons, name, value)

            cons.closing_year_month, cons.posted_year_month = restate_consumption(
                cons.purchase_date, card, cons.installment_index,
            )
            self.db.flush()

            for ym in sorted({old_closing, cons.closing_year_month} - {None}):
                recalculate_statement(self.db, card.id, ym)
            self.db.commit()


class DeleteConsumptionUseCase:
    def __init__(self, db: Session):
        self.db = db
        self.consumptions = RecordRepository(db, CardConsumptionModel, "CardConsumption")

    def execute(self, consumption_id: str) -> None:
        cons = self.consumptions.require(consumption_id)
        card_id, closing = cons.card_id, cons.closing_year_month
        with _card_lock(card_id):
            self.consumptions.delete(consumption_id)
            if closing:
                recalculate_statement(self.db, card_id, closing)
            self.db.commit()


# ============================================================================
# Queries
# ============================================================================


def get_consumptions_closing_in(db: Session, year_month: str) -> list[CardConsumptionModel]:
    return RecordRepository(db, CardConsumptionModel).find_by(closing_year_month=year_month)


def get_consumptions_by_card(db: Session, card_id: str) -> list[CardConsumptionModel]:
    RecordRepository(db, CreditCardModel, "CreditCard").require(card_id)
    return RecordRepository(db, CardConsumptionModel).find_by(card_id=card_id)


def get_statements_due_in(db: Session, year_month: str) -> list[StatementModel]:
    return RecordRepository(db, StatementModel).find_by(due_year_month=year_month)
