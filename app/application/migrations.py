"""
Startup data migrations for the personal finances tables.

Each step is a pure function over a RecordSet (table name -> list of row
dicts keyed by column name) and the settings mapping, returning the new
records plus the settings it wants to write. Steps run in a fixed order;
every step is gated by its own marker, and a row field that already holds a
value is never overwritten, so a step may safely run over data that a later
step has already touched.

    v3.migrated           legacy flat blob "<ns>.v2" -> per-entity tables
    v4.consumptionClosing consumptions get their closing month
    v5.debtBackfill       debt categories / installment amount / due day / start month
    v6.statements         statement rows rebuilt from consumptions

MigrationRunner applies the pending steps against the database, committing
each step together with its marker. A failing step is rolled back and logged;
its marker stays unset so the next start retries it.
"""
import copy
import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from app.application.cards import STATEMENT_UNPAID, statement_id
from app.config import get_settings
from app.domain.debt import DEBT_CATEGORIES
from app.domain.period import current_year_month, parse_iso_date, year_month_key
from app.domain.statement import (
    posted_year_month_for_purchase, resolve_statement_for_purchase, statement_closing_in_month,
)
from app.infrastructure.db.models import (
    BudgetCategoryModel, CardConsumptionModel, CreditCardModel, DebtModel,
    FixedExpenseModel, IncomeModel, StatementModel,
)
from app.infrastructure.store.settings_store import SettingsStore

logger = logging.getLogger(__name__)

RecordSet = dict[str, list[dict[str, Any]]]

TABLE_MODELS = {
    "cards": CreditCardModel,
    "consumptions": CardConsumptionModel,
    "statements": StatementModel,
    "debts": DebtModel,
    "fixed_expenses": FixedExpenseModel,
    "incomes": IncomeModel,
    "budgets": BudgetCategoryModel,
}

DEBT_CATEGORY_ALIASES = {
    "loan": "banco",
    "prestamo": "banco",
    "préstamo": "banco",
    "bank": "banco",
    "personal": "familiar",
    "family": "familiar",
    "tarjeta": "credit_card",
    "card": "credit_card",
}


@dataclass(frozen=True)
class MigrationContext:
    today: date
    now: datetime
    namespace: str

    @property
    def legacy_key(self) -> str:
        return f"{self.namespace}.v2"


@dataclass
class MigrationOutcome:
    records: RecordSet
    setting_updates: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MigrationStep:
    name: str
    marker: str  # suffix under the storage namespace
    apply: Callable[[RecordSet, dict, MigrationContext], MigrationOutcome]

    def marker_key(self, namespace: str) -> str:
        return f"{namespace}.{self.marker}"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _first(*values, default=None):
    """First truthy value (legacy fields use 0 / "" as missing)."""
    for value in values:
        if value:
            return value
    return default


def _stable_id(ctx: MigrationContext, *parts) -> str:
    """Deterministic id for legacy rows that had none, so a retry overwrites instead of duplicating."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, ":".join([ctx.namespace, *map(str, parts)])))


def _safe_date(value, default: date | None) -> date | None:
    try:
        return parse_iso_date(value) or default
    except (TypeError, ValueError):
        logger.warning("Unparseable legacy date %r, using %s", value, default)
        return default


def _int(value, default):
    """Legacy numbers may be stored as strings. Zero and garbage fall back to the default."""
    if value is None or value == "":
        return default
    try:
        return int(float(value)) or default
    except (TypeError, ValueError, OverflowError):
        logger.warning("Unparseable legacy integer %r, using %s", value, default)
        return default


def _float(value, default):
    if value is None or value == "":
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Unparseable legacy amount %r, using %s", value, default)
        return default
    if not math.isfinite(number):
        logger.warning("Non-finite legacy amount %r, using %s", value, default)
        return default
    return number or default


def _safe_datetime(value, default: datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    if not value:
        return default
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable legacy timestamp %r", value)
        return default


def _upsert(rows: list[dict], row: dict) -> None:
    """Insert row, or fill only the empty fields of the row with the same id."""
    for existing in rows:
        if existing.get("id") == row["id"]:
            for key, value in row.items():
                if existing.get(key) is None:
                    existing[key] = value
            return
    rows.append(row)


def _empty_records() -> RecordSet:
    return {table: [] for table in TABLE_MODELS}


def _copy_records(records: RecordSet) -> RecordSet:
    out = _empty_records()
    out.update(copy.deepcopy(records))
    return out


def _load_legacy_blob(settings: dict, ctx: MigrationContext) -> dict | None:
    raw = settings.get(ctx.legacy_key)
    if not raw:
        return None
    if isinstance(raw, str):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        logger.warning("Legacy blob %s is not an object, ignoring", ctx.legacy_key)
        return None
    return raw


# ---------------------------------------------------------------------------
# Step 1: legacy flat store -> tables
# ---------------------------------------------------------------------------


def _legacy_card(card: dict, index: int, ctx: MigrationContext) -> dict:
    issuer = card.get("issuer")
    return {
        "id": card.get("id") or _stable_id(ctx, "card", index),
        "bank": _first(card.get("bank"), issuer, default="Desconocido"),
        "name": _first(card.get("name"), default="Tarjeta"),
        "last4": _first(card.get("last4"), default="0000"),
        "network": issuer.upper() if isinstance(issuer, str) and issuer else None,
        "currency": "ARS",
        "closing_day": _int(_first(card.get("closeDay"), card.get("closingDay")), 25),
        "due_day": _int(card.get("dueDay"), 5),
        "default_account_id": card.get("defaultAccountId"),
        "created_at": _safe_datetime(card.get("createdAt"), ctx.now),
    }


def _legacy_consumption(cons: dict, index: int, card: dict, ctx: MigrationContext) -> dict:
    purchase_date = _safe_date(cons.get("date") or cons.get("purchaseDate"), ctx.today)
    installments = cons.get("installments") if isinstance(cons.get("installments"), dict) else {}
    return {
        "id": cons.get("id") or _stable_id(ctx, "consumption", card["id"], index),
        "card_id": card["id"],
        "description": _first(cons.get("concept"), cons.get("description"), default="Consumo"),
        "amount": _float(cons.get("amount"), 0),
        "currency": "ARS",
        "purchase_date": purchase_date,
        # closing month is left for the consumption backfill
        "closing_year_month": None,
        "posted_year_month": posted_year_month_for_purchase(
            purchase_date, card["closing_day"], card["due_day"],
        ),
        "installment_total": _int(installments.get("total"), None),
        "installment_index": _int(installments.get("current"), None),
        "category": cons.get("category"),
        "is_recurring": False,
        "created_at": ctx.now,
    }


def _legacy_debt(debt: dict, index: int, ctx: MigrationContext) -> dict:
    start = debt.get("startYearMonth")
    if not start:
        start_date = _safe_date(debt.get("startDate"), None)
        start = year_month_key(start_date) if start_date else current_year_month(ctx.today)
    return {
        "id": debt.get("id") or _stable_id(ctx, "debt", index),
        "title": _first(debt.get("title"), default="Deuda"),
        "counterparty": _first(debt.get("counterparty"), default="Desconocido"),
        "total_amount": _float(debt.get("totalAmount"), 0),
        "remaining_amount": _float(_first(debt.get("remainingAmount"), debt.get("totalAmount")), 0),
        "installments_count": _int(debt.get("installmentsCount"), 1),
        "current_installment": _int(debt.get("currentInstallment"), 1),
        "monthly_value": _float(debt.get("monthlyValue"), 0),
        "installment_amount": _float(debt.get("installmentAmount"), None),
        "due_day": _int(_first(debt.get("dueDateDay"), debt.get("dueDay")), 1),
        "start_year_month": start,
        "category": _first(debt.get("category"), default="otro"),
        "status": _first(debt.get("status"), default="active"),
        "interest_mode": "none",
        "payments": [],
        "prepayments": [],
        "default_account_id": debt.get("defaultAccountId"),
        "created_at": _safe_datetime(debt.get("createdAt"), ctx.now),
    }


def _legacy_fixed_expense(exp: dict, index: int, ctx: MigrationContext) -> dict:
    return {
        "id": exp.get("id") or _stable_id(ctx, "fixed_expense", index),
        "title": _first(exp.get("title"), default="Gasto Fijo"),
        "amount": _float(exp.get("amount"), 0),
        "due_day": _int(exp.get("dueDay"), 1),
        "category": _first(exp.get("category"), default="service"),
        "recurrence": "MONTHLY",
        "start_year_month": current_year_month(ctx.today),
        "status": _first(exp.get("status"), default="pending"),
        "auto_debit": bool(exp.get("autoDebit")),
        "default_account_id": exp.get("defaultAccountId"),
        "executions": [],
        "created_at": _safe_datetime(exp.get("createdAt"), ctx.now),
    }


def _legacy_income(inc: dict, index: int, ctx: MigrationContext) -> dict:
    return {
        "id": inc.get("id") or _stable_id(ctx, "income", index),
        "title": _first(inc.get("title"), default="Ingreso"),
        "amount": _float(inc.get("amount"), 0),
        "date_expected": _int(inc.get("dateExpected"), 1),
        "year_month": current_year_month(ctx.today),
        "is_guaranteed": bool(inc.get("isGuaranteed")),
        "status": _first(inc.get("status"), default="pending"),
        "default_account_id": inc.get("defaultAccountId"),
        "created_at": _safe_datetime(inc.get("createdAt"), ctx.now),
    }


def _legacy_budget(budget: dict, index: int, ctx: MigrationContext) -> dict:
    return {
        "id": budget.get("id") or _stable_id(ctx, "budget", index),
        "name": _first(budget.get("name"), default="Categoría"),
        "estimated_amount": _float(budget.get("estimatedAmount"), 0),
        "spent_amount": _float(budget.get("spentAmount"), 0),
        "year_month": current_year_month(ctx.today),
        "created_at": _safe_datetime(budget.get("createdAt"), ctx.now),
    }


def migrate_legacy_store(records: RecordSet, settings: dict, ctx: MigrationContext) -> MigrationOutcome:
    records = _copy_records(records)
    legacy = _load_legacy_blob(settings, ctx)
    if legacy is None:
        return MigrationOutcome(records)

    for i, raw_card in enumerate(legacy.get("creditCards") or []):
        card = _legacy_card(raw_card, i, ctx)
        _upsert(records["cards"], card)
        for j, raw_cons in enumerate(raw_card.get("consumptions") or []):
            _upsert(records["consumptions"], _legacy_consumption(raw_cons, j, card, ctx))

    sections = (
        ("debts", "debts", _legacy_debt),
        ("fixedExpenses", "fixed_expenses", _legacy_fixed_expense),
        ("incomes", "incomes", _legacy_income),
        ("budgetItems", "budgets", _legacy_budget),
    )
    for legacy_name, table, convert in sections:
        for i, raw in enumerate(legacy.get(legacy_name) or []):
            _upsert(records[table], convert(raw, i, ctx))

    logger.info(
        "Legacy store migrated: %d cards, %d consumptions, %d debts",
        len(records["cards"]), len(records["consumptions"]), len(records["debts"]),
    )
    return MigrationOutcome(records)


# ---------------------------------------------------------------------------
# Step 2: consumption closing month
# ---------------------------------------------------------------------------


def backfill_consumption_closing(records: RecordSet, settings: dict, ctx: MigrationContext) -> MigrationOutcome:
    records = _copy_records(records)
    cards = {c["id"]: c for c in records["cards"]}

    for cons in records["consumptions"]:
        if cons.get("closing_year_month"):
            continue
        card = cards.get(cons.get("card_id"))
        purchase_date = _safe_date(cons.get("purchase_date"), None)
        if card is None or purchase_date is None:
            logger.warning("Consumption %s left without closing month (card or date missing)", cons.get("id"))
            continue
        stmt = resolve_statement_for_purchase(card["closing_day"], card["due_day"], purchase_date)
        cons["closing_year_month"] = stmt.closing_year_month
        if not cons.get("posted_year_month"):
            cons["posted_year_month"] = stmt.due_year_month

    return MigrationOutcome(records)


# ---------------------------------------------------------------------------
# Step 3: debt backfill
# ---------------------------------------------------------------------------


def normalize_debt_category(category) -> str:
    key = str(category or "").strip().lower()
    if key in DEBT_CATEGORIES:
        return key
    return DEBT_CATEGORY_ALIASES.get(key, "otro")


def backfill_debts(records: RecordSet, settings: dict, ctx: MigrationContext) -> MigrationOutcome:
    records = _copy_records(records)

    for debt in records["debts"]:
        debt["category"] = normalize_debt_category(debt.get("category"))

        count = debt["installments_count"] = _int(debt.get("installments_count"), 1)
        debt["total_amount"] = _float(debt.get("total_amount"), 0)
        debt["monthly_value"] = _float(debt.get("monthly_value"), 0)
        debt["installment_amount"] = _float(debt.get("installment_amount"), None)
        if not debt["installment_amount"]:
            if debt["monthly_value"]:
                debt["installment_amount"] = debt["monthly_value"]
            elif count > 0:
                debt["installment_amount"] = math.ceil(debt["total_amount"] / count)

        debt["due_day"] = _int(_first(debt.get("due_day"), debt.get("due_date_day")), 1)

        if not debt.get("start_year_month"):
            start = _safe_date(debt.get("start_date"), None) or _safe_date(debt.get("created_at"), None)
            debt["start_year_month"] = year_month_key(start or ctx.today)

    return MigrationOutcome(records)


# ---------------------------------------------------------------------------
# Step 4: statements
# ---------------------------------------------------------------------------


def rebuild_statements(records: RecordSet, settings: dict, ctx: MigrationContext) -> MigrationOutcome:
    records = _copy_records(records)
    cards = {c["id"]: c for c in records["cards"]}

    totals: dict[tuple[str, str], float] = {}
    for cons in records["consumptions"]:
        key = (cons.get("card_id"), cons.get("closing_year_month"))
        if key[0] in cards and key[1]:
            totals[key] = totals.get(key, 0) + (cons.get("amount") or 0)

    existing = {(s["card_id"], s["closing_year_month"]): s for s in records["statements"]}

    for (card_id, closing), total in sorted(totals.items()):
        card = cards[card_id]
        period = statement_closing_in_month(card["closing_day"], card["due_day"], closing)
        stmt = existing.get((card_id, closing))
        if stmt is None:
            stmt = {
                "id": statement_id(card_id, closing),
                "card_id": card_id,
                "closing_year_month": closing,
                "status": STATEMENT_UNPAID,
                "created_at": ctx.now,
            }
            records["statements"].append(stmt)
        # Payment fields of an existing statement are kept
        stmt.update(
            due_year_month=period.due_year_month,
            close_date=period.close_date,
            due_date=period.due_date,
            period_start=period.period_start,
            period_end=period.period_end,
            total_amount=total,
        )

    return MigrationOutcome(records)


MIGRATION_STEPS: list[MigrationStep] = [
    MigrationStep("legacy_to_v3", "v3.migrated", migrate_legacy_store),
    MigrationStep("consumption_closing_backfill", "v4.consumptionClosing", backfill_consumption_closing),
    MigrationStep("debt_backfill", "v5.debtBackfill", backfill_debts),
    MigrationStep("statement_rebuild", "v6.statements", rebuild_statements),
]


def _marker_is_set(settings: dict, key: str) -> bool:
    return settings.get(key) in (True, "true")


def run_pipeline(
    records: RecordSet,
    settings: dict,
    ctx: MigrationContext,
    steps: list[MigrationStep] | None = None,
) -> tuple[RecordSet, dict]:
    """Apply every pending step in order; returns the final records and settings."""
    settings = dict(settings)
    for step in steps or MIGRATION_STEPS:
        marker = step.marker_key(ctx.namespace)
        if _marker_is_set(settings, marker):
            continue
        outcome = step.apply(records, settings, ctx)
        records = outcome.records
        settings.update(outcome.setting_updates)
        settings[marker] = True
    return records, settings


# ---------------------------------------------------------------------------
# Database runner
# ---------------------------------------------------------------------------


def _row_from_model(obj) -> dict:
    return {attr.key: getattr(obj, attr.key) for attr in sa_inspect(obj).mapper.column_attrs}


class MigrationRunner:
    def __init__(
        self,
        db: Session,
        namespace: str | None = None,
        today: date | None = None,
        steps: list[MigrationStep] | None = None,
    ):
        self.db = db
        self.namespace = namespace or get_settings().STORAGE_NAMESPACE
        self.today = today or date.today()
        self.steps = steps or MIGRATION_STEPS
        self.settings = SettingsStore(db)

    def _context(self) -> MigrationContext:
        return MigrationContext(today=self.today, now=datetime.now(timezone.utc), namespace=self.namespace)

    def _load_records(self) -> RecordSet:
        return {
            table: [_row_from_model(obj) for obj in self.db.query(model).all()]
            for table, model in TABLE_MODELS.items()
        }

    def _write_records(self, before: RecordSet, after: RecordSet) -> int:
        written = 0
        for table, model in TABLE_MODELS.items():
            columns = {attr.key for attr in sa_inspect(model).column_attrs}
            previous = {row["id"]: row for row in before.get(table, [])}
            for row in after.get(table, []):
                if previous.get(row["id"]) == row:
                    continue
                values = {k: v for k, v in row.items() if k in columns and v is not None}
                self.db.merge(model(**values))
                written += 1
        self.db.flush()
        return written

    def run(self) -> bool:
        """Apply pending steps. Returns False when a step failed (it will be retried next run)."""
        for step in self.steps:
            marker = step.marker_key(self.namespace)
            if self.settings.is_set(marker):
                continue
            try:
                records = self._load_records()
                outcome = step.apply(records, self.settings.all(), self._context())
                written = self._write_records(records, outcome.records)
                for key, value in outcome.setting_updates.items():
                    self.settings.set(key, value)
                self.settings.set(marker, True)
                self.db.commit()
                logger.info("Migration %s applied (%d rows written)", step.name, written)
            except Exception:
                self.db.rollback()
                logger.exception("Migration %s failed, will retry on next run", step.name)
                return False
        return True
