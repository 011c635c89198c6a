"""
Once-per-day refresh of statements and debt statuses.

The last run date is stored in the settings record, so the refresh runs at
most once per calendar day (in the configured timezone) no matter how many
times the app starts or the job fires.
"""
import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from app.application.cards import refresh_card_statements
from app.config import get_settings
from app.domain.debt import debt_status_on
from app.domain.period import parse_iso_date
from app.infrastructure.db.models import CardConsumptionModel, CreditCardModel, DebtModel, StatementModel
from app.infrastructure.store.repository import RecordRepository
from app.infrastructure.store.settings_store import SettingsStore

logger = logging.getLogger(__name__)


def local_today() -> date:
    return datetime.now(tz=ZoneInfo(get_settings().TIMEZONE)).date()


class DailyRunGuard:
    def __init__(self, settings_store: SettingsStore, key: str):
        self.settings_store = settings_store
        self.key = key

    def last_run(self) -> date | None:
        return parse_iso_date(self.settings_store.get(self.key))

    def has_run(self, today: date) -> bool:
        return self.last_run() == today

    def mark_run(self, today: date) -> None:
        self.settings_store.set(self.key, today.isoformat())


def refresh_all_statements(db: Session) -> int:
    """Recompute every statement that has a row or at least one consumption."""
    pairs = {(s.card_id, s.closing_year_month) for s in RecordRepository(db, StatementModel).get_all()}
    pairs |= {
        (c.card_id, c.closing_year_month)
        for c in RecordRepository(db, CardConsumptionModel).get_all()
        if c.closing_year_month
    }
    by_card: dict[str, set[str]] = {c.id: set() for c in RecordRepository(db, CreditCardModel).get_all()}
    for card_id, closing in pairs:
        if card_id in by_card:
            by_card[card_id].add(closing)
    for card_id, months in sorted(by_card.items()):
        if months:
            refresh_card_statements(db, card_id, months)
    return sum(len(months) for months in by_card.values())


def refresh_debt_statuses(db: Session, today: date) -> int:
    """Flag open debts whose due day passed this month without a payment. Returns the number changed."""
    changed = 0
    for debt in RecordRepository(db, DebtModel).get_all():
        status = debt_status_on(debt, today)
        if status != debt.status:
            debt.status = status
            changed += 1
    db.flush()
    return changed


def run_daily_refresh(db: Session, today: date | None = None) -> bool:
    """Run the refresh unless it already ran today. Returns True when it ran."""
    today = today or local_today()
    guard = DailyRunGuard(SettingsStore(db), f"{get_settings().STORAGE_NAMESPACE}.dailyRefresh.lastRun")
    if guard.has_run(today):
        logger.debug("Daily refresh already ran on %s", today)
        return False

    refreshed = refresh_all_statements(db)
    overdue = refresh_debt_statuses(db, today)
    guard.mark_run(today)
    db.commit()
    logger.info("Daily refresh done for %s: %d statements, %d debt statuses changed", today, refreshed, overdue)
    return True
