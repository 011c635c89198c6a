"""
Installment expansion for card purchases.

One purchase of amount A in N installments becomes N postings of A / N, the
i-th (0-based) attributed to the base statement shifted by i months. The
split is a plain float division: no remainder is redistributed, so the
postings may differ from A in the last float digits.

When create_all_installments is False only the first posting is produced;
statements of the following months under-report until the remaining
installments are created.
"""
from dataclasses import dataclass
from datetime import date

from app.domain.period import add_months, date_from_year_month_day, parse_iso_date, parse_year_month
from app.domain.statement import resolve_statement_for_purchase


@dataclass
class ConsumptionInput:
    card_id: str
    description: str
    amount: float
    purchase_date: date
    currency: str = "ARS"
    category: str | None = None
    installment_total: int = 1
    create_all_installments: bool = False
    is_recurring: bool = False
    recurring_until: date | None = None


@dataclass(frozen=True)
class ConsumptionPosting:
    id: str | None
    card_id: str
    description: str
    amount: float
    currency: str
    purchase_date: date
    closing_year_month: str
    posted_year_month: str
    installment_total: int | None = None
    installment_index: int | None = None  # 1-based
    category: str | None = None
    is_recurring: bool = False
    recurring_until: date | None = None


def expand_consumption(data: ConsumptionInput, card) -> list[ConsumptionPosting]:
    """Split a purchase into its postings. ``card`` needs closing_day and due_day."""
    purchase_date = parse_iso_date(data.purchase_date)
    base = resolve_statement_for_purchase(card.closing_day, card.due_day, purchase_date)

    installments = data.installment_total if data.installment_total and data.installment_total > 1 else 1
    amount_per_installment = data.amount / installments

    postings: list[ConsumptionPosting] = []
    for i in range(installments):
        if i > 0 and not data.create_all_installments:
            break
        postings.append(ConsumptionPosting(
            id=None,
            card_id=data.card_id,
            description=data.description,
            amount=amount_per_installment,
            currency=data.currency or "ARS",
            purchase_date=purchase_date,
            closing_year_month=add_months(base.closing_year_month, i),
            posted_year_month=add_months(base.due_year_month, i),
            installment_total=installments if installments > 1 else None,
            installment_index=i + 1 if installments > 1 else None,
            category=data.category,
            is_recurring=data.is_recurring,
            recurring_until=data.recurring_until,
        ))
    return postings


def restate_consumption(purchase_date, card, installment_index: int | None = None) -> tuple[str, str]:
    """
    Closing/posted months for an edited consumption.

    Every installment row keeps the purchase date of the whole purchase, so
    installment i lands i-1 months after the base statement. Only the edited
    row moves; sibling installments are left where they are.
    """
    stmt = resolve_statement_for_purchase(card.closing_day, card.due_day, purchase_date)
    offset = max(1, installment_index or 1) - 1
    return add_months(stmt.closing_year_month, offset), add_months(stmt.due_year_month, offset)


def expand_recurring_consumptions(consumptions, cards, target_closing_year_month: str) -> list[ConsumptionPosting]:
    """
    Virtual postings of recurring consumptions for one closing month.

    A recurring purchase repeats on the same day (clamped) every month after
    its real purchase date. Candidates in the target month and the month
    before are checked, since a late-month repetition can close a month later.
    """
    card_map = {c.id: c for c in cards}
    candidate_months = [add_months(target_closing_year_month, -1), target_closing_year_month]

    expanded: list[ConsumptionPosting] = []
    seen: set[str] = set()

    for cons in consumptions:
        if not cons.is_recurring:
            continue
        card = card_map.get(cons.card_id)
        if card is None:
            continue

        start = parse_iso_date(cons.purchase_date)
        until = parse_iso_date(cons.recurring_until)

        for ym in candidate_months:
            year, month = parse_year_month(ym)
            candidate = date_from_year_month_day(year, month, start.day)
            if candidate <= start:
                continue  # the real record covers the start date itself
            if until is not None and candidate > until:
                continue

            stmt = resolve_statement_for_purchase(card.closing_day, card.due_day, candidate)
            if stmt.closing_year_month != target_closing_year_month:
                continue

            instance_id = f"{cons.id}::{candidate.isoformat()}"
            if instance_id in seen:
                continue
            seen.add(instance_id)
            expanded.append(ConsumptionPosting(
                id=instance_id,
                card_id=cons.card_id,
                description=cons.description,
                amount=cons.amount,
                currency=cons.currency or "ARS",
                purchase_date=candidate,
                closing_year_month=stmt.closing_year_month,
                posted_year_month=stmt.due_year_month,
                installment_total=cons.installment_total,
                installment_index=cons.installment_index,
                category=cons.category,
                is_recurring=True,
                recurring_until=until,
            ))

    return expanded
