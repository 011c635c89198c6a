"""Tests for the startup data migrations (pure pipeline and database runner)."""
import json
from datetime import date, datetime, timezone

import pytest

from app.application.migrations import (
    MIGRATION_STEPS, MigrationContext, MigrationOutcome, MigrationRunner, MigrationStep,
    backfill_consumption_closing, backfill_debts, migrate_legacy_store,
    normalize_debt_category, rebuild_statements, run_pipeline,
)
from app.infrastructure.db.models import (
    CardConsumptionModel, CreditCardModel, DebtModel, FixedExpenseModel, IncomeModel, StatementModel,
)
from app.infrastructure.store.settings_store import SettingsStore

NS = "test.pf"
TODAY = date(2024, 2, 15)

LEGACY_BLOB = {
    "creditCards": [
        {
            "id": "card-1",
            "name": "Visa",
            "issuer": "visa",
            "closeDay": 25,
            "dueDay": 10,
            "consumptions": [
                {"id": "cons-1", "concept": "Heladera", "amount": 1000, "date": "2024-01-20"},
                {"concept": "Cena", "amount": 500, "date": "2024-01-27"},
            ],
        },
        {"name": "Sin datos"},
    ],
    "debts": [
        {"id": "debt-1", "title": "Préstamo", "totalAmount": 1000, "installmentsCount": 3, "category": "loan"},
        {"id": "debt-2", "title": "Tío", "totalAmount": 600, "monthlyValue": 100, "category": "personal",
         "startDate": "2023-11-03", "dueDay": 15},
        {"id": "debt-3", "category": "casino"},
    ],
    "fixedExpenses": [{"id": "fx-1"}],
    "incomes": [{"id": "inc-1", "title": "Sueldo", "amount": 900, "isGuaranteed": True}],
    "budgetItems": [{"name": "Super", "estimatedAmount": 200}],
}


@pytest.fixture
def ctx():
    return MigrationContext(today=TODAY, now=datetime(2024, 2, 15, 12, tzinfo=timezone.utc), namespace=NS)


@pytest.fixture
def legacy_settings():
    return {f"{NS}.v2": json.dumps(LEGACY_BLOB)}


def _by_id(rows):
    return {row["id"]: row for row in rows}


# ======================================================================
# Pure steps
# ======================================================================

class TestLegacyStore:
    def test_defaults_for_missing_fields(self, ctx, legacy_settings):
        records = migrate_legacy_store({}, legacy_settings, ctx).records

        assert len(records["cards"]) == 2
        card = _by_id(records["cards"])["card-1"]
        assert card["bank"] == "visa"
        assert card["network"] == "VISA"
        assert card["closing_day"] == 25

        bare = [c for c in records["cards"] if c["id"] != "card-1"][0]
        assert bare["bank"] == "Desconocido"
        assert bare["last4"] == "0000"
        assert (bare["closing_day"], bare["due_day"]) == (25, 5)

        [expense] = records["fixed_expenses"]
        assert expense["title"] == "Gasto Fijo"
        assert expense["start_year_month"] == "2024-02"

        [income] = records["incomes"]
        assert income["year_month"] == "2024-02"
        assert income["is_guaranteed"] is True

    def test_consumptions_flattened_without_closing_month(self, ctx, legacy_settings):
        records = migrate_legacy_store({}, legacy_settings, ctx).records
        assert len(records["consumptions"]) == 2
        assert all(c["card_id"] == "card-1" for c in records["consumptions"])
        assert all(c["closing_year_month"] is None for c in records["consumptions"])
        assert _by_id(records["consumptions"])["cons-1"]["posted_year_month"] == "2024-02"

    def test_missing_ids_are_stable(self, ctx, legacy_settings):
        first = migrate_legacy_store({}, legacy_settings, ctx).records
        second = migrate_legacy_store({}, legacy_settings, ctx).records
        assert [c["id"] for c in first["cards"]] == [c["id"] for c in second["cards"]]

    def test_without_legacy_blob_nothing_changes(self, ctx):
        records = migrate_legacy_store({}, {}, ctx).records
        assert all(rows == [] for rows in records.values())

    def test_existing_values_are_kept(self, ctx, legacy_settings):
        existing = {"cards": [{"id": "card-1", "name": "Visa Oro", "closing_day": 20, "bank": None}]}
        records = migrate_legacy_store(existing, legacy_settings, ctx).records
        card = _by_id(records["cards"])["card-1"]
        assert card["name"] == "Visa Oro"
        assert card["closing_day"] == 20
        assert card["bank"] == "visa"


    def test_numeric_strings_are_coerced(self, ctx):
        blob = {
            "creditCards": [{"id": "card-s", "closeDay": "25", "dueDay": "10", "consumptions": [
                {"id": "cons-s", "amount": "1500.50", "date": "2024-01-20",
                 "installments": {"total": "3", "current": "1"}},
            ]}],
            "debts": [{"id": "debt-s", "totalAmount": "1200", "installmentsCount": "12", "dueDateDay": "7"}],
            "incomes": [{"id": "inc-s", "amount": "900", "dateExpected": "5"}],
        }
        records = migrate_legacy_store({}, {f"{NS}.v2": json.dumps(blob)}, ctx).records

        [card] = records["cards"]
        assert (card["closing_day"], card["due_day"]) == (25, 10)
        [cons] = records["consumptions"]
        assert cons["amount"] == 1500.5
        assert (cons["installment_total"], cons["installment_index"]) == (3, 1)
        [debt] = records["debts"]
        assert (debt["total_amount"], debt["installments_count"], debt["due_day"]) == (1200.0, 12, 7)
        [income] = records["incomes"]
        assert (income["amount"], income["date_expected"]) == (900.0, 5)

    def test_garbage_numbers_fall_back_to_defaults(self, ctx):
        blob = {
            "creditCards": [{"id": "card-g", "closeDay": "abc", "dueDay": "", "consumptions": [
                {"id": "cons-g", "amount": "n/a", "date": "2024-01-20"},
            ]}],
            "debts": [{"id": "debt-g", "totalAmount": "lots", "installmentsCount": "twelve", "monthlyValue": "inf"}],
        }
        records = migrate_legacy_store({}, {f"{NS}.v2": json.dumps(blob)}, ctx).records

        [card] = records["cards"]
        assert (card["closing_day"], card["due_day"]) == (25, 5)
        assert records["consumptions"][0]["amount"] == 0
        [debt] = records["debts"]
        assert (debt["total_amount"], debt["installments_count"], debt["monthly_value"]) == (0, 1, 0)


class TestBackfills:
    def test_consumption_closing(self, ctx, legacy_settings):
        records = migrate_legacy_store({}, legacy_settings, ctx).records
        records = backfill_consumption_closing(records, {}, ctx).records
        closings = sorted(c["closing_year_month"] for c in records["consumptions"])
        assert closings == ["2024-01", "2024-02"]

    @pytest.mark.parametrize("raw, expected", [
        ("loan", "banco"), ("personal", "familiar"), ("Banco", "banco"),
        ("credit_card", "credit_card"), ("casino", "otro"), (None, "otro"),
    ])
    def test_category_aliases(self, raw, expected):
        assert normalize_debt_category(raw) == expected

    def test_debt_backfill(self, ctx, legacy_settings):
        records = migrate_legacy_store({}, legacy_settings, ctx).records
        debts = _by_id(backfill_debts(records, {}, ctx).records["debts"])

        assert debts["debt-1"]["category"] == "banco"
        assert debts["debt-1"]["installment_amount"] == 334
        assert debts["debt-1"]["start_year_month"] == "2024-02"
        assert debts["debt-1"]["due_day"] == 1

        assert debts["debt-2"]["category"] == "familiar"
        assert debts["debt-2"]["installment_amount"] == 100
        assert debts["debt-2"]["start_year_month"] == "2023-11"
        assert debts["debt-2"]["due_day"] == 15

        assert debts["debt-3"]["category"] == "otro"
        assert debts["debt-3"]["title"] == "Deuda"

    def test_debt_backfill_coerces_stored_strings(self, ctx):
        records = {"debts": [
            {"id": "d-1", "total_amount": "1000", "installments_count": "12", "due_date_day": "20"},
            {"id": "d-2", "total_amount": 600, "installments_count": "x", "monthly_value": "150"},
        ]}
        debts = _by_id(backfill_debts(records, {}, ctx).records["debts"])
        assert debts["d-1"]["installments_count"] == 12
        assert debts["d-1"]["installment_amount"] == 84
        assert debts["d-1"]["due_day"] == 20
        assert debts["d-2"]["installments_count"] == 1
        assert debts["d-2"]["installment_amount"] == 150.0

    def test_rebuild_statements_keeps_payment(self, ctx):
        records = {
            "cards": [{"id": "card-1", "closing_day": 25, "due_day": 10}],
            "consumptions": [{"id": "c", "card_id": "card-1", "closing_year_month": "2024-01", "amount": 70}],
            "statements": [{
                "id": "card-1:2024-01", "card_id": "card-1", "closing_year_month": "2024-01",
                "status": "PAID", "paid_at": date(2024, 2, 9), "total_amount": 10,
            }],
        }
        [stmt] = rebuild_statements(records, {}, ctx).records["statements"]
        assert stmt["total_amount"] == 70
        assert stmt["status"] == "PAID"
        assert stmt["due_year_month"] == "2024-02"


class TestPipeline:
    def test_full_run(self, ctx, legacy_settings):
        records, settings = run_pipeline({}, legacy_settings, ctx)

        statements = _by_id(records["statements"])
        assert statements["card-1:2024-01"]["total_amount"] == 1000
        assert statements["card-1:2024-02"]["total_amount"] == 500
        assert statements["card-1:2024-02"]["due_year_month"] == "2024-03"
        for step in MIGRATION_STEPS:
            assert settings[step.marker_key(NS)] is True

    def test_second_run_is_a_no_op(self, ctx, legacy_settings):
        records, settings = run_pipeline({}, legacy_settings, ctx)
        again, settings_again = run_pipeline(records, settings, ctx)
        assert again == records
        assert settings_again == settings

    def test_reapplying_steps_over_migrated_data(self, ctx, legacy_settings):
        records, _ = run_pipeline({}, legacy_settings, ctx)
        reapplied, _ = run_pipeline(records, legacy_settings, ctx)
        assert reapplied == records

    def test_fresh_install_only_sets_markers(self, ctx):
        records, settings = run_pipeline({}, {}, ctx)
        assert all(rows == [] for rows in records.values())
        assert all(settings[step.marker_key(NS)] is True for step in MIGRATION_STEPS)

    def test_string_numbers_still_build_statements(self, ctx):
        blob = {"creditCards": [{"id": "card-s", "closeDay": "25", "dueDay": "10", "consumptions": [
            {"id": "cons-s", "amount": "700", "date": "2024-01-20"},
        ]}], "debts": [{"id": "debt-s", "totalAmount": "300", "installmentsCount": "3"}]}
        records, _ = run_pipeline({}, {f"{NS}.v2": json.dumps(blob)}, ctx)
        assert _by_id(records["statements"])["card-s:2024-01"]["total_amount"] == 700.0
        assert records["debts"][0]["installment_amount"] == 100


# ======================================================================
# Database runner
# ======================================================================

def _failing_step(records, settings, ctx) -> MigrationOutcome:
    raise RuntimeError("boom")


class TestMigrationRunner:
    def test_migrates_legacy_blob_into_tables(self, db_session):
        store = SettingsStore(db_session)
        store.set(f"{NS}.v2", json.dumps(LEGACY_BLOB))
        db_session.commit()

        assert MigrationRunner(db_session, namespace=NS, today=TODAY).run() is True

        assert db_session.query(CreditCardModel).count() == 2
        assert db_session.query(CardConsumptionModel).count() == 2
        assert db_session.get(StatementModel, "card-1:2024-01").total_amount == 1000
        assert db_session.get(StatementModel, "card-1:2024-02").total_amount == 500
        assert db_session.get(DebtModel, "debt-1").category == "banco"
        assert db_session.get(FixedExpenseModel, "fx-1").start_year_month == "2024-02"
        assert db_session.get(IncomeModel, "inc-1").year_month == "2024-02"
        for step in MIGRATION_STEPS:
            assert store.is_set(step.marker_key(NS))

    def test_second_run_leaves_tables_untouched(self, db_session):
        SettingsStore(db_session).set(f"{NS}.v2", LEGACY_BLOB)
        db_session.commit()
        MigrationRunner(db_session, namespace=NS, today=TODAY).run()

        db_session.get(StatementModel, "card-1:2024-01").status = "PAID"
        db_session.commit()

        assert MigrationRunner(db_session, namespace=NS, today=TODAY).run() is True
        assert db_session.get(StatementModel, "card-1:2024-01").status == "PAID"
        assert db_session.query(CreditCardModel).count() == 2

    def test_failed_step_keeps_marker_unset(self, db_session):
        store = SettingsStore(db_session)
        store.set(f"{NS}.v2", LEGACY_BLOB)
        db_session.commit()
        steps = [MIGRATION_STEPS[0], MigrationStep("broken", "v9.broken", _failing_step)]

        assert MigrationRunner(db_session, namespace=NS, today=TODAY, steps=steps).run() is False
        assert store.is_set(f"{NS}.v3.migrated")
        assert not store.is_set(f"{NS}.v9.broken")
        # work of the steps before the failure stays committed
        assert db_session.get(CreditCardModel, "card-1") is not None
