"""Tests for the Ledger: merge semantics, mutations and derived views."""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from ledgersync.core.ledger import (
    AmbiguousTransactionError,
    Ledger,
    TransactionNotFoundError,
)
from ledgersync.models.finance import MonthWindow, TransactionKind
from ledgersync.services.storage import InMemoryCategoryOverrideStore

from fakes import FIXED_NOW, account, expense, fixed_clock, income


MARCH = MonthWindow.for_month(2024, 3)


def snapshot(ledger: Ledger):
    return sorted(
        (tx.id, tx.kind.value, tx.amount, tx.category) for tx in ledger.transactions
    )


@pytest.fixture
def store():
    return InMemoryCategoryOverrideStore()


@pytest.fixture
def ledger(store):
    return Ledger(override_store=store, clock=fixed_clock)


class TestMerge:
    """Tests for merge_transactions."""

    def test_merge_is_idempotent(self, ledger):
        """Test that merging the same batch twice equals merging it once."""
        batch = [expense("p1", "4.5"), expense("p2", "12"), income("d1", "2000")]

        ledger.merge_transactions(batch)
        once = snapshot(ledger)
        inserted, replaced = ledger.merge_transactions(batch)

        assert snapshot(ledger) == once
        assert (inserted, replaced) == (0, 3)

    def test_same_id_keeps_later_amount(self, ledger):
        """Test dedup by natural key: the later batch wins."""
        ledger.merge_transactions([expense("p1", "10")])
        ledger.merge_transactions([expense("p1", "25")])

        matching = [tx for tx in ledger.transactions if tx.source_id == "p1"]
        assert len(matching) == 1
        assert matching[0].amount == Decimal("25")

    def test_replace_keeps_position(self, ledger):
        """Test that an upsert replaces in place."""
        ledger.merge_transactions([expense("p1", "1"), expense("p2", "2")])
        ledger.merge_transactions([expense("p1", "9")])
        assert [tx.source_id for tx in ledger.transactions] == ["p1", "p2"]

    def test_purchase_and_deposit_with_same_id_coexist(self, ledger):
        """Test that the merge key includes the kind."""
        ledger.merge_transactions([expense("x1", "5"), income("x1", "50")])
        assert len(ledger.transactions) == 2

    def test_manual_entries_survive_merge(self, ledger):
        """Test that manual entries are never replaced by a batch."""
        manual = ledger.add_expense("Cash lunch", "Food", Decimal("8"))
        ledger.merge_transactions([expense("p1", "4.5")])
        ledger.merge_transactions([expense("p1", "4.5")])

        assert ledger.get_transaction(manual.id).title == "Cash lunch"
        assert len(ledger.transactions) == 2


class TestMutations:
    """Tests for accounts, manual entries, budgets and recategorization."""

    def test_replace_accounts_drops_duplicate_ids(self, ledger):
        """Test that the first occurrence of an id wins."""
        ledger.replace_accounts([
            account("a1", balance=100),
            account("a1", balance=999),
            account("a2", balance=5),
        ])
        assert [a.id for a in ledger.accounts] == ["a1", "a2"]
        assert ledger.get_account("a1").balance == Decimal("100")
        assert ledger.get_account("missing") is None

    def test_replace_accounts_is_wholesale(self, ledger):
        """Test that a new list replaces the old one."""
        ledger.replace_accounts([account("a1")])
        ledger.replace_accounts([account("a2")])
        assert [a.id for a in ledger.accounts] == ["a2"]

    def test_manual_entry_defaults_to_now(self, ledger):
        """Test the clock is used for undated entries."""
        tx = ledger.add_income("Gift", "Other", Decimal("50"))
        assert tx.date == FIXED_NOW
        assert tx.kind == TransactionKind.INCOME
        assert tx.source_id is None

    def test_recategorize_api_expense_writes_override(self, ledger, store):
        """Test that category edits on API expenses are persisted."""
        ledger.merge_transactions([expense("p1", "4.5", category="Checking")])
        updated = ledger.recategorize("p1", "Coffee Shops")

        assert updated.category == "Coffee Shops"
        assert ledger.get_transaction("p1").category == "Coffee Shops"
        assert store.get("p1") == "Coffee Shops"

    def test_recategorize_deposit_stays_in_memory(self, ledger, store):
        """Test that deposits are not written to the override store."""
        ledger.merge_transactions([income("d1", "2000")])
        ledger.recategorize("d1", "Bonus")
        assert store.all() == {}

    def test_recategorize_manual_stays_in_memory(self, ledger, store):
        """Test that manual entries are not written to the override store."""
        tx = ledger.add_expense("Cash", "Other", Decimal("3"))
        ledger.recategorize(tx.id, "Food")
        assert store.all() == {}
        assert ledger.get_transaction(tx.id).category == "Food"

    def test_recategorize_unknown_id(self, ledger):
        """Test the not-found error."""
        with pytest.raises(TransactionNotFoundError):
            ledger.recategorize("nope", "Food")

    def test_shared_id_needs_kind(self, ledger, store):
        """Test that a deposit sharing a purchase id is edited only when named."""
        ledger.merge_transactions([
            expense("x1", "5", category="Checking"),
            income("x1", "50", category="Checking"),
        ])

        with pytest.raises(AmbiguousTransactionError):
            ledger.recategorize("x1", "Bonus")

        ledger.recategorize("x1", "Bonus", kind=TransactionKind.INCOME)

        assert ledger.get_transaction("x1", TransactionKind.INCOME).category == "Bonus"
        assert ledger.get_transaction("x1", TransactionKind.EXPENSE).category == "Checking"
        assert store.all() == {}

    def test_listeners_fire_on_mutation(self, ledger):
        """Test change notification."""
        calls = []
        unsubscribe = ledger.subscribe(lambda l: calls.append(len(l.transactions)))

        ledger.add_expense("Cash", "Other", Decimal("3"))
        ledger.merge_transactions([expense("p1", "1")])
        unsubscribe()
        ledger.add_budget("Food", Decimal("100"))

        assert calls == [1, 2]


class TestWindowViews:
    """Tests for month-scoped aggregates."""

    def test_window_boundaries(self, ledger):
        """Test that the first instant is included and the next month is not."""
        ledger.merge_transactions([
            expense("start", "1", date=datetime(2024, 3, 1, tzinfo=timezone.utc)),
            expense("end", "100", date=datetime(2024, 4, 1, tzinfo=timezone.utc)),
        ])
        assert [tx.id for tx in ledger.expenses_in_window(MARCH)] == ["start"]
        assert ledger.total_spent(MARCH) == Decimal("1")

    def test_totals_and_net(self, ledger):
        """Test spent, income and net for a window."""
        ledger.merge_transactions([
            expense("p1", "4.5"),
            income("d1", "2000"),
            expense("feb", "30", date=datetime(2024, 2, 10, tzinfo=timezone.utc)),
        ])
        assert ledger.total_spent(MARCH) == Decimal("4.5")
        assert ledger.total_income(MARCH) == Decimal("2000")
        assert ledger.net(MARCH) == Decimal("1995.5")

    def test_spend_by_category_sorted(self, ledger):
        """Test grouping, descending order and stable ties."""
        ledger.merge_transactions([
            expense("p1", "10", category="Transport"),
            expense("p2", "30", category="Food"),
            expense("p3", "10", category="Fun"),
            expense("p4", "5", category="Food"),
        ])
        assert ledger.spend_by_category(MARCH) == [
            ("Food", Decimal("35")),
            ("Transport", Decimal("10")),
            ("Fun", Decimal("10")),
        ]

    def test_income_by_source(self, ledger):
        """Test income grouping."""
        ledger.merge_transactions([
            income("d1", "2000", category="Salary"),
            income("d2", "150", category="Freelance"),
            income("d3", "100", category="Salary"),
        ])
        assert ledger.income_by_source(MARCH) == [
            ("Salary", Decimal("2100")),
            ("Freelance", Decimal("150")),
        ]

    def test_groceries_budget_counts_food(self, ledger):
        """Test the Groceries/Food alias."""
        ledger.add_budget("Groceries", Decimal("700"))
        ledger.merge_transactions([
            expense("f1", "300", category="Food"),
            expense("f2", "150", category="Food"),
            expense("g1", "50", category="Groceries"),
            expense("x1", "999", category="Rent"),
        ])
        assert ledger.budget_utilization(MARCH, "Groceries") == Decimal("500")

    def test_food_budget_does_not_count_groceries(self, ledger):
        """Test that the alias only goes one way."""
        ledger.merge_transactions([expense("g1", "50", category="Groceries")])
        assert ledger.budget_utilization(MARCH, "Food") == Decimal("0")

    def test_budgets_with_usage(self, ledger):
        """Test budget rows."""
        budget = ledger.add_budget("Transport", Decimal("100"))
        ledger.merge_transactions([expense("t1", "40", category="Transport")])
        assert ledger.budgets_with_usage(MARCH) == [(budget, Decimal("40"))]

    def test_recent_transactions(self, ledger):
        """Test newest-first rows across kinds."""
        ledger.merge_transactions([
            expense("p1", "1", date=datetime(2024, 3, 2, tzinfo=timezone.utc)),
            income("d1", "2", date=datetime(2024, 3, 9, tzinfo=timezone.utc)),
            expense("p2", "3", date=datetime(2024, 3, 5, tzinfo=timezone.utc)),
            expense("p3", "4", date=datetime(2024, 3, 1, tzinfo=timezone.utc)),
        ])
        assert [tx.id for tx in ledger.recent_transactions(MARCH)] == ["d1", "p2", "p1"]

    def test_monthly_cash_flow(self, ledger):
        """Test the series ends at the reference month, oldest first."""
        ledger.merge_transactions([
            expense("p1", "10"),
            income("d1", "100"),
            expense("jan", "20", date=datetime(2024, 1, 15, tzinfo=timezone.utc)),
        ])
        series = ledger.monthly_cash_flow(months=3)

        assert [(m.year, m.month_index) for m in series] == [(2024, 1), (2024, 2), (2024, 3)]
        assert series[0].expense == Decimal("20")
        assert series[1].income == Decimal("0")
        assert series[2].net == Decimal("90")


class TestAccountViews:
    """Tests for window-independent account views."""

    def test_balances_and_credit(self, ledger):
        """Test total balance, credit debt and checking accounts."""
        ledger.replace_accounts([
            account("a1", type="Checking", balance=1000),
            account("a2", type="Credit Card", balance=250, nickname="Visa"),
            account("a3", type="Savings", balance=50),
        ])
        assert ledger.total_balance() == Decimal("1300")
        assert ledger.credit_card_debt() == Decimal("250")
        assert [c.account_name for c in ledger.credit_cards()] == ["Visa"]
        assert [a.id for a in ledger.checking_accounts()] == ["a1"]

    def test_transactions_for_account(self, ledger):
        """Test per-account history, newest first."""
        older = expense("p1", "1", date=datetime(2024, 3, 1, tzinfo=timezone.utc))
        newer = expense("p2", "2", date=datetime(2024, 3, 3, tzinfo=timezone.utc))
        other = expense("p3", "3")
        ledger.merge_transactions([
            older.model_copy(update={"account_id": "a1"}),
            newer.model_copy(update={"account_id": "a1"}),
            other.model_copy(update={"account_id": "a2"}),
        ])
        assert [tx.id for tx in ledger.transactions_for_account("a1")] == ["p2", "p1"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
