"""
Tests for the Reconciler

Covers the full pass: account resolution tiers, fan-out, merchant
resolution, category overrides, dedup, partial failures, date fallback
and stale-pass handling. The banking API is replaced by FakeBankingClient.
"""

import asyncio
import pytest
from decimal import Decimal

from ledgersync.audit import AuditLogger
from ledgersync.config import LedgerSettings
from ledgersync.core.dates import DateNormalizer
from ledgersync.core.ledger import Ledger
from ledgersync.core.reconciler import Reconciler
from ledgersync.models.audit import AuditEventType
from ledgersync.models.finance import Merchant, MonthWindow, TransactionKind
from ledgersync.services.banking import BankingServerError, BankingTransportError
from ledgersync.services.storage import (
    InMemoryAuditStorage,
    InMemoryCategoryOverrideStore,
    JsonFileCategoryOverrideStore,
)

from fakes import FIXED_NOW, FakeBankingClient, account, deposit, fixed_clock, purchase


MARCH = MonthWindow.for_month(2024, 3)


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def make_reconciler(banking_settings, ledger_settings, audit_storage):
    """Build a Reconciler around a fake client with test defaults."""

    def build(client, ledger=None, override_store=None, settings=None, ledger_cfg=None, **kwargs):
        ledger = ledger or Ledger(override_store=override_store, clock=fixed_clock)
        reconciler = Reconciler(
            client=client,
            ledger=ledger,
            override_store=override_store,
            banking_settings=settings or banking_settings,
            ledger_settings=ledger_cfg or ledger_settings,
            audit_logger=AuditLogger(audit_storage),
            date_normalizer=DateNormalizer(clock=fixed_clock),
            **kwargs,
        )
        return reconciler, ledger

    return build


def event_types(storage: InMemoryAuditStorage) -> list[AuditEventType]:
    return [e.event_type for e in storage.events]


class TestEndToEnd:
    """The canonical single-account scenario."""

    @pytest.mark.asyncio
    async def test_single_account_month(self, make_reconciler):
        """Test totals for one checking account with one purchase and one deposit."""
        client = FakeBankingClient(
            accounts=[account("a1", type="Checking", balance=1000)],
            purchases={"a1": [purchase("p1", 4.5, "2024-03-02", "Coffee", merchant_id="")]},
            deposits={"a1": [deposit("d1", 2000, "2024-03-01", "Payroll")]},
        )
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        assert result.merged is True
        assert result.failures == []
        assert ledger.total_spent(MARCH) == Decimal("4.5")
        assert ledger.total_income(MARCH) == Decimal("2000")
        assert ledger.net(MARCH) == Decimal("1995.5")
        assert ledger.spend_by_category(MARCH) == [("Checking", Decimal("4.5"))]

    @pytest.mark.asyncio
    async def test_normalized_fields(self, make_reconciler):
        """Test how purchases and deposits become Transactions."""
        client = FakeBankingClient(
            accounts=[account("a1", type="Checking", nickname="Main")],
            purchases={"a1": [purchase("p1", -12.25, description="Refundish")]},
            deposits={"a1": [deposit("d1", 100, description="Payroll")]},
        )
        reconciler, ledger = make_reconciler(client)

        await reconciler.reconcile()
        p1 = ledger.get_transaction("p1")
        d1 = ledger.get_transaction("d1")

        assert p1.kind == TransactionKind.EXPENSE
        assert p1.amount == Decimal("12.25")
        assert p1.category == "Main"
        assert p1.title == "Refundish"
        assert p1.account_id == "a1"
        assert p1.source_id == "p1"
        assert d1.kind == TransactionKind.INCOME
        assert d1.category == "Main"
        assert d1.title == "Payroll"

    @pytest.mark.asyncio
    async def test_reconcile_twice_is_idempotent(self, make_reconciler):
        """Test that a second pass over the same data changes nothing."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [purchase("p1", 4.5), purchase("p2", 8)]},
            deposits={"a1": [deposit("d1", 2000)]},
        )
        reconciler, ledger = make_reconciler(client)

        await reconciler.reconcile()
        first = sorted((tx.id, tx.amount) for tx in ledger.transactions)
        second_result = await reconciler.reconcile()

        assert sorted((tx.id, tx.amount) for tx in ledger.transactions) == first
        assert second_result.pass_id == 2


class TestCategories:
    """Tests for merchant titles and category overrides."""

    @pytest.mark.asyncio
    async def test_override_beats_alias(self, make_reconciler):
        """Test that a stored override wins over the account alias."""
        store = InMemoryCategoryOverrideStore({"p1": "Coffee Shops"})
        client = FakeBankingClient(
            accounts=[account("a1", nickname="Main")],
            purchases={"a1": [purchase("p1", 4.5), purchase("p2", 6)]},
        )
        reconciler, ledger = make_reconciler(client, override_store=store)

        await reconciler.reconcile()

        assert ledger.get_transaction("p1").category == "Coffee Shops"
        assert ledger.get_transaction("p2").category == "Main"

    @pytest.mark.asyncio
    async def test_recategorize_survives_next_pass(self, make_reconciler):
        """Test that a user edit is re-applied on the next reconciliation."""
        store = InMemoryCategoryOverrideStore()
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [purchase("p1", 4.5)]},
        )
        reconciler, ledger = make_reconciler(client, override_store=store)

        await reconciler.reconcile()
        ledger.recategorize("p1", "Food")
        await reconciler.reconcile()

        assert ledger.get_transaction("p1").category == "Food"

    @pytest.mark.asyncio
    async def test_unreadable_override_file_keeps_defaults(self, make_reconciler, audit_storage, tmp_path):
        """Test that a corrupt override file does not stop the pass."""
        path = tmp_path / "overrides.json"
        path.write_text("{not json", encoding="utf-8")
        client = FakeBankingClient(
            accounts=[account("a1", nickname="Main")],
            purchases={"a1": [purchase("p1", 4.5)]},
            deposits={"a1": [deposit("d1", 100)]},
        )
        reconciler, ledger = make_reconciler(
            client, override_store=JsonFileCategoryOverrideStore(path),
        )

        result = await reconciler.reconcile()

        assert result.merged is True
        assert ledger.get_transaction("p1").category == "Main"
        assert len(ledger.transactions) == 2
        assert [(f.resource, f.error_type) for f in result.failures] == [
            ("overrides", "StorageError"),
        ]
        assert AuditEventType.FETCH_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_custom_default_category(self, make_reconciler):
        """Test a caller-supplied default instead of the alias."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [purchase("p1", 4.5)]},
        )
        reconciler, ledger = make_reconciler(client, default_category=lambda a: "Uncategorized")

        await reconciler.reconcile()
        assert ledger.get_transaction("p1").category == "Uncategorized"

    @pytest.mark.asyncio
    async def test_merchant_name_used_as_title(self, make_reconciler):
        """Test that a merchant lookup supplies the title, once per merchant."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [
                purchase("p1", 4.5, merchant_id="m1"),
                purchase("p2", 3.0, merchant_id="m1"),
            ]},
            merchants={"m1": Merchant(id="m1", name="Blue Bottle")},
        )
        reconciler, ledger = make_reconciler(client)

        await reconciler.reconcile()

        assert ledger.get_transaction("p1").title == "Blue Bottle"
        assert ledger.get_transaction("p2").title == "Blue Bottle"
        assert client.count("merchant", "m1") == 1

    @pytest.mark.asyncio
    async def test_merchant_failure_falls_back_to_description(self, make_reconciler, audit_storage):
        """Test that a failed merchant lookup does not drop the purchase."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [purchase("p1", 4.5, description="Coffee", merchant_id="m404")]},
        )
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        assert ledger.get_transaction("p1").title == "Coffee"
        assert [(f.resource, f.entity_id) for f in result.failures] == [("merchant", "m404")]
        assert AuditEventType.MERCHANT_LOOKUP_FAILED in event_types(audit_storage)


class TestAccountResolution:
    """Tests for the three account tiers."""

    @pytest.mark.asyncio
    async def test_synthetic_override_account_injected(self, make_reconciler, override_settings, audit_storage):
        """Test that a missing override account is synthesized exactly once."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"chk-override": [purchase("p9", 20)]},
        )
        reconciler, ledger = make_reconciler(client, settings=override_settings)

        result = await reconciler.reconcile()
        matching = [a for a in ledger.accounts if a.id == "chk-override"]

        assert len(matching) == 1
        assert matching[0].type == "Checking"
        assert matching[0].display_name == "Primary Checking"
        assert matching[0].balance == Decimal("0")
        assert result.synthetic_account_injected is True
        assert ledger.get_transaction("p9").category == "Primary Checking"
        assert AuditEventType.SYNTHETIC_ACCOUNT_INJECTED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_listed_override_account_not_duplicated(self, make_reconciler, override_settings):
        """Test that a listed override account is fetched twice but merged once."""
        client = FakeBankingClient(
            accounts=[account("chk-override", nickname="Everyday")],
            purchases={"chk-override": [purchase("p1", 5)]},
            deposits={"chk-override": [deposit("d1", 50)]},
        )
        reconciler, ledger = make_reconciler(client, settings=override_settings)

        result = await reconciler.reconcile()

        assert [a.id for a in ledger.accounts] == ["chk-override"]
        assert result.synthetic_account_injected is False
        assert client.count("purchases", "chk-override") == 2
        assert result.duplicates_skipped == 2
        assert len(ledger.transactions) == 2
        # The listing's own entry is processed first, so its alias wins
        assert ledger.get_transaction("p1").category == "Everyday"

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_ledger_accounts(self, make_reconciler, audit_storage):
        """Test the fallback to previously held accounts."""
        ledger = Ledger(clock=fixed_clock)
        ledger.replace_accounts([account("a1", balance=500)])
        client = FakeBankingClient(
            accounts=BankingTransportError("offline"),
            purchases={"a1": [purchase("p1", 4.5)]},
        )
        reconciler, ledger = make_reconciler(client, ledger=ledger)

        result = await reconciler.reconcile()

        assert result.used_ledger_accounts is True
        assert [a.id for a in ledger.accounts] == ["a1"]
        assert ledger.total_balance() == Decimal("500")
        assert ledger.get_transaction("p1").amount == Decimal("4.5")
        assert [f.resource for f in result.failures] == ["accounts"]
        assert AuditEventType.ACCOUNTS_FALLBACK_USED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_listing_failure_with_empty_ledger(self, make_reconciler):
        """Test that nothing is fetched when no accounts are known at all."""
        client = FakeBankingClient(accounts=BankingServerError(503, "down"))
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        assert result.transactions == []
        assert ledger.accounts == []
        assert client.count("purchases") == 0


class TestPartialFailures:
    """Tests for slice isolation."""

    @pytest.mark.asyncio
    async def test_one_account_failing_does_not_affect_another(self, make_reconciler, audit_storage):
        """Test that account A's failure leaves account B's data intact."""
        client = FakeBankingClient(
            accounts=[account("A"), account("B")],
            purchases={
                "A": BankingServerError(500, "boom"),
                "B": [purchase("b1", 10), purchase("b2", 20)],
            },
            deposits={"A": [deposit("a-dep", 100)]},
        )
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        expense_accounts = {tx.account_id for tx in ledger.transactions if tx.is_expense}
        assert expense_accounts == {"B"}
        assert ledger.get_transaction("a-dep").account_id == "A"
        assert [(f.resource, f.entity_id) for f in result.failures] == [("purchases", "A")]
        assert result.merged is True
        assert AuditEventType.FETCH_FAILED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, make_reconciler):
        """Test that any exception type in a slice is isolated."""
        client = FakeBankingClient(
            accounts=[account("A")],
            deposits={"A": ValueError("bad payload")},
        )
        reconciler, _ = make_reconciler(client)

        result = await reconciler.reconcile()
        assert result.failures[0].error_type == "ValueError"

    @pytest.mark.asyncio
    async def test_unparseable_date_uses_now(self, make_reconciler, audit_storage):
        """Test that a bad date keeps the record with the current time."""
        client = FakeBankingClient(
            accounts=[account("a1")],
            purchases={"a1": [purchase("p1", 4.5, purchase_date="yesterday-ish")]},
        )
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        assert ledger.get_transaction("p1").date == FIXED_NOW
        assert result.date_fallbacks == 1
        assert AuditEventType.DATE_PARSE_FALLBACK in event_types(audit_storage)


class TestDedup:
    """Tests for per-pass dedup."""

    @pytest.mark.asyncio
    async def test_same_purchase_under_two_accounts(self, make_reconciler):
        """Test that the first account in listing order keeps the record."""
        client = FakeBankingClient(
            accounts=[account("a1", nickname="First"), account("a2", nickname="Second")],
            purchases={"a1": [purchase("p1", 5)], "a2": [purchase("p1", 5)]},
        )
        reconciler, ledger = make_reconciler(client)

        result = await reconciler.reconcile()

        assert len(result.transactions) == 1
        assert result.duplicates_skipped == 1
        assert ledger.get_transaction("p1").account_id == "a1"


class GatedClient(FakeBankingClient):
    """Holds the first purchases call until `gate` is set."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()
        self._first = True

    async def fetch_purchases(self, account_id):
        if self._first:
            self._first = False
            self.entered.set()
            await self.gate.wait()
            return [purchase("p1", 10)]
        return [purchase("p1", 20)]


class TestOverlappingPasses:
    """Tests for passes that settle out of order."""

    async def _run_overlapping(self, reconciler, client):
        older = asyncio.create_task(reconciler.reconcile())
        await client.entered.wait()
        newer = await reconciler.reconcile()
        client.gate.set()
        return await older, newer

    @pytest.mark.asyncio
    async def test_stale_pass_discarded(self, make_reconciler, audit_storage):
        """Test that an older pass settling late does not overwrite a newer one."""
        client = GatedClient(accounts=[account("a1")])
        reconciler, ledger = make_reconciler(client)

        older, newer = await self._run_overlapping(reconciler, client)

        assert (older.pass_id, newer.pass_id) == (1, 2)
        assert newer.merged is True
        assert older.merged is False
        assert ledger.get_transaction("p1").amount == Decimal("20")
        assert reconciler.last_merged_pass_id == 2
        assert AuditEventType.STALE_PASS_DISCARDED in event_types(audit_storage)

    @pytest.mark.asyncio
    async def test_last_settled_wins_when_discard_disabled(self, make_reconciler):
        """Test the every-pass-merges mode."""
        client = GatedClient(accounts=[account("a1")])
        reconciler, ledger = make_reconciler(
            client,
            ledger_cfg=LedgerSettings(discard_stale_passes=False),
        )

        older, newer = await self._run_overlapping(reconciler, client)

        assert older.merged is True
        assert newer.merged is True
        assert ledger.get_transaction("p1").amount == Decimal("10")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
