"""
Session Orchestrator for LedgerSync

This module ties the components together for one user session:
1. Refresh (reconcile remote data into the Ledger)
2. Month-scoped views for whichever month the selector shows
3. Manual entries and budgets (validate, then mutate, then audit)
4. Category edits that survive the next refresh

DESIGN DECISION: The session enforces the boundaries:
- Nothing reaches the Ledger without passing EntryValidator
- Every user action is audited
- Views always read the selector's current window, never a stale copy

The UI layer talks to FinanceSession only. It never calls the Reconciler
or mutates the Ledger directly.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ledgersync.audit import AuditLogger
from ledgersync.config import BankingSettings, LedgerSettings, get_settings
from ledgersync.core import (
    Ledger,
    MonthSelector,
    Reconciler,
    ant_expenses,
    financial_summary,
    total_amount,
)
from ledgersync.models.audit import AuditEventBuilder
from ledgersync.models.finance import (
    AntExpensePeriod,
    Budget,
    FinancialSummary,
    MonthlyCashFlow,
    MonthWindow,
    ReconciliationResult,
    Transaction,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
)
from ledgersync.services.banking import BankingClientInterface, NessieClient
from ledgersync.services.storage import (
    AuditStorageInterface,
    CategoryOverrideStore,
    JsonFileCategoryOverrideStore,
)
from ledgersync.validation import EntryValidator, InvalidEntryError, parse_amount


class FinanceSession:
    """
    One user's view of their finances.

    Flow:
    1. refresh() → Reconciler pass → Ledger merge
    2. Views → Ledger queries scoped to selector.window
    3. add_*/change_category → validate → Ledger mutation → audit
    """

    def __init__(
        self,
        ledger: Ledger,
        selector: MonthSelector,
        reconciler: Reconciler,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._ledger = ledger
        self._selector = selector
        self._reconciler = reconciler
        self._settings = settings or get_settings().ledger
        self._validator = validator or EntryValidator(self._settings)
        self._audit_logger = audit_logger or AuditLogger()
        self._last_result: Optional[ReconciliationResult] = None

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def selector(self) -> MonthSelector:
        return self._selector

    @property
    def window(self) -> MonthWindow:
        return self._selector.window

    @property
    def last_result(self) -> Optional[ReconciliationResult]:
        """Result of the most recent refresh, for a "some data failed" notice."""
        return self._last_result

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    async def refresh(self, customer_id: Optional[str] = None) -> ReconciliationResult:
        """Run one reconciliation pass. Never raises for partial API failures."""
        result = await self._reconciler.reconcile(customer_id)
        if self._last_result is None or result.pass_id > self._last_result.pass_id:
            self._last_result = result
        return result

    # -------------------------------------------------------------------------
    # Month-scoped views
    # -------------------------------------------------------------------------

    def expenses(self) -> list[Transaction]:
        return self._ledger.expenses_in_window(self.window)

    def income(self) -> list[Transaction]:
        return self._ledger.income_in_window(self.window)

    def total_spent(self) -> Decimal:
        return self._ledger.total_spent(self.window)

    def total_income(self) -> Decimal:
        return self._ledger.total_income(self.window)

    def net(self) -> Decimal:
        return self._ledger.net(self.window)

    def spend_by_category(self) -> list[tuple[str, Decimal]]:
        return self._ledger.spend_by_category(self.window)

    def income_by_source(self) -> list[tuple[str, Decimal]]:
        return self._ledger.income_by_source(self.window)

    def budgets_with_usage(self) -> list[tuple[Budget, Decimal]]:
        return self._ledger.budgets_with_usage(self.window)

    def recent_transactions(self, limit: Optional[int] = None) -> list[Transaction]:
        return self._ledger.recent_transactions(self.window, limit or self._settings.recent_rows)

    def monthly_cash_flow(self) -> list[MonthlyCashFlow]:
        """Cash-flow series ending at the selected month."""
        return self._ledger.monthly_cash_flow(self._settings.cash_flow_months, now=self.window.start)

    def ant_expenses(
        self,
        period: AntExpensePeriod = AntExpensePeriod.MONTH,
        now: Optional[datetime] = None,
    ) -> tuple[list[Transaction], Decimal]:
        """Ant expenses over a rolling period, with their total."""
        selected = ant_expenses(
            self._ledger.transactions,
            period=period,
            now=now,
            threshold=self._settings.ant_expense_threshold,
        )
        return selected, total_amount(selected)

    def summary(self) -> Optional[FinancialSummary]:
        return financial_summary(self._ledger, self._settings)

    # -------------------------------------------------------------------------
    # User actions
    # -------------------------------------------------------------------------

    async def _reject(self, result: ValidationResult) -> None:
        await self._audit_logger.log(AuditEventBuilder.entry_rejected(
            entry_type=result.entry_type,
            issues=[issue.model_dump() for issue in result.issues],
        ))
        raise InvalidEntryError(result)

    async def _add_entry(
        self,
        kind: TransactionKind,
        title: str,
        category: str,
        amount: Any,
        date: Optional[datetime],
        account_id: Optional[str],
    ) -> Transaction:
        result = self._validator.validate_entry(kind.value, title, category, amount, date)
        if not result.is_valid:
            await self._reject(result)

        add = self._ledger.add_expense if kind == TransactionKind.EXPENSE else self._ledger.add_income
        tx = add(title.strip(), category.strip(), parse_amount(amount), date, account_id)

        await self._audit_logger.log(AuditEventBuilder.manual_entry_added(
            transaction_id=tx.id,
            kind=kind.value,
            amount=str(tx.amount),
        ))
        return tx

    async def add_expense(
        self,
        title: str,
        category: str,
        amount: Any,
        date: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> Transaction:
        """
        Add a manual expense.

        Raises:
            InvalidEntryError: If the title or category is blank, or the
                amount is not a positive number
        """
        return await self._add_entry(TransactionKind.EXPENSE, title, category, amount, date, account_id)

    async def add_income(
        self,
        title: str,
        category: str,
        amount: Any,
        date: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> Transaction:
        """Add a manual income entry. Raises InvalidEntryError like add_expense."""
        return await self._add_entry(TransactionKind.INCOME, title, category, amount, date, account_id)

    async def add_budget(self, name: str, limit: Any) -> Budget:
        result = self._validator.validate_budget(name, limit)
        if not result.is_valid:
            await self._reject(result)

        budget = self._ledger.add_budget(name.strip(), parse_amount(limit))
        await self._audit_logger.log(AuditEventBuilder.budget_added(
            budget_id=budget.id,
            name=budget.name,
            limit=str(budget.limit),
        ))
        return budget

    async def change_category(
        self,
        transaction_id: str,
        category: str,
        kind: Optional[TransactionKind] = None,
    ) -> Transaction:
        """
        Recategorize a transaction.

        API-sourced expenses keep the new category across refreshes.
        Pass `kind` when a purchase and a deposit share the id.

        Raises:
            InvalidEntryError: If the category is blank
            TransactionNotFoundError: If no such transaction is held
            AmbiguousTransactionError: If the id is shared and no kind is given
        """
        if category is None or not category.strip():
            await self._reject(ValidationResult(
                entry_type="category",
                issues=[ValidationIssue(
                    field="category",
                    issue_type="missing",
                    message="Category is required",
                    severity="error",
                )],
            ))

        old_category = self._ledger.get_transaction(transaction_id, kind).category
        updated = self._ledger.recategorize(transaction_id, category.strip(), kind)
        await self._audit_logger.log(AuditEventBuilder.category_overridden(
            transaction_id=transaction_id,
            old_category=old_category,
            new_category=updated.category,
        ))
        return updated


def create_app_components(
    banking_settings: Optional[BankingSettings] = None,
    ledger_settings: Optional[LedgerSettings] = None,
    client: Optional[BankingClientInterface] = None,
    override_store: Optional[CategoryOverrideStore] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> FinanceSession:
    """
    Factory function to wire a FinanceSession from settings.

    Args:
        banking_settings: Defaults to get_settings().banking
        ledger_settings: Defaults to get_settings().ledger
        client: Banking client; defaults to a NessieClient
        override_store: Defaults to the JSON file named in ledger settings
        audit_storage: Where audit events are persisted. If None, only
            logs locally.

    Returns:
        A FinanceSession on the current month with an empty Ledger
    """
    banking_settings = banking_settings or get_settings().banking
    ledger_settings = ledger_settings or get_settings().ledger

    if override_store is None:
        override_store = JsonFileCategoryOverrideStore(ledger_settings.category_overrides_path)
    if client is None:
        client = NessieClient(banking_settings)

    audit_logger = AuditLogger(audit_storage)
    ledger = Ledger(override_store=override_store)
    reconciler = Reconciler(
        client=client,
        ledger=ledger,
        override_store=override_store,
        banking_settings=banking_settings,
        ledger_settings=ledger_settings,
        audit_logger=audit_logger,
    )

    return FinanceSession(
        ledger=ledger,
        selector=MonthSelector(),
        reconciler=reconciler,
        validator=EntryValidator(ledger_settings),
        audit_logger=audit_logger,
        settings=ledger_settings,
    )
