"""
Ledger

The authoritative in-memory collection of accounts, transactions and
budgets, plus every month-scoped view the screens consume.

DESIGN DECISIONS:
1. Single owner. The Ledger is not thread-safe and is only mutated from
   the event loop that owns it. A reconciliation pass reaches it through
   exactly one `merge_transactions` call, so a partial batch is never visible.
2. Derived views are recomputed on every call from current state and the
   window passed in. Nothing is cached.
3. Mutations assume validated input. Rejecting empty titles or
   non-positive amounts is the job of the UI boundary
   (see ledgersync.validation); the Ledger does not re-check.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog

from ledgersync.core.dates import Clock, utcnow
from ledgersync.models.finance import (
    Account,
    Budget,
    CreditCardDebt,
    MonthlyCashFlow,
    MonthWindow,
    Transaction,
    TransactionKind,
)
from ledgersync.services.storage import CategoryOverrideStore


# The one cross-category alias: a "Groceries" budget also absorbs "Food"
GROCERIES_BUDGET = "Groceries"
FOOD_CATEGORY = "Food"

ZERO = Decimal("0")

Listener = Callable[["Ledger"], None]


class TransactionNotFoundError(LookupError):
    """No transaction with the given id is held by the Ledger."""
    pass


class AmbiguousTransactionError(LookupError):
    """An id is held as both an expense and income; pass the kind to choose."""
    pass


def _sum(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), ZERO)


def _group_sorted(transactions: Iterable[Transaction]) -> list[tuple[str, Decimal]]:
    """Sum amounts per category, largest first; ties keep first-seen order."""
    totals: dict[str, Decimal] = {}
    for tx in transactions:
        totals[tx.category] = totals.get(tx.category, ZERO) + tx.amount
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


class Ledger:
    """
    Accounts, transactions and budgets for one user session.

    Args:
        override_store: Where category edits on API-sourced expenses are
            persisted. If None, edits only live in memory.
        clock: Source of "now" for manual entries without a date.
    """

    def __init__(
        self,
        override_store: Optional[CategoryOverrideStore] = None,
        clock: Optional[Clock] = None,
    ):
        self._override_store = override_store
        self._clock = clock or utcnow
        self._accounts: list[Account] = []
        self._transactions: list[Transaction] = []
        self._budgets: list[Budget] = []
        self._listeners: list[Listener] = []
        self._logger = structlog.get_logger("ledgersync.ledger")

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def accounts(self) -> list[Account]:
        return list(self._accounts)

    @property
    def transactions(self) -> list[Transaction]:
        return list(self._transactions)

    @property
    def budgets(self) -> list[Budget]:
        return list(self._budgets)

    def _position(self, transaction_id: str, kind: Optional[TransactionKind]) -> int:
        matches = [
            position for position, tx in enumerate(self._transactions)
            if tx.id == transaction_id and (kind is None or tx.kind == kind)
        ]
        if not matches:
            raise TransactionNotFoundError(f"Transaction not found: {transaction_id}")
        if len(matches) > 1:
            raise AmbiguousTransactionError(
                f"Transaction id {transaction_id} is held as both an expense and income"
            )
        return matches[0]

    def get_transaction(
        self,
        transaction_id: str,
        kind: Optional[TransactionKind] = None,
    ) -> Transaction:
        """
        Look a transaction up by id.

        API purchases and deposits may share an id. Pass `kind` to pick
        one; without it a shared id raises AmbiguousTransactionError.
        """
        return self._transactions[self._position(transaction_id, kind)]

    def get_account(self, account_id: str) -> Optional[Account]:
        for account in self._accounts:
            if account.id == account_id:
                return account
        return None

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback fired after every mutation.

        Returns a function that removes the callback.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def replace_accounts(self, accounts: Iterable[Account]) -> None:
        """Replace the account list wholesale. Later duplicates of an id are dropped."""
        unique: dict[str, Account] = {}
        for account in accounts:
            unique.setdefault(account.id, account)
        self._accounts = list(unique.values())
        self._notify()

    def merge_transactions(self, batch: Iterable[Transaction]) -> tuple[int, int]:
        """
        Upsert a batch of transactions.

        Transactions with a source id replace the held transaction with the
        same (kind, source id) in place; everything else is appended.

        Returns: (inserted, replaced)
        """
        index = {
            tx.upsert_key: position
            for position, tx in enumerate(self._transactions)
            if tx.upsert_key is not None
        }
        inserted = replaced = 0

        for tx in batch:
            key = tx.upsert_key
            if key is not None and key in index:
                self._transactions[index[key]] = tx
                replaced += 1
                continue
            if key is not None:
                index[key] = len(self._transactions)
            self._transactions.append(tx)
            inserted += 1

        self._logger.info(
            "transactions_merged",
            inserted=inserted,
            replaced=replaced,
            total=len(self._transactions),
        )
        self._notify()
        return inserted, replaced

    def _add_manual(
        self,
        kind: TransactionKind,
        title: str,
        category: str,
        amount: Decimal,
        date: Optional[datetime],
        account_id: Optional[str],
    ) -> Transaction:
        tx = Transaction(
            date=date or self._clock(),
            title=title,
            category=category,
            amount=amount,
            kind=kind,
            account_id=account_id,
        )
        self._transactions.append(tx)
        self._logger.info("manual_entry_added", transaction_id=tx.id, kind=kind.value)
        self._notify()
        return tx

    def add_expense(
        self,
        title: str,
        category: str,
        amount: Decimal,
        date: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> Transaction:
        """Append a manual expense. Input must already be validated."""
        return self._add_manual(TransactionKind.EXPENSE, title, category, amount, date, account_id)

    def add_income(
        self,
        title: str,
        category: str,
        amount: Decimal,
        date: Optional[datetime] = None,
        account_id: Optional[str] = None,
    ) -> Transaction:
        """Append a manual income entry. Input must already be validated."""
        return self._add_manual(TransactionKind.INCOME, title, category, amount, date, account_id)

    def add_budget(self, name: str, limit: Decimal) -> Budget:
        budget = Budget(name=name, limit=limit)
        self._budgets.append(budget)
        self._notify()
        return budget

    def recategorize(
        self,
        transaction_id: str,
        category: str,
        kind: Optional[TransactionKind] = None,
    ) -> Transaction:
        """
        Change a transaction's category.

        For API-sourced expenses the choice is also written to the
        override store, so the next reconciliation pass keeps it.
        Deposits and manual entries are only changed in memory.
        `kind` disambiguates ids shared by a purchase and a deposit.
        """
        position = self._position(transaction_id, kind)
        tx = self._transactions[position]
        updated = tx.model_copy(update={"category": category})
        if self._override_store is not None and tx.source_id and tx.is_expense:
            self._override_store.set(tx.source_id, category)
        self._transactions[position] = updated
        self._logger.info(
            "category_overridden",
            transaction_id=transaction_id,
            kind=tx.kind.value,
            old_category=tx.category,
            new_category=category,
        )
        self._notify()
        return updated

    # -------------------------------------------------------------------------
    # Month-scoped views
    # -------------------------------------------------------------------------

    def expenses_in_window(self, window: MonthWindow) -> list[Transaction]:
        return [
            tx for tx in self._transactions
            if tx.kind == TransactionKind.EXPENSE and window.contains(tx.date)
        ]

    def income_in_window(self, window: MonthWindow) -> list[Transaction]:
        return [
            tx for tx in self._transactions
            if tx.kind == TransactionKind.INCOME and window.contains(tx.date)
        ]

    def total_spent(self, window: MonthWindow) -> Decimal:
        return _sum(self.expenses_in_window(window))

    def total_income(self, window: MonthWindow) -> Decimal:
        return _sum(self.income_in_window(window))

    def net(self, window: MonthWindow) -> Decimal:
        return self.total_income(window) - self.total_spent(window)

    def spend_by_category(self, window: MonthWindow) -> list[tuple[str, Decimal]]:
        """Expense totals per category, largest first (ties in first-seen order)."""
        return _group_sorted(self.expenses_in_window(window))

    def income_by_source(self, window: MonthWindow) -> list[tuple[str, Decimal]]:
        """Income totals per category, largest first (ties in first-seen order)."""
        return _group_sorted(self.income_in_window(window))

    def budget_utilization(self, window: MonthWindow, budget_name: str) -> Decimal:
        """
        Amount spent against a budget in the window.

        Matches categories exactly, except that a budget named "Groceries"
        also counts expenses categorized "Food". That alias is a one-off,
        not a general aliasing mechanism.
        """
        return _sum(
            tx for tx in self.expenses_in_window(window)
            if tx.category == budget_name
            or (tx.category == FOOD_CATEGORY and budget_name == GROCERIES_BUDGET)
        )

    def budgets_with_usage(self, window: MonthWindow) -> list[tuple[Budget, Decimal]]:
        return [(b, self.budget_utilization(window, b.name)) for b in self._budgets]

    def recent_transactions(
        self,
        window: MonthWindow,
        limit: int = 3,
    ) -> list[Transaction]:
        """Newest expenses and income in the window."""
        rows = self.expenses_in_window(window) + self.income_in_window(window)
        rows.sort(key=lambda tx: tx.date, reverse=True)
        return rows[:limit]

    def monthly_cash_flow(
        self,
        months: int = 10,
        now: Optional[datetime] = None,
    ) -> list[MonthlyCashFlow]:
        """Income and expense per calendar month, oldest first, ending at `now`'s month."""
        current = MonthWindow.for_date(now or self._clock())
        series = []
        for offset in range(months - 1, -1, -1):
            window = current.shifted(-offset)
            series.append(MonthlyCashFlow(
                month=window.short_label,
                month_index=window.month,
                year=window.year,
                income=self.total_income(window),
                expense=self.total_spent(window),
            ))
        return series

    # -------------------------------------------------------------------------
    # Window-independent views
    # -------------------------------------------------------------------------

    def sorted_transactions(self, descending: bool = True) -> list[Transaction]:
        return sorted(self._transactions, key=lambda tx: tx.date, reverse=descending)

    def transactions_for_account(self, account_id: str) -> list[Transaction]:
        return [
            tx for tx in self.sorted_transactions()
            if tx.account_id == account_id
        ]

    def total_balance(self) -> Decimal:
        return sum((a.balance for a in self._accounts), ZERO)

    def credit_cards(self) -> list[CreditCardDebt]:
        return [
            CreditCardDebt(
                id=account.id,
                account_name=account.display_name,
                balance=account.balance,
            )
            for account in self._accounts
            if account.is_credit
        ]

    def credit_card_debt(self) -> Decimal:
        """Sum of balances on accounts whose type mentions 'credit' or 'card'."""
        return sum((a.balance for a in self._accounts if a.is_credit), ZERO)

    def checking_accounts(self) -> list[Account]:
        return [a for a in self._accounts if a.is_checking]
