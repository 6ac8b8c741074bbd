"""Reconciliation core: dates, month selection, ledger, reconciler, summary."""

from ledgersync.core.dates import DateNormalizer, parse_date, utcnow
from ledgersync.core.ledger import (
    AmbiguousTransactionError,
    Ledger,
    TransactionNotFoundError,
)
from ledgersync.core.month import MonthNavigationError, MonthSelector
from ledgersync.core.reconciler import AccountResolver, Reconciler, alias_category
from ledgersync.core.summary import (
    ant_expenses,
    financial_summary,
    top_categories,
    total_amount,
)

__all__ = [
    "AccountResolver",
    "AmbiguousTransactionError",
    "DateNormalizer",
    "Ledger",
    "MonthNavigationError",
    "MonthSelector",
    "Reconciler",
    "TransactionNotFoundError",
    "alias_category",
    "ant_expenses",
    "financial_summary",
    "parse_date",
    "top_categories",
    "total_amount",
    "utcnow",
]
