"""
Financial Summary and Ant Expenses

"Ant expenses" are small expenses (below a threshold, 100 by default)
that add up unnoticed. They feed two consumers:
1. The micro-spending breakdown, filtered by a rolling period
2. The financial summary snapshot handed to the chat assistant

DESIGN DECISION: The summary is a plain pydantic snapshot, not a live
view. The chat component never holds a reference to the Ledger.
"""

import calendar
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from ledgersync.config import LedgerSettings, get_settings
from ledgersync.core.dates import utcnow
from ledgersync.core.ledger import ZERO, Ledger
from ledgersync.models.finance import (
    AntExpensePeriod,
    FinancialSummary,
    Transaction,
    TransactionKind,
    as_utc,
)


DEFAULT_ANT_THRESHOLD = Decimal("100")


def _one_month_before(ts: datetime) -> datetime:
    """Same day and time one calendar month earlier, clamped to month end."""
    year, month = (ts.year, ts.month - 1) if ts.month > 1 else (ts.year - 1, 12)
    day = min(ts.day, calendar.monthrange(year, month)[1])
    return ts.replace(year=year, month=month, day=day)


def is_ant_expense(tx: Transaction, threshold: Decimal = DEFAULT_ANT_THRESHOLD) -> bool:
    return tx.kind == TransactionKind.EXPENSE and tx.amount < threshold


def ant_expenses(
    transactions: Iterable[Transaction],
    period: Optional[AntExpensePeriod] = None,
    now: Optional[datetime] = None,
    threshold: Decimal = DEFAULT_ANT_THRESHOLD,
) -> list[Transaction]:
    """
    Small expenses, optionally limited to a rolling period.

    Args:
        transactions: Candidate transactions (any kind)
        period: TODAY (same UTC calendar day as `now`), WEEK (last 7 days)
            or MONTH (since the same day last month). None means no
            date filter.
        now: Reference time, defaults to the current UTC time. A naive
            value is taken as UTC.
        threshold: Amounts strictly below this count as ant expenses

    Returns:
        Matching transactions in their input order
    """
    selected = [tx for tx in transactions if is_ant_expense(tx, threshold)]
    if period is None:
        return selected

    now = as_utc(now or utcnow())
    if period == AntExpensePeriod.TODAY:
        return [tx for tx in selected if tx.date.date() == now.date()]
    if period == AntExpensePeriod.WEEK:
        since = now - timedelta(days=7)
    else:
        since = _one_month_before(now)
    return [tx for tx in selected if tx.date >= since]


def total_amount(transactions: Iterable[Transaction]) -> Decimal:
    return sum((tx.amount for tx in transactions), ZERO)


def top_categories(transactions: Iterable[Transaction], limit: int = 3) -> list[str]:
    """Categories by transaction count, most frequent first; ties keep first-seen order."""
    counts: dict[str, int] = {}
    for tx in transactions:
        counts[tx.category] = counts.get(tx.category, 0) + 1
    ranked = sorted(counts, key=lambda category: counts[category], reverse=True)
    return ranked[:limit]


def financial_summary(
    ledger: Ledger,
    settings: Optional[LedgerSettings] = None,
) -> Optional[FinancialSummary]:
    """
    Snapshot of the ledger for the chat assistant.

    Returns None while no accounts are held (nothing has been reconciled
    yet), so the assistant can say it has no data instead of reporting
    zeros.
    """
    settings = settings or get_settings().ledger
    if not ledger.accounts:
        return None

    small = ant_expenses(ledger.transactions, threshold=settings.ant_expense_threshold)
    return FinancialSummary(
        total_balance=ledger.total_balance(),
        total_ant_expenses=total_amount(small),
        top_categories=top_categories(small, settings.summary_top_categories),
        recent_transactions=ledger.sorted_transactions()[:settings.summary_recent_transactions],
    )
