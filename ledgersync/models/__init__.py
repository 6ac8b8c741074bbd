"""
Data Models Package

This package contains all Pydantic models used in LedgerSync.
All data flowing through the reconciliation core conforms to these schemas.
"""

from ledgersync.models.finance import (
    Account,
    AntExpensePeriod,
    Budget,
    CreditCardDebt,
    FinancialSummary,
    Merchant,
    MonthlyCashFlow,
    MonthWindow,
    RawDeposit,
    RawPurchase,
    ReconciliationResult,
    SliceFailure,
    Transaction,
    TransactionKind,
    ValidationIssue,
    ValidationResult,
    as_utc,
)
from ledgersync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AntExpensePeriod",
    "Budget",
    "CreditCardDebt",
    "FinancialSummary",
    "Merchant",
    "MonthlyCashFlow",
    "MonthWindow",
    "RawDeposit",
    "RawPurchase",
    "ReconciliationResult",
    "SliceFailure",
    "Transaction",
    "TransactionKind",
    "ValidationIssue",
    "ValidationResult",
    "as_utc",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
