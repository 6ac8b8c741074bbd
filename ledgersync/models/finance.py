"""
Core Data Models for LedgerSync

These models define the schemas for all data flowing through the
reconciliation core. They are designed to:
1. Decode the banking API's snake_case / `_id` records at the boundary
2. Hold one unified Transaction shape for purchases, deposits and manual entries
3. Keep amounts non-negative (direction lives in `kind`, never in the sign)
4. Be serializable for logging and for the chat summary snapshot

DESIGN DECISION: All timestamps are timezone-aware UTC.
Naive datetimes handed in by callers are interpreted as UTC.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def _to_decimal(value):
    """Floats go through str() so 4.5 becomes Decimal('4.5'), not its binary expansion."""
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


# =============================================================================
# ENUMS
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of a transaction. Amounts are always magnitudes."""
    EXPENSE = "expense"
    INCOME = "income"


class AntExpensePeriod(str, Enum):
    """Rolling periods used by the ant-expense breakdown."""
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


# =============================================================================
# REMOTE API RECORDS
# =============================================================================

class _ApiRecord(BaseModel):
    """Base for records decoded from the banking API."""
    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        extra="ignore",
    )


class Account(_ApiRecord):
    """
    One external bank or credit account.

    Replaced wholesale on every reconciliation pass.
    """

    id: str = Field(
        ...,
        alias="_id",
        min_length=1,
        description="Stable external identifier"
    )
    type: str = Field(
        default="",
        description="Free-text classification, e.g. 'Checking', 'Credit Card'"
    )
    nickname: str = Field(
        default="",
        description="User nickname, may be empty"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed balance"
    )
    customer_id: str = Field(
        default="",
        description="Owning customer"
    )
    rewards: int = 0
    account_number: str = ""

    @field_validator('type', 'nickname', 'customer_id', 'account_number', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator('rewards', mode='before')
    @classmethod
    def none_to_zero(cls, v):
        return 0 if v is None else v

    @field_validator('balance', mode='before')
    @classmethod
    def coerce_balance(cls, v):
        if v is None:
            return Decimal("0")
        # Some accounts report {"amount": ..., "limit": ...}
        if isinstance(v, dict):
            v = v.get("amount") or 0
        return _to_decimal(v)

    @property
    def display_name(self) -> str:
        """Nickname, falling back to the account type."""
        return self.nickname or self.type

    @property
    def is_credit(self) -> bool:
        kind = self.type.lower()
        return "credit" in kind or "card" in kind

    @property
    def is_checking(self) -> bool:
        return "checking" in self.type.lower()


class RawPurchase(_ApiRecord):
    """A purchase as returned by `/accounts/{id}/purchases`."""

    id: str = Field(..., alias="_id", min_length=1)
    description: str = ""
    amount: Decimal
    purchase_date: str = ""
    merchant_id: str = ""
    payer_account_id: str = Field(default="", alias="payer_id")
    medium: str = ""
    status: str = ""

    @field_validator('description', 'purchase_date', 'merchant_id', 'payer_account_id',
                     'medium', 'status', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return _to_decimal(v)


class RawDeposit(_ApiRecord):
    """A deposit as returned by `/accounts/{id}/deposits`."""

    id: str = Field(..., alias="_id", min_length=1)
    description: str = ""
    amount: Decimal
    transaction_date: str = ""
    payee_account_id: str = Field(default="", alias="payee_id")
    medium: str = ""
    status: str = ""

    @field_validator('description', 'transaction_date', 'payee_account_id',
                     'medium', 'status', mode='before')
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return _to_decimal(v)


class Merchant(_ApiRecord):
    """A merchant as returned by `/merchants/{id}`."""

    id: str = Field(default="", alias="_id")
    name: str = Field(..., min_length=1)
    category: list[str] = Field(default_factory=list)

    @field_validator('category', mode='before')
    @classmethod
    def wrap_single_category(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Transaction(BaseModel):
    """
    Unified purchase / deposit / manual entry.

    `source_id` is the external purchase or deposit id for API-sourced
    records and None for manual entries. Together with `kind` it is the
    upsert key used when merging reconciliation batches.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=_new_id,
        description="Natural external id, or a fresh id for manual entries"
    )
    date: datetime = Field(
        ...,
        description="Canonical UTC timestamp"
    )
    title: str = Field(
        ...,
        description="Merchant name, description or user-entered text"
    )
    category: str = Field(
        ...,
        description="Override category, else the account alias default"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Magnitude only; direction is carried by kind"
    )
    kind: TransactionKind
    account_id: Optional[str] = None
    source_id: Optional[str] = Field(
        default=None,
        description="External purchase/deposit id; upsert key when present"
    )

    @field_validator('amount', mode='before')
    @classmethod
    def coerce_amount(cls, v):
        return _to_decimal(v)

    @field_validator('date')
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def upsert_key(self) -> Optional[tuple[TransactionKind, str]]:
        """Merge key, or None when the transaction must always be appended."""
        if not self.source_id:
            return None
        return (self.kind, self.source_id)

    @property
    def is_expense(self) -> bool:
        return self.kind == TransactionKind.EXPENSE

    @property
    def is_income(self) -> bool:
        return self.kind == TransactionKind.INCOME


class Budget(BaseModel):
    """
    A named monthly spending ceiling.

    `name` is matched against transaction categories; see
    Ledger.budget_utilization for the one alias rule.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    limit: Decimal = Field(..., gt=0)

    @field_validator('limit', mode='before')
    @classmethod
    def coerce_limit(cls, v):
        return _to_decimal(v)


# =============================================================================
# MONTH WINDOW
# =============================================================================

class MonthWindow(BaseModel):
    """
    Half-open calendar month interval [start, end).

    A timestamp exactly at `start` is inside; one exactly at `end` is not.
    """
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @classmethod
    def for_date(cls, reference: datetime) -> "MonthWindow":
        reference = as_utc(reference)
        start = reference.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        if start.month == 12:
            end = start.replace(year=start.year + 1, month=1)
        else:
            end = start.replace(month=start.month + 1)
        return cls(start=start, end=end)

    @classmethod
    def for_month(cls, year: int, month: int) -> "MonthWindow":
        return cls.for_date(datetime(year, month, 1, tzinfo=timezone.utc))

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def month(self) -> int:
        return self.start.month

    @property
    def label(self) -> str:
        """e.g. 'March 2024'."""
        return self.start.strftime("%B %Y")

    @property
    def short_label(self) -> str:
        return self.start.strftime("%b")

    def contains(self, ts: datetime) -> bool:
        ts = as_utc(ts)
        return self.start <= ts < self.end

    def shifted(self, months: int) -> "MonthWindow":
        """Window `months` calendar months away (negative goes back)."""
        index = self.start.year * 12 + (self.start.month - 1) + months
        return MonthWindow.for_month(index // 12, index % 12 + 1)


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class MonthlyCashFlow(BaseModel):
    """Income and expense totals for one calendar month."""

    month: str = Field(..., description="Short month label, e.g. 'Mar'")
    month_index: int = Field(..., ge=1, le=12)
    year: int
    income: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.income - self.expense


class CreditCardDebt(BaseModel):
    """Outstanding balance on one credit account."""

    id: str
    account_name: str
    balance: Decimal
    limit: Optional[Decimal] = None


class FinancialSummary(BaseModel):
    """
    Plain data snapshot handed to the chat assistant.

    This is the only view of the ledger the chat component may read.
    """

    total_balance: Decimal
    total_ant_expenses: Decimal
    top_categories: list[str] = Field(default_factory=list)
    recent_transactions: list[Transaction] = Field(default_factory=list)

    def to_context_text(self) -> str:
        """Render the snapshot as the text block embedded in the chat context."""
        categories = (
            ", ".join(self.top_categories)
            if self.top_categories
            else "No categories found"
        )
        recent = (
            ", ".join(f"{tx.title}: ${tx.amount}" for tx in self.recent_transactions)
            if self.recent_transactions
            else "No transactions found"
        )
        return "\n".join([
            f"- Total Balance: ${self.total_balance}",
            f"- Ant Expenses: ${self.total_ant_expenses}",
            f"- Top Categories: {categories}",
            f"- Recent Transactions: {recent}",
        ])


# =============================================================================
# RECONCILIATION RESULTS
# =============================================================================

class SliceFailure(BaseModel):
    """One remote slice that failed and was treated as empty."""

    resource: str = Field(
        ...,
        pattern="^(accounts|purchases|deposits|merchant|overrides)$",
        description="Which remote resource failed"
    )
    entity_id: str = Field(
        ...,
        description="Customer, account or merchant id the slice was for"
    )
    error_type: str
    message: str


class ReconciliationResult(BaseModel):
    """
    Outcome of one reconciliation pass.

    `transactions` is the deduplicated batch the pass produced, whether or
    not it was merged (a stale pass may be discarded).
    """

    pass_id: int = Field(..., ge=1)
    correlation_id: UUID
    started_at: datetime
    finished_at: Optional[datetime] = None

    accounts: list[Account] = Field(default_factory=list)
    transactions: list[Transaction] = Field(default_factory=list)
    failures: list[SliceFailure] = Field(default_factory=list)

    synthetic_account_injected: bool = False
    used_ledger_accounts: bool = False
    duplicates_skipped: int = Field(default=0, ge=0)
    date_fallbacks: int = Field(default=0, ge=0)
    merged: bool = False

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def expense_count(self) -> int:
        return sum(1 for tx in self.transactions if tx.is_expense)

    @property
    def income_count(self) -> int:
        return sum(1 for tx in self.transactions if tx.is_income)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single problem found in user input."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'future_date')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning)$",
        description="Errors reject the entry; warnings are shown but allowed"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one manual entry or budget."""

    entry_type: str = Field(
        ...,
        description="'expense', 'income' or 'budget'"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == "error" for issue in self.issues)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "warning"]
