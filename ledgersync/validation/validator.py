"""
Manual Entry Validation

DESIGN DECISION: User input is validated at the boundary, before the
Ledger is touched. The Ledger's mutation methods assume valid input and
never re-check it.

Validation happens in two stages:

STAGE 1 - SCHEMA VALIDATION (errors, the entry is rejected):
- Title / budget name present and non-blank
- Amount / limit parseable and strictly positive

STAGE 2 - SEMANTIC VALIDATION (warnings, the entry is allowed):
- Unusually large amount
- Date in the future

Stage 2 only runs when stage 1 passes.

IMPORTANT: Validation NEVER silently fixes issues. It reports them.
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from ledgersync.config import LedgerSettings, get_settings
from ledgersync.core.dates import Clock, utcnow
from ledgersync.models.finance import ValidationIssue, ValidationResult, as_utc


class InvalidEntryError(ValueError):
    """Raised when a manual entry or budget fails schema validation."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Invalid {result.entry_type}: {messages}")


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Turn user input into a Decimal.

    Accepts Decimal, int, float or a numeric string. Returns None for
    anything that is not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value.strip() if isinstance(value, str) else value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


class EntryValidator:
    """
    Validates manual expenses, income entries and budgets.

    Stage 1: Schema validation (blocking)
    Stage 2: Semantic validation (warnings only)
    """

    def __init__(
        self,
        settings: Optional[LedgerSettings] = None,
        clock: Optional[Clock] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._clock = clock or utcnow

    def _check_text(self, field: str, value: Optional[str], label: str) -> list[ValidationIssue]:
        if value is None or not value.strip():
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
                severity="error",
            )]
        return []

    def _check_positive(self, field: str, value: Any, label: str) -> list[ValidationIssue]:
        amount = parse_amount(value)
        if amount is None:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_format",
                message=f"{label} must be a number",
                severity="error",
            )]
        if amount <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message=f"{label} must be greater than zero",
                severity="error",
            )]
        return []

    def _validate_semantic(
        self,
        amount: Decimal,
        date: Optional[datetime],
    ) -> list[ValidationIssue]:
        issues = []

        if amount > self._settings.large_entry_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount (${amount:,.2f}) seems unusually high",
                severity="warning",
            ))

        if date is not None:
            latest = self._clock() + timedelta(days=self._settings.future_date_tolerance_days)
            if as_utc(date) > latest:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message=f"Date ({date.date()}) is in the future",
                    severity="warning",
                ))

        return issues

    def validate_entry(
        self,
        entry_type: str,
        title: Optional[str],
        category: Optional[str],
        amount: Any,
        date: Optional[datetime] = None,
    ) -> ValidationResult:
        """
        Validate a manual expense or income entry.

        Args:
            entry_type: "expense" or "income"
            title: User-entered title
            category: Chosen category
            amount: Raw amount as entered
            date: Optional entry date

        Returns:
            ValidationResult; `is_valid` is False when any error was found
        """
        issues = (
            self._check_text("title", title, "Title")
            + self._check_text("category", category, "Category")
            + self._check_positive("amount", amount, "Amount")
        )

        result = ValidationResult(entry_type=entry_type, issues=issues)
        if result.is_valid:
            result.issues.extend(self._validate_semantic(parse_amount(amount), date))
        return result

    def validate_expense(self, title, category, amount, date=None) -> ValidationResult:
        return self.validate_entry("expense", title, category, amount, date)

    def validate_income(self, title, category, amount, date=None) -> ValidationResult:
        return self.validate_entry("income", title, category, amount, date)

    def validate_budget(self, name: Optional[str], limit: Any) -> ValidationResult:
        issues = (
            self._check_text("name", name, "Budget name")
            + self._check_positive("limit", limit, "Budget limit")
        )
        return ValidationResult(entry_type="budget", issues=issues)

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line per issue, errors first, for display next to the form."""
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        for issue in result.errors:
            lines.append(f"Error: {issue.message}")
        for issue in result.warnings:
            lines.append(f"Warning: {issue.message}")
        return "\n".join(lines)
