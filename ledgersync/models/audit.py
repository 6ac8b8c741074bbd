"""
Audit Models for LedgerSync

Every data-quality or failure event in the reconciliation pipeline is
recorded. This provides:
1. Traceability of what each reconciliation pass did
2. Debugging information when the sandbox API misbehaves
3. Material for a "some data failed to load" notice in the UI

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of the reconciliation pass has its own event type.
    """
    # Reconciliation pass
    RECONCILIATION_STARTED = "reconciliation_started"
    ACCOUNTS_RESOLVED = "accounts_resolved"
    SYNTHETIC_ACCOUNT_INJECTED = "synthetic_account_injected"
    ACCOUNTS_FALLBACK_USED = "accounts_fallback_used"
    BATCH_MERGED = "batch_merged"
    STALE_PASS_DISCARDED = "stale_pass_discarded"
    RECONCILIATION_COMPLETED = "reconciliation_completed"

    # Data quality
    FETCH_FAILED = "fetch_failed"
    MERCHANT_LOOKUP_FAILED = "merchant_lookup_failed"
    DATE_PARSE_FALLBACK = "date_parse_fallback"
    DUPLICATE_SKIPPED = "duplicate_skipped"

    # User actions
    CATEGORY_OVERRIDDEN = "category_overridden"
    MANUAL_ENTRY_ADDED = "manual_entry_added"
    BUDGET_ADDED = "budget_added"
    ENTRY_REJECTED = "entry_rejected"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'purchase', 'merchant')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="External id of the entity this event relates to"
    )

    # Correlation - one id per reconciliation pass
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one pass)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_json_line(self) -> str:
        """Single-line JSON form, used by file-backed audit storage."""
        return json.dumps(self.to_log_dict(), default=str)


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.fetch_failed("purchases", account_id, err, correlation_id)
        event = AuditEventBuilder.batch_merged(pass_id, inserted, replaced, correlation_id)
    """

    @staticmethod
    def reconciliation_started(
        pass_id: int,
        customer_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_STARTED,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description=f"Reconciliation pass {pass_id} started",
            details={"pass_id": pass_id},
        )

    @staticmethod
    def accounts_resolved(
        customer_id: str,
        account_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_RESOLVED,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description=f"Resolved {len(account_ids)} accounts",
            details={"account_ids": account_ids},
        )

    @staticmethod
    def synthetic_account_injected(
        account_id: str,
        alias: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNTHETIC_ACCOUNT_INJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Override account missing from API listing, synthesized as '{alias}'",
            details={"alias": alias},
        )

    @staticmethod
    def accounts_fallback_used(
        customer_id: str,
        account_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNTS_FALLBACK_USED,
            severity=AuditSeverity.WARNING,
            entity_type="customer",
            entity_id=customer_id,
            correlation_id=correlation_id,
            description=f"Account listing failed, kept {account_count} previously held accounts",
            details={"account_count": account_count},
        )

    @staticmethod
    def fetch_failed(
        resource: str,
        entity_id: str,
        error: Exception,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type=resource,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Fetching {resource} for {entity_id} failed; treated as empty",
            error_message=str(error),
            details={"error_type": type(error).__name__},
        )

    @staticmethod
    def merchant_lookup_failed(
        merchant_id: str,
        purchase_id: str,
        error: Exception,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MERCHANT_LOOKUP_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="merchant",
            entity_id=merchant_id,
            correlation_id=correlation_id,
            description="Merchant lookup failed, using purchase description",
            error_message=str(error),
            details={
                "purchase_id": purchase_id,
                "error_type": type(error).__name__,
            },
        )

    @staticmethod
    def date_parse_fallback(
        record_type: str,
        record_id: str,
        raw_value: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATE_PARSE_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type=record_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Unparseable date '{raw_value[:50]}', using current time",
            details={"raw_value": raw_value},
        )

    @staticmethod
    def duplicate_skipped(
        record_type: str,
        record_id: str,
        account_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUPLICATE_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type=record_type,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Duplicate {record_type} seen again via account {account_id}",
            details={"account_id": account_id},
        )

    @staticmethod
    def batch_merged(
        pass_id: int,
        inserted: int,
        replaced: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_MERGED,
            correlation_id=correlation_id,
            description=f"Pass {pass_id} merged: {inserted} new, {replaced} replaced",
            details={
                "pass_id": pass_id,
                "inserted": inserted,
                "replaced": replaced,
            },
        )

    @staticmethod
    def stale_pass_discarded(
        pass_id: int,
        latest_merged_pass_id: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STALE_PASS_DISCARDED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=(
                f"Pass {pass_id} settled after pass {latest_merged_pass_id} merged; "
                "results discarded"
            ),
            details={
                "pass_id": pass_id,
                "latest_merged_pass_id": latest_merged_pass_id,
            },
        )

    @staticmethod
    def reconciliation_completed(
        pass_id: int,
        transaction_count: int,
        failure_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        severity = AuditSeverity.WARNING if failure_count else AuditSeverity.INFO
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_COMPLETED,
            severity=severity,
            correlation_id=correlation_id,
            description=(
                f"Pass {pass_id} completed with {transaction_count} transactions "
                f"and {failure_count} failed slices"
            ),
            details={
                "pass_id": pass_id,
                "transaction_count": transaction_count,
                "failure_count": failure_count,
            },
        )

    @staticmethod
    def category_overridden(
        transaction_id: str,
        old_category: str,
        new_category: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CATEGORY_OVERRIDDEN,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Category changed: {old_category} -> {new_category}",
            details={
                "old_category": old_category,
                "new_category": new_category,
            },
            is_user_action=True,
        )

    @staticmethod
    def manual_entry_added(
        transaction_id: str,
        kind: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MANUAL_ENTRY_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Manual {kind} added: ${amount}",
            details={"kind": kind, "amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def budget_added(
        budget_id: str,
        name: str,
        limit: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_ADDED,
            entity_type="budget",
            entity_id=budget_id,
            description=f"Budget added: {name} (${limit})",
            details={"name": name, "limit": limit},
            is_user_action=True,
        )

    @staticmethod
    def entry_rejected(
        entry_type: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entry_type,
            description=f"{entry_type.capitalize()} rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
