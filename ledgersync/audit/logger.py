"""
Audit Logger

DESIGN DECISION: Every data-quality event in reconciliation is logged.
This provides:
1. Traceability of each reconciliation pass
2. Debugging capability against a flaky sandbox API
3. A record of user category edits and manual entries

The audit logger:
- Is async so it can be awaited inside the reconciliation fan-out
- Gracefully handles failures (never breaks reconciliation if logging fails)
- Supports correlation IDs to trace all events of one pass
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledgersync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from ledgersync.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledgersync.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    def _log_locally(self, event: AuditEvent) -> None:
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self._log_locally(event)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_fetch_failed(
        self,
        resource: str,
        entity_id: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Log a remote slice that failed and was treated as empty."""
        await self.log(AuditEventBuilder.fetch_failed(
            resource=resource,
            entity_id=entity_id,
            error=error,
            correlation_id=correlation_id,
        ))

    async def log_merchant_lookup_failed(
        self,
        merchant_id: str,
        purchase_id: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        """Log a merchant lookup that fell back to the purchase description."""
        await self.log(AuditEventBuilder.merchant_lookup_failed(
            merchant_id=merchant_id,
            purchase_id=purchase_id,
            error=error,
            correlation_id=correlation_id,
        ))

    async def log_date_parse_fallback(
        self,
        record_type: str,
        record_id: str,
        raw_value: str,
        correlation_id: UUID,
    ) -> None:
        """Log a record whose date could not be parsed."""
        await self.log(AuditEventBuilder.date_parse_fallback(
            record_type=record_type,
            record_id=record_id,
            raw_value=raw_value,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a reconciliation pass and pass it through
    every event the pass produces.
    """
    return uuid4()
