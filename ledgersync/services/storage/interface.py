"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for the two small pieces
of state LedgerSync keeps outside the in-memory Ledger:
1. Category overrides (user-chosen category per external transaction id)
2. Audit events

This allows us to:
1. Use in-memory storage for testing
2. Swap the JSON file for on-device key-value storage later
3. Keep the Reconciler and Ledger decoupled from where overrides live

The interface is intentionally simple - a key-value mapping, not a database.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from ledgersync.models.audit import AuditEvent


class CategoryOverrideStore(ABC):
    """
    Persistent mapping from external transaction id to category label.

    Read during reconciliation and written when the user changes a
    category. Keys are immutable external ids, so last-write-wins is
    the only consistency guarantee offered.
    """

    @abstractmethod
    def get(self, transaction_id: str) -> Optional[str]:
        """
        Look up the override for a transaction.

        Args:
            transaction_id: External purchase id

        Returns:
            The stored category, or None if the user never chose one
        """
        pass

    @abstractmethod
    def set(self, transaction_id: str, category: str) -> None:
        """
        Store (or replace) the override for a transaction.

        Raises:
            StorageError: If the override cannot be persisted
        """
        pass

    @abstractmethod
    def remove(self, transaction_id: str) -> bool:
        """
        Drop an override.

        Returns:
            True if an override existed
        """
        pass

    @abstractmethod
    def all(self) -> dict[str, str]:
        """Return a copy of every stored override."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one reconciliation pass).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ConnectionError(StorageError):
    """Could not reach the storage backend."""
    pass
