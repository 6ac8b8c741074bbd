"""In-memory storage backends, used for tests and storage-less sessions."""

from typing import Optional
from uuid import UUID

from ledgersync.models.audit import AuditEvent
from ledgersync.services.storage.interface import (
    AuditStorageInterface,
    CategoryOverrideStore,
)


class InMemoryCategoryOverrideStore(CategoryOverrideStore):
    """Dict-backed override store. Nothing survives the process."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._overrides: dict[str, str] = dict(initial or {})

    def get(self, transaction_id: str) -> Optional[str]:
        return self._overrides.get(transaction_id)

    def set(self, transaction_id: str, category: str) -> None:
        self._overrides[transaction_id] = category

    def remove(self, transaction_id: str) -> bool:
        return self._overrides.pop(transaction_id, None) is not None

    def all(self) -> dict[str, str]:
        return dict(self._overrides)


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
