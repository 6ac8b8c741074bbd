"""
Storage Services Package

Provides abstract interfaces and concrete implementations for the state
LedgerSync keeps outside the in-memory Ledger. Category overrides live in
a JSON file; audit events are held in memory.
"""

from ledgersync.services.storage.interface import (
    AuditStorageInterface,
    CategoryOverrideStore,
    ConnectionError,
    NotFoundError,
    StorageError,
)
from ledgersync.services.storage.json_file import JsonFileCategoryOverrideStore
from ledgersync.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryCategoryOverrideStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "CategoryOverrideStore",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryCategoryOverrideStore",
    "JsonFileCategoryOverrideStore",
]
