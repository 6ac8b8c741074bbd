"""Services package."""

from ledgersync.services.banking import (
    BankingAPIError,
    BankingClientInterface,
    BankingDecodingError,
    BankingHTTPError,
    BankingNotFoundError,
    BankingRateLimitError,
    BankingServerError,
    BankingTransportError,
    NessieClient,
)
from ledgersync.services.storage import (
    AuditStorageInterface,
    CategoryOverrideStore,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryCategoryOverrideStore,
    JsonFileCategoryOverrideStore,
    NotFoundError,
    StorageError,
)

__all__ = [
    # Banking services
    "BankingAPIError",
    "BankingClientInterface",
    "BankingDecodingError",
    "BankingHTTPError",
    "BankingNotFoundError",
    "BankingRateLimitError",
    "BankingServerError",
    "BankingTransportError",
    "NessieClient",
    # Storage services
    "AuditStorageInterface",
    "CategoryOverrideStore",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryCategoryOverrideStore",
    "JsonFileCategoryOverrideStore",
    "NotFoundError",
    "StorageError",
]
