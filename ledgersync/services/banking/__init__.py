"""
Banking Services Package

Remote Data Client for the sandbox banking API: an abstract interface the
Reconciler depends on, and the httpx implementation for Nessie.
"""

from ledgersync.services.banking.interface import (
    RETRYABLE_ERRORS,
    BankingAPIError,
    BankingClientInterface,
    BankingDecodingError,
    BankingHTTPError,
    BankingNotFoundError,
    BankingRateLimitError,
    BankingServerError,
    BankingTransportError,
)
from ledgersync.services.banking.nessie_client import NessieClient

__all__ = [
    # Interface
    "BankingClientInterface",
    # Exceptions
    "BankingAPIError",
    "BankingDecodingError",
    "BankingHTTPError",
    "BankingNotFoundError",
    "BankingRateLimitError",
    "BankingServerError",
    "BankingTransportError",
    "RETRYABLE_ERRORS",
    # Nessie implementation
    "NessieClient",
]
