"""
Abstract Banking Client Interface

DESIGN DECISION: The Reconciler depends on this interface, never on
the HTTP client directly. This allows us to:
1. Test reconciliation with in-memory fakes (no network in tests)
2. Point the core at another sandbox API later
3. Keep transport concerns (retries, pagination, auth) out of the core

Every method may raise a BankingAPIError subclass. Callers decide what
a failure means; the Reconciler treats it as "no data for this slice".
"""

from abc import ABC, abstractmethod

from ledgersync.models.finance import Account, Merchant, RawDeposit, RawPurchase


class BankingClientInterface(ABC):
    """Read-only access to accounts, purchases, deposits and merchants."""

    @abstractmethod
    async def fetch_accounts(self, customer_id: str) -> list[Account]:
        """
        List the accounts of a customer.

        Raises:
            BankingAPIError: On transport, status or decoding failure
        """
        pass

    @abstractmethod
    async def fetch_account(self, account_id: str) -> Account:
        """
        Look up one account directly by id.

        Raises:
            BankingNotFoundError: If the account does not exist
            BankingAPIError: On any other failure
        """
        pass

    @abstractmethod
    async def fetch_purchases(self, account_id: str) -> list[RawPurchase]:
        """List purchases paid from an account."""
        pass

    @abstractmethod
    async def fetch_deposits(self, account_id: str) -> list[RawDeposit]:
        """List deposits paid into an account."""
        pass

    @abstractmethod
    async def fetch_merchant(self, merchant_id: str) -> Merchant:
        """Look up a merchant by id."""
        pass

    async def aclose(self) -> None:
        """Release any underlying connections."""
        return None


class BankingAPIError(Exception):
    """Base exception for banking API failures."""
    pass


class BankingTransportError(BankingAPIError):
    """Network failure or timeout before a response arrived."""
    pass


class BankingHTTPError(BankingAPIError):
    """The API answered with a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class BankingNotFoundError(BankingHTTPError):
    """404 from the API."""

    def __init__(self, message: str):
        super().__init__(404, message)


class BankingRateLimitError(BankingHTTPError):
    """429 from the API."""

    def __init__(self, message: str):
        super().__init__(429, message)


class BankingServerError(BankingHTTPError):
    """5xx from the API."""
    pass


class BankingDecodingError(BankingAPIError):
    """The response body did not match the expected schema."""
    pass


# Failures worth another attempt
RETRYABLE_ERRORS = (
    BankingTransportError,
    BankingRateLimitError,
    BankingServerError,
)
