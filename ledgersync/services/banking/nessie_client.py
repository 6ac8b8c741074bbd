"""
Banking API Client for the Nessie sandbox

DESIGN DECISION: We use httpx's AsyncClient because:
1. Every fetch in a reconciliation pass is awaited concurrently
2. Connection pooling across the many per-account calls
3. MockTransport lets tests exercise the real request path offline

This client handles:
1. API-key authentication (the `key` query parameter)
2. Retrying transient failures (network, 429, 5xx) with tenacity
3. Following paginated envelopes until exhausted
4. Decoding `_id` / snake_case records into our models

It does NOT decide what a failure means. Every failure is raised as a
BankingAPIError subclass and the Reconciler isolates it.
"""

from typing import Any, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ledgersync.config import BankingSettings, get_settings
from ledgersync.models.finance import Account, Merchant, RawDeposit, RawPurchase
from ledgersync.services.banking.interface import (
    RETRYABLE_ERRORS,
    BankingClientInterface,
    BankingDecodingError,
    BankingHTTPError,
    BankingNotFoundError,
    BankingRateLimitError,
    BankingServerError,
    BankingTransportError,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

# Hard stop for paginated listings that keep pointing somewhere new
MAX_PAGES = 100


class NessieClient(BankingClientInterface):
    """
    Async client for the Nessie banking API.

    Can be used as an async context manager; otherwise call aclose()
    when done. An externally supplied httpx.AsyncClient is never closed
    by this class.
    """

    def __init__(
        self,
        settings: Optional[BankingSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().banking
        self._http = http_client
        self._owns_http = http_client is None

    async def __aenter__(self) -> "NessieClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.timeout_seconds,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def _retrying(self) -> AsyncRetrying:
        backoff = self._settings.retry_backoff_seconds
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(multiplier=backoff, min=backoff, max=10 * backoff),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )

    async def _send(self, path: str) -> Any:
        """One GET round-trip, mapped onto the BankingAPIError hierarchy."""
        client = self._get_client()
        # `params=` would replace a query already on the path (paging links)
        url = httpx.URL(path).copy_merge_params({"key": self._settings.api_key})

        try:
            response = await client.get(url)
        except httpx.TimeoutException as e:
            raise BankingTransportError(f"Timed out requesting {path}: {e}")
        except httpx.TransportError as e:
            raise BankingTransportError(f"Network error requesting {path}: {e}")

        status = response.status_code
        if status == 404:
            raise BankingNotFoundError(f"Not found: {path}")
        if status == 429:
            raise BankingRateLimitError(f"Rate limited on {path}")
        if status >= 500:
            raise BankingServerError(status, f"Server error {status} on {path}")
        if not 200 <= status < 300:
            raise BankingHTTPError(status, f"Unexpected status {status} on {path}")

        try:
            return response.json()
        except ValueError as e:
            raise BankingDecodingError(f"Invalid JSON from {path}: {e}")

    async def _get_json(self, path: str) -> Any:
        async for attempt in self._retrying():
            with attempt:
                return await self._send(path)

    async def _get_list(self, path: str) -> list[Any]:
        """
        Fetch a listing, following `paging.next` links.

        Accepts either a bare JSON array or an envelope of the form
        {"results": [...], "paging": {"next": "/path?page=2"}}.
        """
        items: list[Any] = []
        seen_paths: set[str] = set()
        next_path: Optional[str] = path

        while next_path and len(seen_paths) < MAX_PAGES:
            seen_paths.add(next_path)
            payload = await self._get_json(next_path)

            if isinstance(payload, list):
                items.extend(payload)
                break

            if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
                raise BankingDecodingError(f"Expected a list from {path}")

            items.extend(payload["results"])
            paging = payload.get("paging") or {}
            candidate = paging.get("next") if isinstance(paging, dict) else None
            next_path = candidate if candidate and candidate not in seen_paths else None

        return items

    def _decode(self, model: Type[ModelT], raw: Any, source: str) -> ModelT:
        try:
            return model.model_validate(raw)
        except ValidationError as e:
            raise BankingDecodingError(
                f"Could not decode {model.__name__} from {source}: "
                f"{e.error_count()} validation errors"
            )

    def _decode_list(self, model: Type[ModelT], items: list[Any], source: str) -> list[ModelT]:
        return [self._decode(model, item, source) for item in items]

    async def fetch_accounts(self, customer_id: str) -> list[Account]:
        path = f"/customers/{quote(customer_id, safe='')}/accounts"
        return self._decode_list(Account, await self._get_list(path), path)

    async def fetch_account(self, account_id: str) -> Account:
        path = f"/accounts/{quote(account_id, safe='')}"
        return self._decode(Account, await self._get_json(path), path)

    async def fetch_purchases(self, account_id: str) -> list[RawPurchase]:
        path = f"/accounts/{quote(account_id, safe='')}/purchases"
        return self._decode_list(RawPurchase, await self._get_list(path), path)

    async def fetch_deposits(self, account_id: str) -> list[RawDeposit]:
        path = f"/accounts/{quote(account_id, safe='')}/deposits"
        return self._decode_list(RawDeposit, await self._get_list(path), path)

    async def fetch_merchant(self, merchant_id: str) -> Merchant:
        path = f"/merchants/{quote(merchant_id, safe='')}"
        return self._decode(Merchant, await self._get_json(path), path)
