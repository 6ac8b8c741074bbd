"""
Reconciler

Turns the banking API's accounts, purchases, deposits and merchants into
one deduplicated batch of Transactions and merges it into the Ledger.

Flow of one pass:
1. Resolve accounts (see AccountResolver for the three tiers)
2. Publish the account list to the Ledger (wholesale replace)
3. Fan out: for every account, plus the override checking account
   fetched explicitly, fetch purchases and deposits concurrently
4. Per purchase: resolve the merchant name
5. Fan in: deduplicate by (kind, external id) in a fixed order
6. Apply the stored category overrides (one read per pass)
7. Merge the whole batch into the Ledger in one call

FAILURE SEMANTICS: every remote slice (accounts listing, one account's
purchases or deposits, one merchant) and the override store read are
isolated. A failure is logged, recorded on the result, and treated as
"no records for that slice" (no overrides, for the store).
`reconcile()` does not raise for partial failures.

DESIGN DECISION: The override checking account is fetched explicitly even
when the listing already contains it, because the sandbox API may only
honor direct-id lookups for it. Records seen twice are dropped by the
per-pass dedup; the redundant requests are accepted.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from ledgersync.audit import AuditLogger, create_correlation_id
from ledgersync.config import BankingSettings, LedgerSettings, get_settings
from ledgersync.core.dates import DateNormalizer, utcnow
from ledgersync.core.ledger import Ledger
from ledgersync.models.audit import AuditEventBuilder
from ledgersync.models.finance import (
    Account,
    RawDeposit,
    RawPurchase,
    ReconciliationResult,
    SliceFailure,
    Transaction,
    TransactionKind,
)
from ledgersync.services.banking import BankingClientInterface
from ledgersync.services.storage import CategoryOverrideStore


T = TypeVar("T")

DefaultCategory = Callable[[Account], str]


def alias_category(account: Account) -> str:
    """Default category for an account's purchases: its nickname, else its type."""
    return account.display_name


class _PassContext:
    """Mutable state shared by the coroutines of one reconciliation pass."""

    def __init__(self, result: ReconciliationResult, max_concurrency: int):
        self.result = result
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self.merchant_lookups: dict[str, asyncio.Task] = {}
        self.failed_merchants: set[str] = set()

    @property
    def correlation_id(self):
        return self.result.correlation_id


class AccountResolver:
    """
    Decides which accounts a pass works on.

    Precedence:
    1. The API listing for the customer.
    2. The configured override checking account, synthesized with
       type "Checking" and the configured alias when tier 1 lacks it.
    3. If the listing itself failed, the accounts the Ledger already
       holds stand in for tier 1 (tier 2 still applies).
    """

    def __init__(
        self,
        client: BankingClientInterface,
        settings: BankingSettings,
        audit_logger: AuditLogger,
    ):
        self._client = client
        self._settings = settings
        self._audit_logger = audit_logger

    def override_account(self, customer_id: str) -> Optional[Account]:
        """The synthetic override checking account, or None if not configured."""
        account_id = self._settings.checking_account_id
        if not account_id:
            return None
        return Account(
            id=account_id,
            type="Checking",
            nickname=self._settings.checking_account_alias,
            balance=0,
            customer_id=customer_id,
        )

    async def resolve(
        self,
        customer_id: str,
        held_accounts: list[Account],
        ctx: _PassContext,
    ) -> list[Account]:
        result = ctx.result

        try:
            async with ctx.semaphore:
                accounts = list(await self._client.fetch_accounts(customer_id))
        except Exception as e:
            result.failures.append(SliceFailure(
                resource="accounts",
                entity_id=customer_id,
                error_type=type(e).__name__,
                message=str(e),
            ))
            await self._audit_logger.log_fetch_failed(
                "accounts", customer_id, e, ctx.correlation_id,
            )
            accounts = list(held_accounts)
            result.used_ledger_accounts = True
            await self._audit_logger.log(AuditEventBuilder.accounts_fallback_used(
                customer_id=customer_id,
                account_count=len(accounts),
                correlation_id=ctx.correlation_id,
            ))

        override = self.override_account(customer_id)
        if override is not None and all(a.id != override.id for a in accounts):
            accounts.append(override)
            result.synthetic_account_injected = True
            await self._audit_logger.log(AuditEventBuilder.synthetic_account_injected(
                account_id=override.id,
                alias=override.display_name,
                correlation_id=ctx.correlation_id,
            ))

        await self._audit_logger.log(AuditEventBuilder.accounts_resolved(
            customer_id=customer_id,
            account_ids=[a.id for a in accounts],
            correlation_id=ctx.correlation_id,
        ))
        return accounts


class Reconciler:
    """
    Fetches, normalizes, deduplicates and merges remote transactions.

    Args:
        client: Remote data client
        ledger: Ledger the batch is merged into
        override_store: User category choices keyed by purchase id
        default_category: Category for purchases without an override;
            defaults to the account alias
    """

    def __init__(
        self,
        client: BankingClientInterface,
        ledger: Ledger,
        override_store: Optional[CategoryOverrideStore] = None,
        banking_settings: Optional[BankingSettings] = None,
        ledger_settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        date_normalizer: Optional[DateNormalizer] = None,
        default_category: Optional[DefaultCategory] = None,
    ):
        self._client = client
        self._ledger = ledger
        self._override_store = override_store
        self._settings = banking_settings or get_settings().banking
        self._ledger_settings = ledger_settings or get_settings().ledger
        self._audit_logger = audit_logger or AuditLogger()
        self._dates = date_normalizer or DateNormalizer()
        self._default_category = default_category or alias_category
        self._accounts = AccountResolver(client, self._settings, self._audit_logger)

        self._last_pass_id = 0
        self._accounts_pass_id = 0
        self._merged_pass_id = 0

    @property
    def last_merged_pass_id(self) -> int:
        return self._merged_pass_id

    def _is_stale(self, pass_id: int, newest_applied: int) -> bool:
        return self._ledger_settings.discard_stale_passes and pass_id < newest_applied

    # -------------------------------------------------------------------------
    # Slice helpers
    # -------------------------------------------------------------------------

    async def _guarded(
        self,
        resource: str,
        entity_id: str,
        call: Callable[[], Awaitable[list[T]]],
        ctx: _PassContext,
    ) -> list[T]:
        """Run one remote slice; any failure becomes an empty list."""
        try:
            async with ctx.semaphore:
                return list(await call())
        except Exception as e:
            ctx.result.failures.append(SliceFailure(
                resource=resource,
                entity_id=entity_id,
                error_type=type(e).__name__,
                message=str(e),
            ))
            await self._audit_logger.log_fetch_failed(
                resource, entity_id, e, ctx.correlation_id,
            )
            return []

    async def _lookup_merchant(self, merchant_id: str, ctx: _PassContext) -> str:
        async with ctx.semaphore:
            merchant = await self._client.fetch_merchant(merchant_id)
        return merchant.name

    async def _merchant_name(self, purchase: RawPurchase, ctx: _PassContext) -> str:
        """Merchant name for a purchase, falling back to its description."""
        if not purchase.merchant_id:
            return purchase.description

        task = ctx.merchant_lookups.get(purchase.merchant_id)
        if task is None:
            task = asyncio.create_task(self._lookup_merchant(purchase.merchant_id, ctx))
            ctx.merchant_lookups[purchase.merchant_id] = task

        try:
            return await task
        except Exception as e:
            if purchase.merchant_id not in ctx.failed_merchants:
                ctx.failed_merchants.add(purchase.merchant_id)
                ctx.result.failures.append(SliceFailure(
                    resource="merchant",
                    entity_id=purchase.merchant_id,
                    error_type=type(e).__name__,
                    message=str(e),
                ))
            await self._audit_logger.log_merchant_lookup_failed(
                merchant_id=purchase.merchant_id,
                purchase_id=purchase.id,
                error=e,
                correlation_id=ctx.correlation_id,
            )
            return purchase.description

    async def _normalize_date(
        self,
        raw: str,
        record_type: str,
        record_id: str,
        ctx: _PassContext,
    ) -> datetime:
        parsed, ok = self._dates.parse_with_status(raw)
        if not ok:
            ctx.result.date_fallbacks += 1
            await self._audit_logger.log_date_parse_fallback(
                record_type=record_type,
                record_id=record_id,
                raw_value=raw,
                correlation_id=ctx.correlation_id,
            )
        return parsed

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    async def _purchase_to_transaction(
        self,
        purchase: RawPurchase,
        account: Account,
        ctx: _PassContext,
    ) -> Transaction:
        title = await self._merchant_name(purchase, ctx)
        date = await self._normalize_date(purchase.purchase_date, "purchase", purchase.id, ctx)


        return Transaction(
            id=purchase.id,
            date=date,
            title=title or purchase.description or account.display_name,
            category=self._default_category(account),
            amount=abs(purchase.amount),
            kind=TransactionKind.EXPENSE,
            account_id=account.id,
            source_id=purchase.id,
        )

    async def _deposit_to_transaction(
        self,
        deposit: RawDeposit,
        account: Account,
        ctx: _PassContext,
    ) -> Transaction:
        date = await self._normalize_date(deposit.transaction_date, "deposit", deposit.id, ctx)
        return Transaction(
            id=deposit.id,
            date=date,
            title=deposit.description or account.display_name,
            category=account.display_name,
            amount=abs(deposit.amount),
            kind=TransactionKind.INCOME,
            account_id=account.id,
            source_id=deposit.id,
        )

    async def _expenses_for(self, account: Account, ctx: _PassContext) -> list[Transaction]:
        purchases = await self._guarded(
            "purchases", account.id,
            lambda: self._client.fetch_purchases(account.id), ctx,
        )
        return list(await asyncio.gather(*(
            self._purchase_to_transaction(p, account, ctx) for p in purchases
        )))

    async def _income_for(self, account: Account, ctx: _PassContext) -> list[Transaction]:
        deposits = await self._guarded(
            "deposits", account.id,
            lambda: self._client.fetch_deposits(account.id), ctx,
        )
        return [await self._deposit_to_transaction(d, account, ctx) for d in deposits]

    async def _fetch_account(
        self,
        account: Account,
        ctx: _PassContext,
    ) -> tuple[Account, list[Transaction]]:
        expenses, income = await asyncio.gather(
            self._expenses_for(account, ctx),
            self._income_for(account, ctx),
        )
        return account, expenses + income

    async def _dedupe(
        self,
        slices: list[tuple[Account, list[Transaction]]],
        ctx: _PassContext,
    ) -> list[Transaction]:
        """Keep the first occurrence of every (kind, external id), in target order."""
        seen: set[tuple[TransactionKind, str]] = set()
        batch: list[Transaction] = []

        for account, transactions in slices:
            for tx in transactions:
                key = tx.upsert_key
                if key is not None and key in seen:
                    ctx.result.duplicates_skipped += 1
                    await self._audit_logger.log(AuditEventBuilder.duplicate_skipped(
                        record_type="purchase" if tx.is_expense else "deposit",
                        record_id=tx.source_id,
                        account_id=account.id,
                        correlation_id=ctx.correlation_id,
                    ))
                    continue
                if key is not None:
                    seen.add(key)
                batch.append(tx)

        return batch

    async def _apply_overrides(
        self,
        batch: list[Transaction],
        customer_id: str,
        ctx: _PassContext,
    ) -> list[Transaction]:
        """
        Replace default categories with the user's stored choices.

        The store is read once per pass. If it cannot be read the pass
        keeps the default categories and records an `overrides` failure.
        """
        if self._override_store is None:
            return batch

        try:
            overrides = self._override_store.all()
        except Exception as e:
            ctx.result.failures.append(SliceFailure(
                resource="overrides",
                entity_id=customer_id,
                error_type=type(e).__name__,
                message=str(e),
            ))
            await self._audit_logger.log_fetch_failed(
                "overrides", customer_id, e, ctx.correlation_id,
            )
            return batch

        return [
            tx.model_copy(update={"category": overrides[tx.source_id]})
            if tx.is_expense and tx.source_id in overrides
            else tx
            for tx in batch
        ]

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def reconcile(self, customer_id: Optional[str] = None) -> ReconciliationResult:
        """
        Run one reconciliation pass and merge its batch into the Ledger.

        Passes may overlap. With `discard_stale_passes` on, a pass that
        settles after a newer pass already merged is not applied.

        Returns:
            ReconciliationResult describing what was fetched, what failed
            and whether the batch was merged
        """
        customer_id = customer_id or self._settings.customer_id
        self._last_pass_id += 1
        pass_id = self._last_pass_id

        result = ReconciliationResult(
            pass_id=pass_id,
            correlation_id=create_correlation_id(),
            started_at=utcnow(),
        )
        ctx = _PassContext(result, self._settings.max_concurrency)

        await self._audit_logger.log(AuditEventBuilder.reconciliation_started(
            pass_id=pass_id,
            customer_id=customer_id,
            correlation_id=ctx.correlation_id,
        ))

        accounts = await self._accounts.resolve(customer_id, self._ledger.accounts, ctx)
        result.accounts = accounts

        if not self._is_stale(pass_id, self._accounts_pass_id):
            self._ledger.replace_accounts(accounts)
            self._accounts_pass_id = pass_id

        targets = list(accounts)
        override = self._accounts.override_account(customer_id)
        if override is not None:
            targets.append(override)

        slices = await asyncio.gather(*(self._fetch_account(a, ctx) for a in targets))
        batch = await self._dedupe(list(slices), ctx)
        result.transactions = await self._apply_overrides(batch, customer_id, ctx)

        if self._is_stale(pass_id, self._merged_pass_id):
            await self._audit_logger.log(AuditEventBuilder.stale_pass_discarded(
                pass_id=pass_id,
                latest_merged_pass_id=self._merged_pass_id,
                correlation_id=ctx.correlation_id,
            ))
        else:
            inserted, replaced = self._ledger.merge_transactions(result.transactions)
            self._merged_pass_id = max(self._merged_pass_id, pass_id)
            result.merged = True
            await self._audit_logger.log(AuditEventBuilder.batch_merged(
                pass_id=pass_id,
                inserted=inserted,
                replaced=replaced,
                correlation_id=ctx.correlation_id,
            ))

        result.finished_at = utcnow()
        await self._audit_logger.log(AuditEventBuilder.reconciliation_completed(
            pass_id=pass_id,
            transaction_count=len(result.transactions),
            failure_count=len(result.failures),
            correlation_id=ctx.correlation_id,
        ))
        return result
