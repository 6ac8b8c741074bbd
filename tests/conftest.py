"""Shared fixtures for LedgerSync tests."""

import pytest

from ledgersync.config import BankingSettings, LedgerSettings


@pytest.fixture
def banking_settings() -> BankingSettings:
    return BankingSettings(
        api_key="test-key",
        customer_id="c1",
        base_url="http://nessie.test",
        checking_account_id="",
        checking_account_alias="Primary Checking",
        max_attempts=3,
        retry_backoff_seconds=0,
        max_concurrency=4,
    )


@pytest.fixture
def override_settings(banking_settings) -> BankingSettings:
    return banking_settings.model_copy(update={"checking_account_id": "chk-override"})


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        category_overrides_path="unused.json",
        discard_stale_passes=True,
    )
