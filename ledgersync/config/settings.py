"""
Configuration Management for LedgerSync

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BankingSettings(BaseSettings):
    """Sandbox banking API (Nessie) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="NESSIE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    api_key: str = Field(
        ...,
        description="API key, sent as the `key` query parameter"
    )
    customer_id: str = Field(
        ...,
        description="Customer whose accounts are reconciled"
    )
    base_url: str = Field(
        default="http://api.nessieisreal.com",
        description="Base URL of the banking API"
    )

    # Override checking account
    checking_account_id: str = Field(
        default="",
        description="Account id force-included even if the API listing omits it"
    )
    checking_account_alias: str = Field(
        default="Primary Checking",
        description="Display alias for the override checking account"
    )

    # Transport behaviour
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout"
    )
    max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per request for retryable failures"
    )
    retry_backoff_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Exponential backoff multiplier between attempts"
    )
    max_concurrency: int = Field(
        default=8,
        ge=1,
        description="Maximum simultaneous remote calls in one reconciliation pass"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class LedgerSettings(BaseSettings):
    """Ledger and derived-view configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    ant_expense_threshold: Decimal = Field(
        default=Decimal("100"),
        gt=0,
        description="Expenses strictly below this amount count as ant expenses"
    )
    summary_top_categories: int = Field(
        default=3,
        ge=1,
        description="Categories listed in the financial summary"
    )
    summary_recent_transactions: int = Field(
        default=5,
        ge=1,
        description="Recent transactions listed in the financial summary"
    )
    recent_rows: int = Field(
        default=3,
        ge=1,
        description="Rows shown in the overview's recent activity list"
    )
    cash_flow_months: int = Field(
        default=10,
        ge=1,
        le=36,
        description="Months covered by the cash-flow series"
    )
    category_overrides_path: str = Field(
        default="category_overrides.json",
        description="Path of the JSON file holding user category choices"
    )
    discard_stale_passes: bool = Field(
        default=True,
        description="Drop reconciliation results that settle after a newer pass merged"
    )
    large_entry_amount: Decimal = Field(
        default=Decimal("10000"),
        gt=0,
        description="Manual entries above this amount get a warning"
    )
    future_date_tolerance_days: int = Field(
        default=1,
        ge=0,
        description="Days a manual entry may be dated ahead before it gets a warning"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def banking(self) -> BankingSettings:
        return BankingSettings()

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus a
    `{setting_name}_error` entry for every failure.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("banking", "ledger", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
