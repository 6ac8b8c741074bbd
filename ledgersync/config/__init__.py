"""Configuration package."""

from ledgersync.config.settings import (
    AppSettings,
    BankingSettings,
    LedgerSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "BankingSettings",
    "LedgerSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
