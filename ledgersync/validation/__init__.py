"""Validation package."""

from ledgersync.validation.validator import (
    EntryValidator,
    InvalidEntryError,
    parse_amount,
)

__all__ = [
    "EntryValidator",
    "InvalidEntryError",
    "parse_amount",
]
