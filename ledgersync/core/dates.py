"""
Date Normalizer

The banking API is not consistent about date strings: purchases usually
carry a bare `2024-03-02`, some records carry full timestamps with an
offset. Formats are tried in order and the first successful parse wins:

1. Strict ISO-8601 with an explicit timezone
2. `%Y-%m-%dT%H:%M:%S%z` (e.g. `2024-03-02T10:15:00+0000`)
3. Bare `%Y-%m-%d`, taken as midnight UTC

If nothing matches, the current time is returned. Parsing never raises:
a malformed upstream date must not abort an otherwise valid batch. The
caller is expected to flag the fallback as a data-quality event, which is
why `parse_with_status` exists alongside `parse`.
"""

from datetime import datetime, timezone
from typing import Callable, Optional


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_iso_with_timezone(raw: str) -> Optional[datetime]:
    # Needs a 'T' time part; date-only strings belong to the last rule
    if "T" not in raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _parse_fixed_offset(raw: str) -> Optional[datetime]:
    try:
        return datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S%z")
    except ValueError:
        return None


def _parse_date_only(raw: str) -> Optional[datetime]:
    try:
        parsed = datetime.strptime(raw, "%Y-%m-%d")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


PARSERS = (
    _parse_iso_with_timezone,
    _parse_fixed_offset,
    _parse_date_only,
)


class DateNormalizer:
    """
    Parses API date strings into timezone-aware UTC datetimes.

    The clock is injectable so the fallback value is testable.
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utcnow

    def try_parse(self, raw: Optional[str]) -> Optional[datetime]:
        """Parse `raw`, or return None if no supported format matches."""
        if not raw:
            return None
        raw = raw.strip()
        for parser in PARSERS:
            parsed = parser(raw)
            if parsed is not None:
                return parsed.astimezone(timezone.utc)
        return None

    def parse_with_status(self, raw: Optional[str]) -> tuple[datetime, bool]:
        """
        Parse `raw`, falling back to now.

        Returns: (timestamp, parsed_ok)
        """
        parsed = self.try_parse(raw)
        if parsed is None:
            return self._clock(), False
        return parsed, True

    def parse(self, raw: Optional[str]) -> datetime:
        """Parse `raw`, falling back to now. Never raises."""
        return self.parse_with_status(raw)[0]


_default_normalizer = DateNormalizer()


def parse_date(raw: Optional[str]) -> datetime:
    """Module-level shortcut for DateNormalizer().parse."""
    return _default_normalizer.parse(raw)
