"""
Month Window Selector

Tracks the calendar month the user is looking at. Every "this month"
view of the Ledger is computed from `selector.window`.

DESIGN DECISION: The "no future months" rule is enforced here, not only
by the UI disabling a button. `next()` raises MonthNavigationError when
the selected month is already the current one; callers that want a
silent no-op check `can_go_next` first.
"""

from datetime import datetime
from typing import Callable, Optional

from ledgersync.core.dates import Clock, utcnow
from ledgersync.models.finance import MonthWindow


Listener = Callable[[MonthWindow], None]


class MonthNavigationError(Exception):
    """Attempted to navigate past the current calendar month."""
    pass


class MonthSelector:
    """Currently viewed month, with next/previous navigation."""

    def __init__(
        self,
        selected_date: Optional[datetime] = None,
        clock: Optional[Clock] = None,
    ):
        self._clock = clock or utcnow
        self._window = MonthWindow.for_date(selected_date or self._clock())
        self._listeners: list[Listener] = []

        if self._window.start > self._current_window().start:
            raise MonthNavigationError(
                f"Cannot select {self._window.label}: it is in the future"
            )

    def _current_window(self) -> MonthWindow:
        return MonthWindow.for_date(self._clock())

    @property
    def selected_date(self) -> datetime:
        """First instant of the selected month."""
        return self._window.start

    @property
    def window(self) -> MonthWindow:
        return self._window

    @property
    def label(self) -> str:
        return self._window.label

    def is_current_month(self) -> bool:
        return self._window == self._current_window()

    @property
    def can_go_next(self) -> bool:
        return self._window.start < self._current_window().start

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback fired with the new window on every change.

        Returns a function that removes the callback.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, window: MonthWindow) -> MonthWindow:
        if window != self._window:
            self._window = window
            for listener in list(self._listeners):
                listener(window)
        return self._window

    def next(self) -> MonthWindow:
        """Advance one month. Raises MonthNavigationError at the current month."""
        if not self.can_go_next:
            raise MonthNavigationError(
                f"{self._window.label} is the current month; cannot go forward"
            )
        return self._set(self._window.shifted(1))

    def previous(self) -> MonthWindow:
        """Go back one month. Always allowed."""
        return self._set(self._window.shifted(-1))

    def go_to(self, reference: datetime) -> MonthWindow:
        """Jump to the month containing `reference` (not past the current month)."""
        window = MonthWindow.for_date(reference)
        if window.start > self._current_window().start:
            raise MonthNavigationError(f"Cannot select {window.label}: it is in the future")
        return self._set(window)

    def reset(self) -> MonthWindow:
        """Jump back to the current month."""
        return self._set(self._current_window())
