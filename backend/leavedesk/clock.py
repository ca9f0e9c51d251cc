"""Injectable source of "today" for every date-relative rule.

Weekends, holidays, notice periods, anniversaries and month ends are all
evaluated against the server's local calendar date. Tests swap in a
``FixedClock`` instead of patching ``date.today``.
"""

# ruff: noqa: TC003
from __future__ import annotations

from datetime import date
from typing import Annotated, Protocol, runtime_checkable

from fastapi import Depends


@runtime_checkable
class Clock(Protocol):
    """Interface for reading the current calendar date."""

    def today(self) -> date: ...


class SystemClock:
    """Reads the server's local date."""

    def today(self) -> date:
        return date.today()


class FixedClock:
    """Always returns the date it was given. Can be moved forward in tests."""

    def __init__(self, fixed: date) -> None:
        self._fixed = fixed

    def today(self) -> date:
        return self._fixed

    def set(self, fixed: date) -> None:
        self._fixed = fixed


_clock: Clock = SystemClock()


def get_clock() -> Clock:
    return _clock


def set_clock(clock: Clock) -> None:
    """Override the clock (for testing or backfills)."""
    global _clock
    _clock = clock


def get_today() -> date:
    """FastAPI dependency resolving today's date from the active clock."""
    return get_clock().today()


TodayDep = Annotated[date, Depends(get_today)]
