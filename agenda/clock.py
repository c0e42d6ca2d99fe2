"""Clock abstraction so date-relative logic can be pinned in tests."""
from datetime import date, datetime
from typing import Optional


class Clock:
    """Source of the current date and time."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Local wall clock (timezone-naive)."""

    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """Clock frozen at a given instant; ``advance_to`` moves it."""

    def __init__(self, current: datetime):
        self._current = current

    def now(self) -> datetime:
        return self._current

    def advance_to(self, current: datetime) -> None:
        self._current = current

    @classmethod
    def on(cls, day: date, hour: int = 9, minute: int = 0) -> "FixedClock":
        return cls(datetime(day.year, day.month, day.day, hour, minute))


def resolve_clock(clock: Optional[Clock]) -> Clock:
    return clock if clock is not None else SystemClock()
