"""Calendar-shaped progress model for full-history sync.

This module provides:
- DaySyncStatus: Status of one day (pending / syncing / done / error)
- AggregateStatus: Rolled-up status of a month or a year
- MonthProgress: Day statuses of one calendar month
- FullSyncProgress: Ordered months spanning an inclusive range

Everything here is pure and deterministic. Days without a recorded status
are pending.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from enum import Enum, auto


class DayState(Enum):
    """Phase of a single day."""

    PENDING = auto()
    SYNCING = auto()
    DONE = auto()
    ERROR = auto()


@dataclass(frozen=True)
class DaySyncStatus:
    """Status of one day, with a message for errors."""

    state: DayState
    message: str | None = None

    @classmethod
    def pending(cls) -> DaySyncStatus:
        return cls(DayState.PENDING)

    @classmethod
    def syncing(cls) -> DaySyncStatus:
        return cls(DayState.SYNCING)

    @classmethod
    def done(cls) -> DaySyncStatus:
        return cls(DayState.DONE)

    @classmethod
    def error(cls, message: str) -> DaySyncStatus:
        return cls(DayState.ERROR, message)

    @property
    def is_done(self) -> bool:
        return self.state == DayState.DONE


class AggregateStatus(Enum):
    """Rolled-up status of a month or year."""

    PENDING = auto()
    ACTIVE = auto()
    DONE = auto()
    ERROR = auto()


@dataclass
class MonthProgress:
    """Progress of one calendar month.

    Attributes:
        year: Calendar year.
        month: Month number (1-12).
        day_statuses: Status per day of month; missing days are pending.
    """

    year: int
    month: int
    day_statuses: dict[int, DaySyncStatus] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Month identifier, "YYYY-MM"."""
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def days_in_month(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    @property
    def first_weekday(self) -> int:
        """Weekday of the 1st (Monday = 1 ... Sunday = 7)."""
        return date(self.year, self.month, 1).isoweekday()

    def day_status(self, day: int) -> DaySyncStatus:
        return self.day_statuses.get(day, DaySyncStatus.pending())

    def set_day_status(self, day: int, status: DaySyncStatus) -> None:
        if not 1 <= day <= self.days_in_month:
            raise ValueError(f"Day {day} is not in {self.key}")
        self.day_statuses[day] = status

    def mark_all_done(self) -> None:
        for day in range(1, self.days_in_month + 1):
            self.day_statuses[day] = DaySyncStatus.done()

    @property
    def status(self) -> AggregateStatus:
        """Aggregate status over every day of the month.

        ERROR if any day errored, DONE if every day is done, ACTIVE if some
        day is syncing or done, PENDING otherwise.
        """
        states = [self.day_status(day).state for day in range(1, self.days_in_month + 1)]
        if DayState.ERROR in states:
            return AggregateStatus.ERROR
        if all(s == DayState.DONE for s in states):
            return AggregateStatus.DONE
        if DayState.SYNCING in states or DayState.DONE in states:
            return AggregateStatus.ACTIVE
        return AggregateStatus.PENDING


class FullSyncProgress:
    """Progress of a full-history sync over an inclusive month range.

    Usage:
        progress = FullSyncProgress(2023, 11, 2025, 2)
        progress.restore_completed(state.get_completed_months())
        for month in progress.months:
            ...
    """

    def __init__(self, start_year: int, start_month: int, end_year: int, end_month: int) -> None:
        """Build the month list from start to end, both included.

        An end before the start yields no months.
        """
        self.months: list[MonthProgress] = []
        year, month = start_year, start_month
        while (year, month) <= (end_year, end_month):
            self.months.append(MonthProgress(year, month))
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)

    @property
    def years(self) -> list[int]:
        """Distinct years covered, ascending."""
        return sorted({m.year for m in self.months})

    def months_for(self, year: int) -> list[MonthProgress]:
        return [m for m in self.months if m.year == year]

    def month(self, key: str) -> MonthProgress | None:
        """Look up a month by its "YYYY-MM" key."""
        for m in self.months:
            if m.key == key:
                return m
        return None

    def year_status(self, year: int) -> AggregateStatus:
        """Aggregate status over the months of year (PENDING if none)."""
        statuses = [m.status for m in self.months_for(year)]
        if not statuses:
            return AggregateStatus.PENDING
        if AggregateStatus.ERROR in statuses:
            return AggregateStatus.ERROR
        if all(s == AggregateStatus.DONE for s in statuses):
            return AggregateStatus.DONE
        if AggregateStatus.ACTIVE in statuses or AggregateStatus.DONE in statuses:
            return AggregateStatus.ACTIVE
        return AggregateStatus.PENDING

    @property
    def completed_month_keys(self) -> set[str]:
        """Keys of every month whose status is DONE."""
        return {m.key for m in self.months if m.status == AggregateStatus.DONE}

    def restore_completed(self, keys: Iterable[str]) -> None:
        """Mark every day of the given months done. Unknown keys are ignored."""
        wanted = set(keys)
        for m in self.months:
            if m.key in wanted:
                m.mark_all_done()
