from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterator, Optional

# Year index 0 in the UI and period index 0 both refer to January of this year.
EPOCH_YEAR = 2022
LAST_YEAR = 2037


class FetchNature(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"
    ALL = "all"


def period_index(year: int, month: int) -> int:
    """0-based month counter anchored at January of ``EPOCH_YEAR``."""
    return (year - EPOCH_YEAR) * 12 + (month - 1)


def from_period_index(index: int) -> tuple[int, int]:
    year, month0 = divmod(index, 12)
    return EPOCH_YEAR + year, month0 + 1


def add_months(year: int, month: int, months: int) -> tuple[int, int]:
    y = year + (month - 1 + months) // 12
    m = (month - 1 + months) % 12 + 1
    return y, m


def month_span(start: tuple[int, int], end: tuple[int, int]) -> Iterator[tuple[int, int]]:
    """Yield every ``(year, month)`` from ``start`` to ``end`` inclusive."""
    y, m = start
    while (y, m) <= end:
        yield y, m
        y, m = add_months(y, m, 1)


def month_end(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


@dataclass(frozen=True)
class Period:
    nature: FetchNature
    year: Optional[int] = None
    month: Optional[int] = None

    @classmethod
    def monthly(cls, year: int, month: int) -> "Period":
        if not 1 <= month <= 12:
            raise ValueError(f"Invalid month {month}")
        return cls(FetchNature.MONTHLY, year, month)

    @classmethod
    def yearly(cls, year: int) -> "Period":
        return cls(FetchNature.YEARLY, year, None)

    @classmethod
    def all(cls) -> "Period":
        return cls(FetchNature.ALL)

    @classmethod
    def from_indices(cls, month_index: int, year_index: int, nature: FetchNature) -> "Period":
        """Build a period from the UI's 0-based month and year selectors."""
        year = EPOCH_YEAR + year_index
        if nature is FetchNature.MONTHLY:
            return cls.monthly(year, month_index + 1)
        if nature is FetchNature.YEARLY:
            return cls.yearly(year)
        return cls.all()

    @classmethod
    def containing(cls, d: date) -> "Period":
        return cls.monthly(d.year, d.month)

    def bounds(self) -> Optional[tuple[date, date]]:
        """Inclusive date range, or ``None`` for all-time."""
        if self.nature is FetchNature.MONTHLY:
            return date(self.year, self.month, 1), month_end(self.year, self.month)
        if self.nature is FetchNature.YEARLY:
            return date(self.year, 1, 1), date(self.year, 12, 31)
        return None

    def previous(self) -> Optional["Period"]:
        if self.nature is FetchNature.MONTHLY:
            y, m = add_months(self.year, self.month, -1)
            return Period.monthly(y, m)
        if self.nature is FetchNature.YEARLY:
            return Period.yearly(self.year - 1)
        return None

    def label(self) -> str:
        if self.nature is FetchNature.MONTHLY:
            return f"{calendar.month_name[self.month]} {self.year}"
        if self.nature is FetchNature.YEARLY:
            return str(self.year)
        return "All time"
