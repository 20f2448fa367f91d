"""
Periods -- calendar math for reports, statements and invoices.

Week numbering:
    Week 1 starts on the first Monday strictly after 1 January.  A date's
    week number is ``floor((date - week1_monday) / 7 days) + 1``; dates
    before week 1's Monday fall in week 0 of their year.  Reports, monthly
    invoice buckets and weekly invoice periods all use this one scheme.

Everything here is pure and takes "today" as an argument.
"""

from __future__ import annotations

import calendar
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


@dataclass(frozen=True)
class Period:
    """Inclusive date range with a display label."""

    start: date
    end: date
    label: str

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Period end {self.end} is before start {self.start}")

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end

    def days(self) -> Iterator[date]:
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def is_final(self, today: date) -> bool:
        """A period's data is final once its last day has passed."""
        return self.end < today


def week1_monday(year: int) -> date:
    jan1 = date(year, 1, 1)
    return jan1 + timedelta(days=7 - jan1.weekday())


def week_number(day: date) -> int:
    return (day - week1_monday(day.year)).days // 7 + 1


def week_start(year: int, week: int) -> date:
    return week1_monday(year) + timedelta(weeks=week - 1)


def month_range(year: int, month: int) -> Period:
    last_day = calendar.monthrange(year, month)[1]
    return Period(date(year, month, 1), date(year, month, last_day), f"{year}-{month:02d}")


def week_range(year: int, week: int) -> Period:
    start = week_start(year, week)
    return Period(start, start + timedelta(days=6), f"Week {week}, {year}")


def year_range(year: int) -> Period:
    return Period(date(year, 1, 1), date(year, 12, 31), str(year))


def previous_week(today: date) -> Period:
    """The Monday-to-Sunday week before the one containing ``today``."""
    this_monday = today - timedelta(days=today.weekday())
    start = this_monday - timedelta(days=7)
    return Period(start, start + timedelta(days=6), f"Week {week_number(start)}, {start.year}")


def bucket_key(day: date, granularity: Granularity) -> tuple[str, str]:
    """
    Return ``(key, label)`` of the sub-period containing ``day``.

    Keys sort chronologically within a year; labels are for display.
    """
    if granularity == Granularity.DAY:
        return day.isoformat(), day.isoformat()
    if granularity == Granularity.WEEK:
        week = week_number(day)
        return f"{day.year}-W{week:02d}", f"Week {week}"
    if granularity == Granularity.MONTH:
        key = f"{day.year}-{day.month:02d}"
        return key, key
    return str(day.year), str(day.year)
