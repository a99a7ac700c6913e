"""Calendar helpers: year fractions, month stepping, year-month keys, financial years."""

from datetime import date
from typing import Iterator, Optional, Tuple

from dateutil.relativedelta import relativedelta

DAYS_PER_YEAR = 365.25


def today() -> date:
    return date.today()


def days_between(start: date, end: date) -> int:
    return (end - start).days


def years_between(start: date, end: date) -> float:
    """Calendar-accurate elapsed years (actual days / 365.25)."""
    return days_between(start, end) / DAYS_PER_YEAR


def iter_months(start: date, end: date) -> Iterator[date]:
    """
    Yield start, start+1 month, ... while <= end.

    Each step is taken from `start` rather than the previous value so a 31st
    start date doesn't drift to the 28th after February.
    """
    i = 0
    current = start
    while current <= end:
        yield current
        i += 1
        current = start + relativedelta(months=i)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from start's month to end's month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def year_month(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def current_year_month() -> str:
    return year_month(today())


def parse_year_month(ym: str) -> date:
    """'2025-06' -> date(2025, 6, 1)."""
    year, month = ym.split('-')[:2]
    return date(int(year), int(month), 1)


def current_fy_dates(as_of: Optional[date] = None) -> Tuple[date, date]:
    """Return (fy_start, fy_end) for the Indian financial year containing as_of."""
    as_of = as_of or today()
    if as_of.month >= 4:
        return date(as_of.year, 4, 1), date(as_of.year + 1, 3, 31)
    return date(as_of.year - 1, 4, 1), date(as_of.year, 3, 31)


def fy_label(fy_start: date, fy_end: date) -> str:
    """'2025-26' style label."""
    return f"{fy_start.year}-{fy_end.year % 100:02d}"
