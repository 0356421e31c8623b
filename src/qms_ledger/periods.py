# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period helpers for QMS Ledger.

This module defines a Period value object and helpers to:
- split a date range into calendar months (monthly breakdown),
- derive the period immediately preceding a date range (comparison),
- derive reporting periods (fiscal year, YTD, MTD, last month, last fiscal
  year) from the configured fiscal year and CLI arguments.

All bounds are inclusive dates.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from .config import FiscalYear

# Upper bound on the number of months produced by ``split_into_months``.
DEFAULT_MAX_MONTHS = 120


@dataclass
class Period:
    """Represents a reporting period with a human-readable label."""

    start: date
    end: date
    label: str


def _today() -> date:
    """Return today's date as a date object (isolated for easier testing)."""
    return datetime.today().date()


def month_end(day: date) -> date:
    """Return the last day of the month containing ``day``."""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def add_months(day: date, months: int) -> date:
    """Shift the first day of ``day``'s month by ``months`` (may be negative)."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def month_label(day: date) -> str:
    """Return the '<MonthName> <Year>' label of the month containing ``day``."""
    return f"{calendar.month_name[day.month]} {day.year}"


def split_into_months(
    date_from: date,
    date_to: date,
    max_months: int = DEFAULT_MAX_MONTHS,
) -> list[Period]:
    """
    Enumerate the calendar months overlapping ``[date_from, date_to]``.

    Enumeration starts at the first day of ``date_from``'s month and steps
    one month at a time while the month start is not after ``date_to``.
    Each Period spans the full calendar month and is labelled
    '<MonthName> <Year>'.

    At most ``max_months`` periods are returned; a range with
    ``date_to < date_from`` yields an empty list.
    """
    months: list[Period] = []
    start = date_from.replace(day=1)

    while start <= date_to and len(months) < max_months:
        months.append(Period(start=start, end=month_end(start), label=month_label(start)))
        start = add_months(start, 1)

    return months


def covers_whole_months(date_from: date, date_to: date) -> bool:
    """Return True if the range starts on a 1st and ends on a month end."""
    return date_from.day == 1 and date_to == month_end(date_to)


def previous_period(date_from: date, date_to: date) -> Period:
    """
    Return the period of equal length immediately preceding a range.

    - Whole calendar months (e.g. 2024-02-01 → 2024-02-29): the same number
      of whole months right before ``date_from`` (→ 2024-01-01 → 2024-01-31).
    - Any other range of ``n`` days (inclusive): the ``n`` days ending the
      day before ``date_from``.

    The result never overlaps ``[date_from, date_to]``.

    Raises:
        ValueError: if ``date_to`` is before ``date_from``.
    """
    if date_to < date_from:
        raise ValueError("Period end date cannot be before start date.")

    end = date_from - timedelta(days=1)

    if covers_whole_months(date_from, date_to):
        n_months = (
            (date_to.year - date_from.year) * 12 + date_to.month - date_from.month + 1
        )
        start = add_months(date_from, -n_months)
    else:
        n_days = (date_to - date_from).days + 1
        start = date_from - timedelta(days=n_days)

    return Period(start=start, end=end, label=f"Previous period ({start} → {end})")


# ---------------------------------------------------------------------------
# Reporting period presets
# ---------------------------------------------------------------------------


def period_fy(fy: FiscalYear) -> Period:
    """Full current fiscal year."""
    return Period(
        start=fy.start_date,
        end=fy.end_date,
        label=f"Fiscal year {fy.start_date.year}",
    )


def period_ytd(fy: FiscalYear) -> Period:
    """Year-to-date within the fiscal year."""
    today = _today()
    end = min(max(today, fy.start_date), fy.end_date)
    return Period(start=fy.start_date, end=end, label="Year to date")


def period_mtd(fy: FiscalYear) -> Period:
    """Month-to-date within the fiscal year."""
    today = _today()

    # Outside the fiscal year: fall back to the whole fiscal year.
    if today < fy.start_date or today > fy.end_date:
        return period_fy(fy)

    return Period(start=today.replace(day=1), end=today, label="Month to date")


def period_last_month(fy: FiscalYear) -> Period:
    """Full previous calendar month, clamped to the fiscal year if needed."""
    start = add_months(_today(), -1)
    end = month_end(start)

    if end < fy.start_date or start > fy.end_date:
        return period_fy(fy)

    return Period(
        start=max(start, fy.start_date),
        end=min(end, fy.end_date),
        label=f"Last month ({month_label(start)})",
    )


def period_last_fy(fy: FiscalYear) -> Period:
    """
    Previous fiscal year: the fiscal year window shifted back by one year.

    A 29 February bound is moved to 28 February when the previous year is
    not a leap year.
    """

    def _shift(day: date) -> date:
        year = day.year - 1
        return day.replace(year=year, day=min(day.day, calendar.monthrange(year, day.month)[1]))

    start = _shift(fy.start_date)
    end = _shift(fy.end_date)
    return Period(start=start, end=end, label=f"Previous fiscal year ({start.year})")


PERIOD_PRESETS = {
    "fy": period_fy,
    "ytd": period_ytd,
    "mtd": period_mtd,
    "last-month": period_last_month,
    "last-fy": period_last_fy,
}


def determine_period_from_args(args, fy: FiscalYear) -> Period:
    """
    Determine the reporting period to use based on CLI args and the fiscal year.

    Priority (highest to lowest):

        1. args.from_date / args.to_date (custom period; a missing bound is
           taken from the fiscal year)
        2. args.period (fy, ytd, mtd, last-month, last-fy)
        3. fiscal year by default
    """
    from_raw: Optional[str] = getattr(args, "from_date", None)
    to_raw: Optional[str] = getattr(args, "to_date", None)

    if from_raw or to_raw:
        start = date.fromisoformat(from_raw) if from_raw else fy.start_date
        end = date.fromisoformat(to_raw) if to_raw else fy.end_date

        if end < start:
            raise ValueError("Custom period end date cannot be before start date.")

        return Period(start=start, end=end, label=f"Custom period ({start} → {end})")

    preset = getattr(args, "period", None)
    if preset:
        builder = PERIOD_PRESETS.get(preset)
        if builder is None:
            raise ValueError(f"Unknown period: {preset!r}")
        return builder(fy)

    return period_fy(fy)
