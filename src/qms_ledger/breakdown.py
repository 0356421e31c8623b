# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Period decomposition: monthly breakdown, period comparison and full report.

This module drives the statement builder (statement.py) over several date
ranges through the ledger query layer (query.py):

1. Monthly breakdown
   ------------------
   ``build_monthly_breakdown()`` splits a range into calendar months
   (periods.split_into_months), fetches metrics and entries for each month,
   builds one statement per month and keeps
   ``{month, revenue, expenses, net_income}`` where ``revenue`` is the net
   revenue and ``expenses`` is COGS plus operating expenses.

   Month fetches are independent. They run in a thread pool when
   ``max_workers > 1`` and the results are sorted back into chronological
   order. A month whose fetch fails is logged and left out; it never aborts
   the breakdown. An optional ``threading.Event`` stops the loop: months not
   started yet are skipped and the completed ones are returned.

2. Comparison
   -----------
   ``build_comparison()`` fetches the metrics of the preceding period of
   equal length (periods.previous_period) and derives growth rates.

   Growth formulas
   ~~~~~~~~~~~~~~~
   - 'legacy' (default, historical behavior):
       revenue_growth = (current net income - previous sales) / previous sales
       profit_growth  = (current net income - previous net profit)
                        / previous net profit
     Comparing current *net income* with previous *revenue* is kept for
     compatibility with existing reports; it is most likely not the
     intended definition and must be confirmed before being relied upon.
   - 'standard':
       revenue_growth = (current revenue - previous sales) / previous sales
       profit_growth  = same as legacy.
   Both rates are expressed in percent and are 0.0 when the previous
   denominator is not positive.

3. Full report
   ------------
   ``build_report()`` builds the statement of the whole range and attaches
   the breakdown and the comparison when requested. If the data of the
   whole range cannot be fetched, a single ``ReportUnavailableError`` is
   raised. A failed comparison fetch is logged and the statement is
   returned without comparison.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Mapping, Optional, Protocol

from .errors import LedgerQueryError, ReportUnavailableError
from .periods import DEFAULT_MAX_MONTHS, Period, add_months, previous_period, split_into_months
from .query import EntryFilters, FinancialMetrics, LedgerQuery
from .statement import (
    FinancialStatement,
    Growth,
    MonthlyEntry,
    PeriodComparison,
    PreviousPeriod,
    build_statement,
)

logger = logging.getLogger(__name__)

# Statements only sum posted entries; drafts are pending, not revenue.
_POSTED_ONLY = EntryFilters(status="posted")


class CancelToken(Protocol):
    """Anything with an ``is_set()`` method, e.g. ``threading.Event``."""

    def is_set(self) -> bool: ...


def _is_cancelled(cancel_event: Optional[CancelToken]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


def _as_metrics(value: Any) -> FinancialMetrics:
    if isinstance(value, FinancialMetrics):
        return value
    return FinancialMetrics.from_mapping(value)


# ---------------------------------------------------------------------------
# Monthly breakdown
# ---------------------------------------------------------------------------


def _fetch_month(query: LedgerQuery, month: Period) -> MonthlyEntry:
    """Fetch one month and summarize its statement."""
    metrics = query.get_financial_metrics(month.start, month.end)
    entries = query.get_ledger_entries(month.start, month.end, _POSTED_ONLY)
    statement = build_statement(metrics, entries, month.label)
    expenses = (
        statement.cost_of_goods_sold.total_cogs
        + statement.operating_expenses.total_operating_expenses
    )
    return MonthlyEntry(
        month=month.label,
        revenue=statement.revenue.net_revenue,
        expenses=expenses,
        net_income=statement.summary.net_income,
    )


def _fetch_month_or_skip(
    query: LedgerQuery,
    month: Period,
    cancel_event: Optional[CancelToken],
) -> Optional[MonthlyEntry]:
    """Return the month summary, or None if cancelled or if the fetch failed."""
    if _is_cancelled(cancel_event):
        return None
    try:
        return _fetch_month(query, month)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Skipping %s in monthly breakdown: %s", month.label, exc)
        return None


def build_monthly_breakdown(
    query: LedgerQuery,
    date_from: date,
    date_to: date,
    *,
    max_months: int = DEFAULT_MAX_MONTHS,
    max_workers: int = 1,
    cancel_event: Optional[CancelToken] = None,
) -> list[MonthlyEntry]:
    """
    Build the month-by-month breakdown of ``[date_from, date_to]``.

    Parameters
    ----------
    query:
        Ledger query layer.
    date_from, date_to:
        Inclusive bounds of the reported range.
    max_months:
        Upper bound on the number of months (default 120).
    max_workers:
        Number of concurrent month fetches; 1 fetches sequentially.
    cancel_event:
        Optional cancellation token. Once set, no further month is fetched.

    Returns
    -------
    list[MonthlyEntry]
        One entry per successfully fetched month, in chronological order.
        Failed months are omitted.
    """
    months = split_into_months(date_from, date_to, max_months=max_months)
    if not months:
        return []

    if len(months) == max_months and add_months(months[-1].start, 1) <= date_to:
        logger.warning(
            "Monthly breakdown truncated to %d months (%s to %s)",
            max_months,
            date_from,
            date_to,
        )

    results: list[tuple[date, MonthlyEntry]] = []

    if max_workers <= 1 or len(months) == 1:
        for month in months:
            if _is_cancelled(cancel_event):
                break
            entry = _fetch_month_or_skip(query, month, cancel_event)
            if entry is not None:
                results.append((month.start, entry))
    else:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(months))) as pool:
            futures = [
                (month, pool.submit(_fetch_month_or_skip, query, month, cancel_event))
                for month in months
            ]
            for month, future in futures:
                entry = future.result()
                if entry is not None:
                    results.append((month.start, entry))

    if _is_cancelled(cancel_event):
        logger.info(
            "Monthly breakdown cancelled after %d of %d months",
            len(results),
            len(months),
        )

    # Completion order is not guaranteed; restore chronological order.
    results.sort(key=lambda item: item[0])
    return [entry for _, entry in results]


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------


def _growth(current: float, previous: float) -> float:
    if previous > 0:
        return (current - previous) / previous * 100
    return 0.0


def build_comparison(
    query: LedgerQuery,
    date_from: date,
    date_to: date,
    current_net_income: float,
    *,
    current_revenue: Optional[float] = None,
    growth_formula: str = "legacy",
) -> PeriodComparison:
    """
    Compare a period with the preceding period of equal length.

    Parameters
    ----------
    query:
        Ledger query layer.
    date_from, date_to:
        Inclusive bounds of the current period.
    current_net_income:
        Net income of the current period.
    current_revenue:
        Net revenue of the current period; required by the 'standard'
        growth formula.
    growth_formula:
        'legacy' or 'standard' (see module docstring).

    Raises
    ------
    ValueError
        For an unknown growth formula, a missing ``current_revenue`` with
        the 'standard' formula, or ``date_to < date_from``.
    LedgerQueryError
        If the metrics of the preceding period cannot be fetched.
    """
    if growth_formula not in ("legacy", "standard"):
        raise ValueError(f"Unknown growth formula: {growth_formula!r}")
    if growth_formula == "standard" and current_revenue is None:
        raise ValueError("The 'standard' growth formula requires current_revenue.")

    previous = previous_period(date_from, date_to)

    try:
        raw_metrics = query.get_financial_metrics(previous.start, previous.end)
    except LedgerQueryError:
        raise
    except Exception as exc:  # noqa: BLE001
        raise LedgerQueryError(
            f"Failed to fetch metrics for {previous.label}: {exc}",
            operation="get_financial_metrics",
            period=previous.label,
        ) from exc

    metrics = _as_metrics(raw_metrics)

    if growth_formula == "legacy":
        logger.debug("Using legacy growth formula for %s", previous.label)
        revenue_basis = current_net_income
    else:
        revenue_basis = float(current_revenue)

    return PeriodComparison(
        previous_period=PreviousPeriod(
            net_income=metrics.net_profit,
            revenue=metrics.total_sales,
        ),
        growth=Growth(
            revenue_growth=_growth(revenue_basis, metrics.total_sales),
            profit_growth=_growth(current_net_income, metrics.net_profit),
        ),
    )


# ---------------------------------------------------------------------------
# Full report
# ---------------------------------------------------------------------------


def build_report(
    query: LedgerQuery,
    date_from: date,
    date_to: date,
    *,
    period_label: Optional[str] = None,
    monthly_breakdown: bool = True,
    comparison: bool = True,
    growth_formula: str = "legacy",
    extra_amounts: Optional[Mapping[str, Any]] = None,
    max_months: int = DEFAULT_MAX_MONTHS,
    max_workers: int = 1,
    cancel_event: Optional[CancelToken] = None,
) -> FinancialStatement:
    """
    Build the profit-and-loss statement of ``[date_from, date_to]``.

    The statement of the whole range is built from the metrics and entries
    of that range (plus optional manual ``extra_amounts``). The monthly
    breakdown and the comparison are attached when requested.

    Raises
    ------
    ValueError
        If ``date_to`` is before ``date_from``.
    ReportUnavailableError
        If the metrics or entries of the whole range cannot be fetched.
    """
    if date_to < date_from:
        raise ValueError("Report end date cannot be before start date.")

    label = period_label or f"{date_from.isoformat()} to {date_to.isoformat()}"

    try:
        metrics = query.get_financial_metrics(date_from, date_to)
        entries = query.get_ledger_entries(date_from, date_to, _POSTED_ONLY)
    except Exception as exc:  # noqa: BLE001
        raise ReportUnavailableError(label, exc) from exc

    statement = build_statement(metrics, entries, label, extra_amounts)

    if monthly_breakdown:
        months = build_monthly_breakdown(
            query,
            date_from,
            date_to,
            max_months=max_months,
            max_workers=max_workers,
            cancel_event=cancel_event,
        )
        statement = statement.with_breakdown(months)

    if comparison and not _is_cancelled(cancel_event):
        try:
            result = build_comparison(
                query,
                date_from,
                date_to,
                statement.summary.net_income,
                current_revenue=statement.revenue.net_revenue,
                growth_formula=growth_formula,
            )
        except LedgerQueryError as exc:
            logger.warning("Comparison unavailable for %s: %s", label, exc)
        else:
            statement = statement.with_comparison(result)

    return statement
