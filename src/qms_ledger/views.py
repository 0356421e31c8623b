# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for QMS Ledger.

This module turns the statement model (statement.py) and validation results
(entries.py) into pandas DataFrames ready for display in the CLI.

The main views are:

- statement:  one row per statement line, section by section, then the
              summary (amounts and margins),
- breakdown:  one row per month of the monthly breakdown,
- comparison: previous period figures and growth rates,
- errors:     one row per validation error of a draft entry.

The statement model keeps full precision. Amounts are rounded to
``amount_decimals`` and percentages to ``percent_decimals`` here only.
"""

from dataclasses import fields
from typing import Mapping, Optional, Sequence

import pandas as pd

from .statement import FinancialStatement, MonthlyEntry, PeriodComparison

STATEMENT_COLUMNS = ["display_order", "section", "line", "label", "amount", "unit"]

_SECTION_LABELS = {
    "revenue": "Revenue",
    "cost_of_goods_sold": "Cost of goods sold",
    "operating_expenses": "Operating expenses",
    "other_income_expenses": "Other income / expenses",
    "tax_expenses": "Tax expenses",
    "summary": "Summary",
}

# Lines whose default label (field name, humanized) reads poorly.
_LINE_LABELS = {
    "total_cogs": "Total COGS",
    "discounts_returns": "Discounts & returns",
    "marketing_and_advertising": "Marketing & advertising",
    "salaries_and_wages": "Salaries & wages",
    "net_other_income_expenses": "Net other income / expenses",
    "earnings_before_tax": "Earnings before tax",
}

_PERCENT_LINES = frozenset(
    {"gross_profit_margin", "operating_margin", "net_profit_margin"}
)


def _label(name: str) -> str:
    return _LINE_LABELS.get(name, name.replace("_", " ").capitalize())


def _renumber_display_order(
    df: pd.DataFrame, start: int = 10, step: int = 10
) -> pd.DataFrame:
    """Reassign display_order to be strictly sequential: start, start+step, ...
    Preserves the current order of the lines (as it appears in df).
    """
    df = df.copy()
    df = df.reset_index(drop=True)
    df["display_order"] = [start + i * step for i in range(len(df))]
    return df


def statement_to_frame(
    statement: FinancialStatement,
    amount_decimals: int = 2,
    percent_decimals: int = 2,
) -> pd.DataFrame:
    """Convert a statement into a display DataFrame.

    Columns: display_order, section, line, label, amount, unit. ``unit`` is
    "amount" for money lines and "percent" for margins. Section totals come
    right after the lines of their section.
    """
    rows: list[dict[str, object]] = []

    for section in _SECTION_LABELS:
        obj = getattr(statement, section)
        for f in fields(obj):
            value = float(getattr(obj, f.name))
            is_percent = f.name in _PERCENT_LINES
            rows.append(
                {
                    "section": _SECTION_LABELS[section],
                    "line": f.name,
                    "label": _label(f.name),
                    "amount": round(value, percent_decimals if is_percent else amount_decimals),
                    "unit": "percent" if is_percent else "amount",
                }
            )

    df = pd.DataFrame(rows, columns=[c for c in STATEMENT_COLUMNS if c != "display_order"])
    df = _renumber_display_order(df)
    return df[STATEMENT_COLUMNS]


def breakdown_to_frame(
    months: Optional[Sequence[MonthlyEntry]],
    amount_decimals: int = 2,
) -> pd.DataFrame:
    """Return the monthly breakdown as a DataFrame (month, revenue, expenses, net_income)."""
    columns = ["month", "revenue", "expenses", "net_income"]
    if not months:
        return pd.DataFrame(columns=columns)

    df = pd.DataFrame(
        [
            {
                "month": m.month,
                "revenue": m.revenue,
                "expenses": m.expenses,
                "net_income": m.net_income,
            }
            for m in months
        ],
        columns=columns,
    )
    for col in ("revenue", "expenses", "net_income"):
        df[col] = df[col].astype(float).round(amount_decimals)
    return df


def comparison_to_frame(
    comparison: Optional[PeriodComparison],
    amount_decimals: int = 2,
    percent_decimals: int = 2,
) -> pd.DataFrame:
    """
    Return the period comparison as a DataFrame.

    Columns: key, label, value, unit. Empty when there is no comparison.
    """
    columns = ["key", "label", "value", "unit"]
    if comparison is None:
        return pd.DataFrame(columns=columns)

    prev = comparison.previous_period
    growth = comparison.growth
    rows = [
        ("previous_revenue", "Previous period revenue", prev.revenue, "amount"),
        ("previous_net_income", "Previous period net income", prev.net_income, "amount"),
        ("revenue_growth", "Revenue growth", growth.revenue_growth, "percent"),
        ("profit_growth", "Profit growth", growth.profit_growth, "percent"),
    ]
    return pd.DataFrame(
        [
            {
                "key": key,
                "label": label,
                "value": round(
                    float(value),
                    percent_decimals if unit == "percent" else amount_decimals,
                ),
                "unit": unit,
            }
            for key, label, value, unit in rows
        ],
        columns=columns,
    )


def errors_to_frame(errors: Mapping[str, str], entry: str = "") -> pd.DataFrame:
    """
    Return validation errors as a DataFrame (entry, field, message).

    ``entry`` identifies the draft (e.g. its journal key) when errors of
    several drafts are concatenated.
    """
    columns = ["entry", "field", "message"]
    if not errors:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(
        [{"entry": entry, "field": k, "message": v} for k, v in errors.items()],
        columns=columns,
    )
