# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Profit-and-loss statement model and builder.

This module turns the data available for one period into a structured
``FinancialStatement``:

    build_statement(metrics, entries, period_label, extra_amounts=None)

Inputs
------
- ``metrics``: pre-aggregated ``FinancialMetrics`` for the period
  (total sales, total purchases, expenses, net profit). Fields may be zero
  when the query layer does not track them.
- ``entries``: posted ledger entries for the same period, either as a list
  of ``PostedEntry`` or as a DataFrame with ``ENTRY_COLUMNS`` (see query.py).
- ``period_label``: human-readable label of the date range.
- ``extra_amounts``: optional manual amounts for the statement lines the
  ledger does not track yet (labor, overhead, rent, interest, taxes...).

Derivation rules
----------------
1. Revenue
   - sales = metrics.total_sales when nonzero, otherwise the sum of
     ``total_credit`` over entries whose reference type is 'sale' or
     'invoice';
   - net_revenue = sales + services + other_income - discounts_returns.

2. Cost of goods sold
   - purchases = metrics.total_purchases;
   - total_cogs = beginning_inventory + purchases + direct_labor
                  + manufacturing_overhead - ending_inventory.

3. Operating expenses
   - other_expenses = metrics.expenses when nonzero, otherwise the sum of
     ``total_debit`` over entries whose reference type is 'expense' or
     'purchase';
   - total_operating_expenses = sum of the nine categories listed in
     ``OPERATING_EXPENSE_CATEGORIES``.

4. Other income / expenses and taxes
   - net_other_income_expenses = (interest_income + gain_on_asset_sale)
                                 - (interest_expense + loss_on_asset_sale);
   - total_tax_expenses = income_tax_expense + other_taxes.

5. Summary
   - gross_profit       = net_revenue - total_cogs
   - operating_income   = gross_profit - total_operating_expenses
   - earnings_before_tax = operating_income + net_other_income_expenses
   - net_income         = earnings_before_tax - total_tax_expenses
   - margins            = value / net_revenue * 100, or 0.0 when
                          net_revenue <= 0.

Every line without a source in the ledger read model defaults to 0.0 and
can be populated through ``extra_amounts`` without changing this contract.
Totals are computed by the section dataclasses themselves, so a statement
can never carry a total that disagrees with its lines. Values are kept in
full precision; rounding happens in views.py.
"""

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Optional, Union

import pandas as pd

from .query import FinancialMetrics, PostedEntry, entries_to_frame

SALES_REFERENCE_TYPES: tuple[str, ...] = ("sale", "invoice")
EXPENSE_REFERENCE_TYPES: tuple[str, ...] = ("expense", "purchase")

OPERATING_EXPENSE_CATEGORIES: tuple[str, ...] = (
    "salaries_and_wages",
    "rent",
    "utilities",
    "office_supplies",
    "marketing_and_advertising",
    "depreciation",
    "insurance",
    "professional_fees",
    "other_expenses",
)


def _margin(value: float, net_revenue: float) -> float:
    """Return ``value`` as a percentage of net revenue (0.0 if revenue <= 0)."""
    if net_revenue > 0:
        return value / net_revenue * 100
    return 0.0


# ---------------------------------------------------------------------------
# Statement sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Revenue:
    sales: float = 0.0
    services: float = 0.0
    other_income: float = 0.0
    discounts_returns: float = 0.0
    net_revenue: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "net_revenue",
            self.sales + self.services + self.other_income - self.discounts_returns,
        )


@dataclass(frozen=True)
class CostOfGoodsSold:
    beginning_inventory: float = 0.0
    purchases: float = 0.0
    direct_labor: float = 0.0
    manufacturing_overhead: float = 0.0
    ending_inventory: float = 0.0
    total_cogs: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "total_cogs",
            self.beginning_inventory
            + self.purchases
            + self.direct_labor
            + self.manufacturing_overhead
            - self.ending_inventory,
        )


@dataclass(frozen=True)
class OperatingExpenses:
    salaries_and_wages: float = 0.0
    rent: float = 0.0
    utilities: float = 0.0
    office_supplies: float = 0.0
    marketing_and_advertising: float = 0.0
    depreciation: float = 0.0
    insurance: float = 0.0
    professional_fees: float = 0.0
    other_expenses: float = 0.0
    total_operating_expenses: float = field(init=False)

    def __post_init__(self) -> None:
        total = sum(getattr(self, name) for name in OPERATING_EXPENSE_CATEGORIES)
        object.__setattr__(self, "total_operating_expenses", total)


@dataclass(frozen=True)
class OtherIncomeExpenses:
    interest_income: float = 0.0
    gain_on_asset_sale: float = 0.0
    interest_expense: float = 0.0
    loss_on_asset_sale: float = 0.0
    net_other_income_expenses: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "net_other_income_expenses",
            (self.interest_income + self.gain_on_asset_sale)
            - (self.interest_expense + self.loss_on_asset_sale),
        )


@dataclass(frozen=True)
class TaxExpenses:
    income_tax_expense: float = 0.0
    other_taxes: float = 0.0
    total_tax_expenses: float = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "total_tax_expenses", self.income_tax_expense + self.other_taxes
        )


@dataclass(frozen=True)
class StatementSummary:
    gross_profit: float
    gross_profit_margin: float
    operating_income: float
    operating_margin: float
    earnings_before_tax: float
    net_income: float
    net_profit_margin: float


@dataclass(frozen=True)
class MonthlyEntry:
    """One row of the monthly breakdown."""

    month: str
    revenue: float
    expenses: float
    net_income: float


@dataclass(frozen=True)
class PreviousPeriod:
    net_income: float
    revenue: float


@dataclass(frozen=True)
class Growth:
    revenue_growth: float
    profit_growth: float


@dataclass(frozen=True)
class PeriodComparison:
    previous_period: PreviousPeriod
    growth: Growth


@dataclass(frozen=True)
class FinancialStatement:
    """Profit-and-loss statement for one period. Immutable."""

    period: str
    revenue: Revenue
    cost_of_goods_sold: CostOfGoodsSold
    operating_expenses: OperatingExpenses
    other_income_expenses: OtherIncomeExpenses
    tax_expenses: TaxExpenses
    summary: StatementSummary
    monthly_breakdown: Optional[tuple[MonthlyEntry, ...]] = None
    comparison: Optional[PeriodComparison] = None

    def with_breakdown(
        self, monthly_breakdown: Iterable[MonthlyEntry]
    ) -> "FinancialStatement":
        """Return a copy carrying the given monthly breakdown."""
        return replace(self, monthly_breakdown=tuple(monthly_breakdown))

    def with_comparison(self, comparison: PeriodComparison) -> "FinancialStatement":
        """Return a copy carrying the given period comparison."""
        return replace(self, comparison=comparison)

    def to_dict(self, camel_case: bool = False) -> dict[str, Any]:
        """
        Return the statement as nested plain dictionaries.

        With ``camel_case=True`` keys use the naming of the web client
        (``netRevenue``, ``monthlyBreakdown``...).
        """
        data = asdict(self)
        if data["monthly_breakdown"] is not None:
            data["monthly_breakdown"] = list(data["monthly_breakdown"])
        if camel_case:
            return _camelize(data)
        return data


def _camel(name: str) -> str:
    head, *tail = name.split("_")
    return head + "".join(part.capitalize() for part in tail)


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel(str(k)): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Manual inputs
# ---------------------------------------------------------------------------

_SECTION_TYPES = {
    "revenue": Revenue,
    "cost_of_goods_sold": CostOfGoodsSold,
    "operating_expenses": OperatingExpenses,
    "other_income_expenses": OtherIncomeExpenses,
    "tax_expenses": TaxExpenses,
}

# Lines fed from the ledger read model; they cannot be set manually.
_SOURCED_FIELDS = frozenset({"sales", "purchases", "other_expenses"})


def _input_fields() -> dict[str, str]:
    """Return {line field name -> section name} for manually settable lines."""
    result: dict[str, str] = {}
    for section, cls in _SECTION_TYPES.items():
        for f in fields(cls):
            if f.init and f.name not in _SOURCED_FIELDS:
                result[f.name] = section
    return result


STATEMENT_INPUT_FIELDS: dict[str, str] = _input_fields()


def _split_extra_amounts(
    extra_amounts: Optional[Mapping[str, Any]],
) -> dict[str, dict[str, float]]:
    """
    Group manual amounts by statement section.

    Values that cannot be converted to float are ignored. Unknown keys and
    keys of ledger-sourced lines raise ValueError.
    """
    by_section: dict[str, dict[str, float]] = {name: {} for name in _SECTION_TYPES}
    if not extra_amounts:
        return by_section

    for key, value in extra_amounts.items():
        name = str(key)
        if name in _SOURCED_FIELDS:
            raise ValueError(
                f"Statement line {name!r} is derived from the ledger and cannot "
                "be set manually."
            )
        section = STATEMENT_INPUT_FIELDS.get(name)
        if section is None:
            raise ValueError(f"Unknown statement line: {name!r}")
        try:
            by_section[section][name] = float(value)
        except (TypeError, ValueError):
            continue

    return by_section


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def _coerce_metrics(
    metrics: Union[FinancialMetrics, Mapping[str, Any], None],
) -> FinancialMetrics:
    if isinstance(metrics, FinancialMetrics):
        return metrics
    return FinancialMetrics.from_mapping(metrics)


def _sum_for_reference_types(
    entries: pd.DataFrame,
    reference_types: tuple[str, ...],
    column: str,
) -> float:
    """Sum ``column`` over entries whose reference type is in the given set."""
    if entries.empty:
        return 0.0
    mask = entries["reference_type"].astype(str).isin(reference_types)
    total = pd.to_numeric(entries.loc[mask, column], errors="coerce").fillna(0.0).sum()
    return float(total)


def build_statement(
    metrics: Union[FinancialMetrics, Mapping[str, Any], None],
    entries: Union[pd.DataFrame, Iterable[PostedEntry]],
    period_label: str,
    extra_amounts: Optional[Mapping[str, Any]] = None,
) -> FinancialStatement:
    """
    Build the profit-and-loss statement of one period.

    Args:
        metrics: Aggregated metrics for the period (a FinancialMetrics, an
            API payload mapping, or None when unavailable).
        entries: Posted ledger entries of the same period.
        period_label: Label stored in ``FinancialStatement.period``.
        extra_amounts: Optional manual amounts keyed by statement line name
            (see ``STATEMENT_INPUT_FIELDS``).

    Returns:
        A new immutable FinancialStatement without monthly breakdown or
        comparison (see breakdown.py for those).

    Raises:
        ValueError: if ``extra_amounts`` names an unknown or ledger-sourced
            line.
    """
    m = _coerce_metrics(metrics)
    df = entries_to_frame(entries)
    manual = _split_extra_amounts(extra_amounts)

    if m.total_sales:
        sales = m.total_sales
    else:
        sales = _sum_for_reference_types(df, SALES_REFERENCE_TYPES, "total_credit")

    if m.expenses:
        other_expenses = m.expenses
    else:
        other_expenses = _sum_for_reference_types(
            df, EXPENSE_REFERENCE_TYPES, "total_debit"
        )

    revenue = Revenue(sales=sales, **manual["revenue"])
    cogs = CostOfGoodsSold(purchases=m.total_purchases, **manual["cost_of_goods_sold"])
    opex = OperatingExpenses(
        other_expenses=other_expenses, **manual["operating_expenses"]
    )
    other = OtherIncomeExpenses(**manual["other_income_expenses"])
    taxes = TaxExpenses(**manual["tax_expenses"])

    gross_profit = revenue.net_revenue - cogs.total_cogs
    operating_income = gross_profit - opex.total_operating_expenses
    earnings_before_tax = operating_income + other.net_other_income_expenses
    net_income = earnings_before_tax - taxes.total_tax_expenses

    summary = StatementSummary(
        gross_profit=gross_profit,
        gross_profit_margin=_margin(gross_profit, revenue.net_revenue),
        operating_income=operating_income,
        operating_margin=_margin(operating_income, revenue.net_revenue),
        earnings_before_tax=earnings_before_tax,
        net_income=net_income,
        net_profit_margin=_margin(net_income, revenue.net_revenue),
    )

    return FinancialStatement(
        period=period_label,
        revenue=revenue,
        cost_of_goods_sold=cogs,
        operating_expenses=opex,
        other_income_expenses=other,
        tax_expenses=taxes,
        summary=summary,
    )
