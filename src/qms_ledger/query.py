# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Contract of the ledger query layer.

The statement builder and the period decomposition engine never talk to a
database or an HTTP API directly. They depend on the small interface
described here:

- ``get_ledger_entries(date_from, date_to, filters=None) -> list[PostedEntry]``
- ``get_financial_metrics(date_from, date_to) -> FinancialMetrics``
- ``create_ledger_entry(draft) -> CreateResult``

Any object providing these three methods can be used (``LedgerQuery`` is a
structural ``Protocol``). The SQLite implementation in ``db.py`` is the
reference one; a remote API client only needs to map its payloads with
``FinancialMetrics.from_mapping`` and ``PostedEntry.from_mapping``.

The read models are plain frozen dataclasses. Reference types are an open
set of strings: ``KNOWN_REFERENCE_TYPES`` lists the values the application
produces, but other tags coming from the storage layer are kept as-is.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Optional, Protocol, Union

import pandas as pd

KNOWN_REFERENCE_TYPES: tuple[str, ...] = (
    "sale",
    "purchase",
    "expense",
    "invoice",
    "other",
)

ENTRY_STATUSES: tuple[str, ...] = ("draft", "posted")

# Column layout of the DataFrame representation of posted entries.
ENTRY_COLUMNS: list[str] = [
    "id",
    "entry_date",
    "reference_type",
    "reference_number",
    "description",
    "total_debit",
    "total_credit",
    "status",
]


def _to_float(value: Any) -> float:
    """Convert an optional numeric payload value to float (None -> 0.0)."""
    if value is None:
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    if pd.isna(result):
        return 0.0
    return result


def _to_date(value: Any) -> date:
    """Convert a date-like payload value (date, datetime, ISO string) to date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present key among snake_case / camelCase aliases."""
    for key in keys:
        if key in data:
            return data[key]
    return None


@dataclass(frozen=True)
class FinancialMetrics:
    """
    Pre-aggregated metrics for a date range.

    Every field defaults to 0.0 because the collaborator may not track all
    of them.
    """

    total_sales: float = 0.0
    total_purchases: float = 0.0
    expenses: float = 0.0
    net_profit: float = 0.0
    pending_invoices: int = 0
    pending_amount: float = 0.0

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "FinancialMetrics":
        """Build metrics from an API payload (camelCase or snake_case keys)."""
        if not data:
            return cls()
        return cls(
            total_sales=_to_float(_pick(data, "total_sales", "totalSales")),
            total_purchases=_to_float(
                _pick(data, "total_purchases", "totalPurchases")
            ),
            expenses=_to_float(_pick(data, "expenses")),
            net_profit=_to_float(_pick(data, "net_profit", "netProfit")),
            pending_invoices=int(
                _to_float(_pick(data, "pending_invoices", "pendingInvoices"))
            ),
            pending_amount=_to_float(_pick(data, "pending_amount", "pendingAmount")),
        )


@dataclass(frozen=True)
class PostedEntry:
    """
    Read-side ledger entry as returned by the query layer.

    Owned by the storage collaborator; the core only reads it.
    """

    id: Union[int, str]
    entry_date: date
    reference_type: str
    total_debit: float
    total_credit: float
    status: str = "posted"
    description: Optional[str] = None
    reference_number: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PostedEntry":
        """Build an entry from an API payload (camelCase or snake_case keys)."""
        raw_description = _pick(data, "description")
        raw_reference = _pick(data, "reference_number", "referenceNumber")
        return cls(
            id=_pick(data, "id"),
            entry_date=_to_date(_pick(data, "entry_date", "entryDate")),
            reference_type=str(
                _pick(data, "reference_type", "referenceType") or "other"
            ),
            total_debit=_to_float(_pick(data, "total_debit", "totalDebit")),
            total_credit=_to_float(_pick(data, "total_credit", "totalCredit")),
            status=str(_pick(data, "status") or "posted"),
            description=None if raw_description is None else str(raw_description),
            reference_number=None if raw_reference is None else str(raw_reference),
        )


@dataclass(frozen=True)
class EntryFilters:
    """
    Optional filters for ``get_ledger_entries``.

    A value of None or "all" (case-insensitive) disables the filter.
    """

    reference_type: Optional[str] = None
    account_type: Optional[str] = None
    status: Optional[str] = None


@dataclass(frozen=True)
class CreateResult:
    """Outcome of ``create_ledger_entry``."""

    success: bool
    error: Optional[str] = None
    entry_id: Optional[int] = None
    reference_number: Optional[str] = None


class LedgerQuery(Protocol):
    """Structural interface of the ledger query layer."""

    def get_ledger_entries(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[EntryFilters] = None,
    ) -> list[PostedEntry]: ...

    def get_financial_metrics(
        self,
        date_from: date,
        date_to: date,
    ) -> FinancialMetrics: ...

    def create_ledger_entry(self, draft: Any) -> CreateResult: ...


def is_active_filter(value: Optional[str]) -> bool:
    """Return True if a filter value should be applied."""
    return value is not None and value != "" and value.lower() != "all"


def entries_to_frame(
    entries: Union[pd.DataFrame, Iterable[PostedEntry]],
) -> pd.DataFrame:
    """
    Return posted entries as a DataFrame with ``ENTRY_COLUMNS``.

    DataFrames are passed through after checking the columns needed by the
    statement builder; missing optional columns are added empty.
    """
    if isinstance(entries, pd.DataFrame):
        missing = {"reference_type", "total_debit", "total_credit"}.difference(
            entries.columns
        )
        if missing:
            cols = ", ".join(sorted(missing))
            raise ValueError(f"Entries DataFrame is missing required column(s): {cols}")
        df = entries.copy()
        for col in ENTRY_COLUMNS:
            if col not in df.columns:
                df[col] = None
        return df[ENTRY_COLUMNS]

    rows = [
        {
            "id": e.id,
            "entry_date": e.entry_date,
            "reference_type": e.reference_type,
            "reference_number": e.reference_number,
            "description": e.description,
            "total_debit": float(e.total_debit),
            "total_credit": float(e.total_credit),
            "status": e.status,
        }
        for e in entries
    ]
    if not rows:
        return pd.DataFrame(columns=ENTRY_COLUMNS)
    return pd.DataFrame(rows, columns=ENTRY_COLUMNS)
