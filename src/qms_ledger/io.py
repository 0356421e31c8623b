# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for QMS Ledger.

This module reads manual journal entries from a CSV file and turns them into
draft entries ready for validation and submission.

Expected input format
---------------------

One row per ledger line (column names are case-insensitive):

    entry, date, account, debit, credit, description

- ``entry``:       key grouping the lines of one transaction (any text)
- ``date``:        accounting date of the entry (YYYY-MM-DD)
- ``account``:     account code from the chart of accounts
- ``debit``:       debit amount (positive number or empty)
- ``credit``:      credit amount (positive number or empty)
- ``description``: description of the entry

Optional columns
----------------
- ``type``:             manual | correction | reversal | opening | closing
- ``reference_type``:   sale | purchase | expense | invoice | other
- ``reference_number``: explicit reference (otherwise assigned on posting)
- ``line_description``: description of the line

Entry-level values (date, description, type, reference fields) are taken
from the first row of each entry. Entries and lines keep the file order.

The reader does not validate the entries themselves (balance, missing
accounts...): this is the job of ``entries.validate_draft_entry``. Missing
numeric values are read as 0, but non-numeric values and unparseable dates
raise a ValueError.
"""

import os
from typing import Optional, Union

import pandas as pd

from .entries import ENTRY_TYPES, DraftEntry

REQUIRED_COLUMNS = {"entry", "date", "account", "debit", "credit", "description"}


def _text(value) -> Optional[str]:
    """Return a stripped string, or None for empty / NaN cells."""
    if value is None or pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def read_journal_csv(path: Union[str, "os.PathLike[str]"]) -> list[DraftEntry]:
    """
    Read manual journal entries from a CSV file.

    Parameters
    ----------
    path:
        Path to the CSV file (one row per ledger line).

    Returns
    -------
    list[DraftEntry]
        One draft per distinct ``entry`` key, in file order.

    Raises
    ------
    ValueError
        If required columns are missing, if a date cannot be parsed, if a
        debit/credit value is not numeric, or if an entry type is unknown.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=True)

    # Normalize column names to lowercase (to make the check case-insensitive)
    df.columns = [c.lower().strip() for c in df.columns]

    missing = REQUIRED_COLUMNS.difference(df.columns)
    if missing:
        cols = ", ".join(sorted(missing))
        raise ValueError(
            f"Invalid journal structure, missing column(s): {cols}. Expected: "
            "entry, date, account, debit, credit, description "
            "(column names are case-insensitive)."
        )

    d = df.copy()

    # Numeric conversion: empty cells are 0, anything else must be a number.
    for col in ("debit", "credit"):
        raw = d[col]
        values = pd.to_numeric(raw, errors="coerce")
        if (values.isna() & raw.notna()).any():
            raise ValueError(f"Invalid numeric values in '{col}' column.")
        d[col] = values.fillna(0.0)

    # Parse date strictly: invalid dates should fail loudly
    try:
        d["date"] = pd.to_datetime(d["date"], errors="raise")
    except Exception as exc:  # noqa: BLE001
        raise ValueError("Invalid values in 'date' column.") from exc

    drafts: dict[str, DraftEntry] = {}

    for _, row in d.iterrows():
        key = _text(row["entry"])
        if key is None:
            raise ValueError("Every journal row needs an 'entry' key.")

        draft = drafts.get(key)
        if draft is None:
            entry_type = _text(row.get("type")) or "manual"
            if entry_type not in ENTRY_TYPES:
                raise ValueError(
                    f"Unknown entry type {entry_type!r} for entry {key!r}. "
                    f"Expected one of: {', '.join(ENTRY_TYPES)}."
                )
            entry_date = None if pd.isna(row["date"]) else row["date"].date()
            draft = DraftEntry(
                date=entry_date,
                description=_text(row["description"]) or "",
                type=entry_type,
                reference_type=_text(row.get("reference_type")) or "other",
                reference_number=_text(row.get("reference_number")),
            )
            drafts[key] = draft

        draft.add_line(
            _text(row["account"]),
            debit=float(row["debit"]),
            credit=float(row["credit"]),
            description=_text(row.get("line_description")),
        )

    return list(drafts.values())
