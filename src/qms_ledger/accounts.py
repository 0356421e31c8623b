# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Account utilities for QMS Ledger.

This module contains helpers related to the chart of accounts, which is a
user-maintained CSV (e.g. data/accounts/chart_of_accounts.csv) seeded into
the database by ``qms-ledger init``.

Responsibilities:
- Load the chart of accounts (code, name, type) from CSV.
- Report the account references of a draft entry that are not in the chart.
"""

from typing import Iterable, Optional

import pandas as pd

from .entries import DraftEntry


def _find_column(col_map: dict[str, str], candidates: list[str]) -> Optional[str]:
    for cand in candidates:
        if cand in col_map:
            return col_map[cand]
    return None


def load_chart_of_accounts(path: str) -> pd.DataFrame:
    """Load the chart of accounts from CSV.

    Expected columns:
        - one column with the account code:
            'account_code', 'code' or 'account'
        - one column with the account name:
            'account_name', 'name' or 'label'
        - one column with the account type:
            'account_type' or 'type'
          (asset, liability, equity, revenue or expense)
        - optionally 'is_active' (1/0)

    Column names are matched case-insensitively and trimmed.

    Args:
        path: Path to the CSV file containing the chart of accounts.

    Returns:
        A DataFrame with the columns 'account_code', 'account_name',
        'account_type' (lower case) and 'is_active'.

    Raises:
        ValueError: if a required column cannot be found.
    """
    df = pd.read_csv(path, dtype=str)
    # Normalize column names: lowercase + stripped, to be robust to variations.
    col_map = {str(c).strip().lower(): c for c in df.columns}

    code_col = _find_column(col_map, ["account_code", "code", "account"])
    if code_col is None:
        raise ValueError(
            "Could not find an account code column in chart of accounts file. "
            "Expected one of: 'account_code', 'code', 'account'."
        )

    name_col = _find_column(col_map, ["account_name", "name", "label"])
    if name_col is None:
        raise ValueError(
            "Could not find an account name column in chart of accounts file. "
            "Expected one of: 'account_name', 'name', 'label'."
        )

    type_col = _find_column(col_map, ["account_type", "type"])
    if type_col is None:
        raise ValueError(
            "Could not find an account type column in chart of accounts file. "
            "Expected one of: 'account_type', 'type'."
        )

    out = df[[code_col, name_col, type_col]].copy()
    out.columns = ["account_code", "account_name", "account_type"]
    out["account_code"] = out["account_code"].astype(str).str.strip()
    out["account_name"] = out["account_name"].astype(str).str.strip()
    out["account_type"] = out["account_type"].astype(str).str.strip().str.lower()

    active_col = _find_column(col_map, ["is_active", "active"])
    if active_col is None:
        out["is_active"] = 1
    else:
        out["is_active"] = (
            pd.to_numeric(df[active_col], errors="coerce").fillna(1).astype(int)
        )

    return out


def unknown_accounts(draft: DraftEntry, known_codes: Iterable[str]) -> list[str]:
    """Return the account references of a draft missing from ``known_codes``.

    Empty references are skipped (the validator reports them). The order of
    the lines is kept and each unknown reference is listed once.
    """
    known = {str(c).strip() for c in known_codes}
    missing: list[str] = []
    for line in draft.lines:
        ref = (line.account_id or "").strip()
        if ref and ref not in known and ref not in missing:
            missing.append(ref)
    return missing
