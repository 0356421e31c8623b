# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for QMS Ledger.

This module provides the SQLite implementation of the ledger query layer
(see query.py). It is responsible for:

- Initializing the database schema.
- Seeding the chart of accounts.
- Recording manual ledger entries atomically (header and all lines, or
  nothing).
- Listing posted entries for a date range, with optional filters.
- Aggregating the financial metrics used by the statement builder.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) chart_of_accounts
   - id            INTEGER PRIMARY KEY AUTOINCREMENT
   - account_code  TEXT    NOT NULL UNIQUE
   - account_name  TEXT    NOT NULL
   - account_type  TEXT    NOT NULL  -- asset | liability | equity | revenue | expense
   - is_active     INTEGER NOT NULL DEFAULT 1

2) ledger_entries
   One row per transaction (header).

   - id                  INTEGER PRIMARY KEY AUTOINCREMENT
   - entry_number        TEXT    NOT NULL UNIQUE  -- 'LE-<year>-<NNNN>'
   - entry_date          TEXT    NOT NULL         -- ISO date 'YYYY-MM-DD'
   - entry_type          TEXT    NOT NULL         -- manual | correction | ...
   - reference_type      TEXT    NOT NULL         -- sale | purchase | ...
   - reference_number    TEXT    NOT NULL
   - description         TEXT    NOT NULL
   - total_debit_cents   INTEGER NOT NULL
   - total_credit_cents  INTEGER NOT NULL
   - status              TEXT    NOT NULL         -- draft | posted
   - created_at          TEXT    NOT NULL         -- ISO datetime, UTC

3) ledger_entry_lines
   - id               INTEGER PRIMARY KEY AUTOINCREMENT
   - ledger_entry_id  INTEGER NOT NULL  -- foreign key to ledger_entries.id
   - account_id       INTEGER NOT NULL  -- foreign key to chart_of_accounts.id
   - debit_cents      INTEGER NOT NULL DEFAULT 0
   - credit_cents     INTEGER NOT NULL DEFAULT 0
   - description      TEXT

Amounts are stored as integer cents (round(amount * 100)) and exposed as
floats.

------------------------------------------------------------------------------
Metrics
------------------------------------------------------------------------------

``get_financial_metrics`` only considers posted entries. For each entry the
amount is max(total_debit, total_credit) and is added to:

- total_sales      for reference_type 'sale',
- total_purchases  for reference_type 'purchase',
- expenses         for reference_type 'expense'.

net_profit = total_sales - total_purchases - expenses.

pending_invoices / pending_amount count the non-posted 'sale', 'purchase'
and 'invoice' entries of the range.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from .entries import DraftEntry, entry_totals, line_description, validate_draft_entry
from .errors import LedgerQueryError, UnbalancedEntryError
from .query import (
    ENTRY_COLUMNS,
    ENTRY_STATUSES,
    CreateResult,
    EntryFilters,
    FinancialMetrics,
    PostedEntry,
    entries_to_frame,
    is_active_filter,
)

logger = logging.getLogger(__name__)

ACCOUNT_TYPES: tuple[str, ...] = (
    "asset",
    "liability",
    "equity",
    "revenue",
    "expense",
)

_PENDING_REFERENCE_TYPES: tuple[str, ...] = ("sale", "purchase", "invoice")

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for QMS Ledger.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS chart_of_accounts (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            account_code  TEXT    NOT NULL UNIQUE,
            account_name  TEXT    NOT NULL,
            account_type  TEXT    NOT NULL,
            is_active     INTEGER NOT NULL DEFAULT 1
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ledger_entries (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            entry_number        TEXT    NOT NULL UNIQUE,
            entry_date          TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            entry_type          TEXT    NOT NULL DEFAULT 'manual',
            reference_type      TEXT    NOT NULL DEFAULT 'other',
            reference_number    TEXT    NOT NULL,
            description         TEXT    NOT NULL,
            total_debit_cents   INTEGER NOT NULL,
            total_credit_cents  INTEGER NOT NULL,
            status              TEXT    NOT NULL DEFAULT 'posted',
            created_at          TEXT    NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS ledger_entry_lines (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            ledger_entry_id  INTEGER NOT NULL,
            account_id       INTEGER NOT NULL,
            debit_cents      INTEGER NOT NULL DEFAULT 0,
            credit_cents     INTEGER NOT NULL DEFAULT 0,
            description      TEXT,

            FOREIGN KEY (ledger_entry_id) REFERENCES ledger_entries(id),
            FOREIGN KEY (account_id) REFERENCES chart_of_accounts(id)
        );
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_ledger_entries_date
            ON ledger_entries(entry_date);
        """
    )

    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_ledger_entry_lines_entry
            ON ledger_entry_lines(ledger_entry_id);
        """
    )

    conn.commit()


def _to_cents(amount: Any) -> int:
    """Convert a float amount to integer cents."""
    if amount is None:
        return 0
    return int(round(float(amount) * 100))


def _from_cents(cents: Any) -> float:
    return (cents or 0) / 100.0


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _period(date_from: date, date_to: date) -> str:
    return f"{date_from.isoformat()} to {date_to.isoformat()}"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if it does not exist.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


class SqliteLedgerStore:
    """
    SQLite implementation of the ledger query layer.

    Every call opens its own connection, so a single store may be shared by
    the worker threads of the monthly breakdown.

    Storage failures (``sqlite3.Error``) are raised as ``LedgerQueryError``.
    """

    def __init__(self, cfg: DatabaseConfig) -> None:
        self.cfg = cfg
        init_database(cfg)

    # -- chart of accounts --------------------------------------------------

    def import_accounts(self, df: pd.DataFrame) -> int:
        """
        Insert or update accounts from a DataFrame.

        Expected columns: account_code, account_name, account_type
        (see accounts.load_chart_of_accounts). An optional ``is_active``
        column defaults to 1. Existing codes are updated in place.

        Returns
        -------
        int
            Number of rows processed.
        """
        required = {"account_code", "account_name", "account_type"}
        missing = required.difference(df.columns)
        if missing:
            cols = ", ".join(sorted(missing))
            raise ValueError(f"Accounts DataFrame is missing required column(s): {cols}")

        rows = []
        for _, row in df.iterrows():
            account_type = str(row["account_type"]).strip().lower()
            if account_type not in ACCOUNT_TYPES:
                raise ValueError(
                    f"Invalid account_type {row['account_type']!r} for account "
                    f"{row['account_code']!r}. Expected one of: {', '.join(ACCOUNT_TYPES)}."
                )
            is_active = row["is_active"] if "is_active" in df.columns else 1
            rows.append(
                (
                    str(row["account_code"]).strip(),
                    str(row["account_name"]).strip(),
                    account_type,
                    0 if pd.isna(is_active) or not int(is_active) else 1,
                )
            )

        conn = _connect(self.cfg)
        try:
            with conn:
                conn.executemany(
                    """
                    INSERT INTO chart_of_accounts (
                        account_code, account_name, account_type, is_active
                    )
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(account_code) DO UPDATE SET
                        account_name = excluded.account_name,
                        account_type = excluded.account_type,
                        is_active    = excluded.is_active;
                    """,
                    rows,
                )
        except sqlite3.Error as exc:
            raise LedgerQueryError(
                f"Failed to import chart of accounts: {exc}",
                operation="import_accounts",
            ) from exc
        finally:
            conn.close()

        logger.info("Imported %d account(s) into the chart of accounts", len(rows))
        return len(rows)

    def list_accounts(self) -> pd.DataFrame:
        """Return the chart of accounts ordered by account code."""
        conn = _connect(self.cfg)
        try:
            cur = conn.execute(
                """
                SELECT id, account_code, account_name, account_type, is_active
                  FROM chart_of_accounts
                 ORDER BY account_code;
                """
            )
            rows = cur.fetchall()
        finally:
            conn.close()

        return pd.DataFrame(
            rows,
            columns=["id", "account_code", "account_name", "account_type", "is_active"],
        )

    @staticmethod
    def _resolve_account(cur: sqlite3.Cursor, account_ref: str) -> Optional[int]:
        """
        Return the id of an active account, looked up by code then by id.
        """
        ref = str(account_ref).strip()
        cur.execute(
            "SELECT id FROM chart_of_accounts WHERE account_code = ? AND is_active = 1;",
            (ref,),
        )
        row = cur.fetchone()
        if row is None and ref.isdigit():
            cur.execute(
                "SELECT id FROM chart_of_accounts WHERE id = ? AND is_active = 1;",
                (int(ref),),
            )
            row = cur.fetchone()
        return None if row is None else int(row[0])

    @staticmethod
    def _next_entry_number(cur: sqlite3.Cursor, year: int) -> str:
        """Return the next 'LE-<year>-<NNNN>' number."""
        prefix = f"LE-{year}-"
        cur.execute(
            """
            SELECT MAX(CAST(substr(entry_number, ?) AS INTEGER))
              FROM ledger_entries
             WHERE entry_number LIKE ?;
            """,
            (len(prefix) + 1, prefix + "%"),
        )
        row = cur.fetchone()
        # Suffixes are compared as integers: LE-2024-10000 sorts after LE-2024-9999.
        last = row[0] if row is not None else None
        next_number = int(last) + 1 if last is not None else 1
        return f"{prefix}{next_number:04d}"

    # -- writes -------------------------------------------------------------

    def create_ledger_entry(
        self, draft: DraftEntry, *, status: str = "posted"
    ) -> CreateResult:
        """
        Record a draft entry and all of its lines in one transaction.

        The draft is validated again here: an invalid draft is rejected
        without touching the database. A reference number 'LE-<year>-<NNNN>'
        is assigned when the draft has none. Entries are posted unless
        ``status="draft"`` is given (e.g. an invoice awaiting approval).

        Returns
        -------
        CreateResult
            success=False with an error message when the draft is invalid,
            refers to an unknown account, or when the insert fails.
        """
        if status not in ENTRY_STATUSES:
            raise ValueError(
                f"Invalid status {status!r}. Expected one of: {', '.join(ENTRY_STATUSES)}."
            )

        errors = validate_draft_entry(draft)
        if errors:
            rejected = UnbalancedEntryError(errors)
            logger.warning("%s", rejected)
            return CreateResult(success=False, error=str(rejected))

        total_debits, total_credits = entry_totals(draft)

        conn = _connect(self.cfg)
        try:
            cur = conn.cursor()

            account_ids: list[int] = []
            for i, line in enumerate(draft.lines):
                account_id = self._resolve_account(cur, line.account_id)
                if account_id is None:
                    msg = f"Unknown or inactive account {line.account_id!r} on line {i}"
                    logger.warning("Ledger entry rejected: %s", msg)
                    return CreateResult(success=False, error=msg)
                account_ids.append(account_id)

            entry_number = self._next_entry_number(cur, draft.date.year)
            reference_number = (draft.reference_number or "").strip() or entry_number

            # All lines or none: a single transaction around header and lines.
            with conn:
                cur.execute(
                    """
                    INSERT INTO ledger_entries (
                        entry_number,
                        entry_date,
                        entry_type,
                        reference_type,
                        reference_number,
                        description,
                        total_debit_cents,
                        total_credit_cents,
                        status,
                        created_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    (
                        entry_number,
                        draft.date.isoformat(),
                        draft.type,
                        draft.reference_type or "other",
                        reference_number,
                        draft.description.strip(),
                        _to_cents(total_debits),
                        _to_cents(total_credits),
                        status,
                        _now_utc_iso(),
                    ),
                )
                entry_id = cur.lastrowid

                cur.executemany(
                    """
                    INSERT INTO ledger_entry_lines (
                        ledger_entry_id,
                        account_id,
                        debit_cents,
                        credit_cents,
                        description
                    )
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        (
                            entry_id,
                            account_id,
                            _to_cents(line.debit_amount),
                            _to_cents(line.credit_amount),
                            line_description(line, draft),
                        )
                        for line, account_id in zip(draft.lines, account_ids)
                    ],
                )
        except sqlite3.Error as exc:
            logger.warning("Failed to create ledger entry: %s", exc)
            return CreateResult(success=False, error=f"Failed to create ledger entry: {exc}")
        finally:
            conn.close()

        logger.info(
            "Created ledger entry %s (%d line(s), %.2f)",
            reference_number,
            len(draft.lines),
            total_debits,
        )
        return CreateResult(
            success=True,
            entry_id=entry_id,
            reference_number=reference_number,
        )

    # -- reads --------------------------------------------------------------

    def _fetch_entry_rows(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[EntryFilters],
    ) -> list[tuple]:
        where_clauses: list[str] = ["e.entry_date BETWEEN ? AND ?"]
        params: list[object] = [date_from.isoformat(), date_to.isoformat()]

        if filters is not None:
            if is_active_filter(filters.reference_type):
                where_clauses.append("e.reference_type = ?")
                params.append(filters.reference_type)
            if is_active_filter(filters.status):
                where_clauses.append("e.status = ?")
                params.append(filters.status)
            if is_active_filter(filters.account_type):
                where_clauses.append(
                    """
                    EXISTS (
                        SELECT 1
                          FROM ledger_entry_lines AS l
                          JOIN chart_of_accounts AS a ON a.id = l.account_id
                         WHERE l.ledger_entry_id = e.id
                           AND a.account_type = ?
                    )
                    """
                )
                params.append(filters.account_type)

        query = f"""
            SELECT
                e.id,
                e.entry_date,
                e.reference_type,
                e.reference_number,
                e.description,
                e.total_debit_cents,
                e.total_credit_cents,
                e.status
              FROM ledger_entries AS e
             WHERE {' AND '.join(where_clauses)}
             ORDER BY e.entry_date, e.id;
        """

        try:
            conn = _connect(self.cfg)
        except sqlite3.Error as exc:
            raise LedgerQueryError(
                f"Failed to open ledger database: {exc}",
                operation="get_ledger_entries",
                period=_period(date_from, date_to),
            ) from exc
        try:
            cur = conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()
        except sqlite3.Error as exc:
            raise LedgerQueryError(
                f"Failed to load ledger entries: {exc}",
                operation="get_ledger_entries",
                period=_period(date_from, date_to),
            ) from exc
        finally:
            conn.close()

    def get_ledger_entries(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[EntryFilters] = None,
    ) -> list[PostedEntry]:
        """
        Return the entries of ``[date_from, date_to]`` ordered by date then id.

        Raises
        ------
        LedgerQueryError
            If the database cannot be read.
        """
        rows = self._fetch_entry_rows(date_from, date_to, filters)
        return [
            PostedEntry(
                id=row[0],
                entry_date=date.fromisoformat(row[1]),
                reference_type=row[2],
                reference_number=row[3],
                description=row[4],
                total_debit=_from_cents(row[5]),
                total_credit=_from_cents(row[6]),
                status=row[7],
            )
            for row in rows
        ]

    def get_ledger_entries_frame(
        self,
        date_from: date,
        date_to: date,
        filters: Optional[EntryFilters] = None,
    ) -> pd.DataFrame:
        """Same as ``get_ledger_entries`` as a DataFrame with ENTRY_COLUMNS."""
        entries = self.get_ledger_entries(date_from, date_to, filters)
        df = entries_to_frame(entries)
        if df.empty:
            return pd.DataFrame(columns=ENTRY_COLUMNS)
        df["entry_date"] = pd.to_datetime(df["entry_date"])
        return df

    def get_entry_lines(self, entry_id: int) -> pd.DataFrame:
        """Return the lines of one entry with their account code and name."""
        conn = _connect(self.cfg)
        try:
            cur = conn.execute(
                """
                SELECT a.account_code, a.account_name, l.debit_cents,
                       l.credit_cents, l.description
                  FROM ledger_entry_lines AS l
                  JOIN chart_of_accounts AS a ON a.id = l.account_id
                 WHERE l.ledger_entry_id = ?
                 ORDER BY l.id;
                """,
                (entry_id,),
            )
            rows = cur.fetchall()
        finally:
            conn.close()

        df = pd.DataFrame(
            rows,
            columns=["account_code", "account_name", "debit_cents", "credit_cents", "description"],
        )
        df["debit"] = df["debit_cents"].astype(float) / 100.0
        df["credit"] = df["credit_cents"].astype(float) / 100.0
        return df.drop(columns=["debit_cents", "credit_cents"])

    def get_financial_metrics(self, date_from: date, date_to: date) -> FinancialMetrics:
        """
        Aggregate the metrics of ``[date_from, date_to]`` (see module docstring).

        Raises
        ------
        LedgerQueryError
            If the database cannot be read.
        """
        rows = self._fetch_entry_rows(date_from, date_to, None)

        totals = {"sale": 0, "purchase": 0, "expense": 0}
        pending_invoices = 0
        pending_cents = 0

        for _, _, reference_type, _, _, debit_cents, credit_cents, status in rows:
            amount_cents = max(debit_cents or 0, credit_cents or 0)
            if status == "posted":
                if reference_type in totals:
                    totals[reference_type] += amount_cents
            elif reference_type in _PENDING_REFERENCE_TYPES:
                pending_invoices += 1
                pending_cents += amount_cents

        net_cents = totals["sale"] - totals["purchase"] - totals["expense"]
        return FinancialMetrics(
            total_sales=_from_cents(totals["sale"]),
            total_purchases=_from_cents(totals["purchase"]),
            expenses=_from_cents(totals["expense"]),
            net_profit=_from_cents(net_cents),
            pending_invoices=pending_invoices,
            pending_amount=_from_cents(pending_cents),
        )

    def has_entries(self) -> bool:
        """Return True if the database contains at least one ledger entry."""
        conn = _connect(self.cfg)
        try:
            cur = conn.execute("SELECT 1 FROM ledger_entries LIMIT 1;")
            return cur.fetchone() is not None
        finally:
            conn.close()
