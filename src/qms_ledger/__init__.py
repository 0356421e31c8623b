# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
QMS Ledger
----------

The accounting core of a small-business quotation & order management
system: manual journal entries and profit-and-loss reporting.

Main capabilities:
- validation of double-entry draft entries (balanced debits and credits,
  one side per line, required accounts),
- atomic recording of entries in a SQLite ledger with a chart of accounts,
- profit-and-loss statement (revenue, COGS, operating expenses, other
  income/expenses, taxes, margins) for any date range,
- month-by-month breakdown, fetched concurrently and tolerant of failed
  months,
- comparison with the preceding period of equal length,
- a command-line interface (init, validate, post, entries, report).

Version: 0.1.0

Usage:
    python -m qms_ledger.cli --help
"""

__all__ = ["entries", "statement", "breakdown", "views", "io"]

__version__ = "0.1.0"
