# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Typed exceptions for QMS Ledger.

Hierarchy
---------
    LedgerError
    +-- LedgerQueryError        a collaborator fetch (storage / network) failed
    +-- UnbalancedEntryError    the store refused an unbalanced or invalid entry
    +-- ReportUnavailableError  a statement could not be built (retryable)

Argument errors (bad dates, unknown options) are plain ``ValueError``.
"""

from collections.abc import Mapping
from typing import Optional


class LedgerError(Exception):
    """Base class for all QMS Ledger errors."""


class LedgerQueryError(LedgerError):
    """
    A request to the ledger query layer failed.

    Attributes
    ----------
    operation:
        Name of the failed operation (e.g. 'get_financial_metrics').
    period:
        Optional human-readable description of the requested date range.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str = "",
        period: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.period = period


class UnbalancedEntryError(LedgerError):
    """The storage layer rejected a draft entry that failed validation."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        details = "; ".join(f"{k}: {v}" for k, v in self.errors.items())
        super().__init__(f"Ledger entry rejected: {details}")


class ReportUnavailableError(LedgerError):
    """
    The profit-and-loss statement for a period could not be built.

    This is the single error state surfaced to the caller when the data for
    the whole period cannot be fetched. It is always retryable.
    """

    retryable = True

    def __init__(self, period_label: str, cause: Optional[BaseException] = None):
        self.period_label = period_label
        message = f"Could not build the profit and loss statement for {period_label}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
