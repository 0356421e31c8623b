# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Draft ledger entries and their validation.

A draft entry is the transient value a user builds before submitting a
manual transaction. It is validated locally and then handed once to the
ledger query layer (``create_ledger_entry``), which records all of its lines
or none of them.

Invariants checked by ``validate_draft_entry``
----------------------------------------------
- every line has an account,
- every line carries a nonzero amount on exactly one side,
- total debits equal total credits, within ``BALANCE_TOLERANCE``.

The validator is a pure function: it returns a mapping from field path to a
human-readable message, and an empty mapping means the draft is valid. Field
paths are the ones used by the entry form: ``date``, ``description``,
``lines``, ``line{i}Account``, ``line{i}Amount`` (``i`` is the 0-based line
index) and ``balance``.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Literal, Optional

# Largest accepted difference between total debits and total credits.
BALANCE_TOLERANCE = 0.01
_FLOAT_EPSILON = 1e-9

EntryType = Literal["manual", "correction", "reversal", "opening", "closing"]

ENTRY_TYPES: dict[str, str] = {
    "manual": "Manual Adjustment",
    "correction": "Correction Entry",
    "reversal": "Reversal Entry",
    "opening": "Opening Balance",
    "closing": "Closing Entry",
}


@dataclass
class LedgerLine:
    """One side of a transaction."""

    account_id: Optional[str]
    debit_amount: float = 0.0
    credit_amount: float = 0.0
    description: Optional[str] = None


@dataclass
class DraftEntry:
    """
    An unposted manual transaction.

    Attributes
    ----------
    date:
        Accounting date of the entry.
    description:
        Required free text, also used for lines without their own
        description.
    lines:
        Ordered lines of the entry (at least two for a valid entry).
    type:
        One of ``ENTRY_TYPES``.
    reference_number:
        Optional reference. The store assigns ``LE-<year>-<NNNN>`` when empty.
    reference_type:
        Tag of the business document behind the entry (sale, purchase,
        expense, invoice, other...).
    """

    date: Optional[date]
    description: str
    lines: list[LedgerLine] = field(default_factory=list)
    type: EntryType = "manual"
    reference_number: Optional[str] = None
    reference_type: str = "other"

    def add_line(
        self,
        account_id: Optional[str],
        debit: float = 0.0,
        credit: float = 0.0,
        description: Optional[str] = None,
    ) -> "DraftEntry":
        """Append a line and return the draft, so calls can be chained."""
        self.lines.append(
            LedgerLine(
                account_id=account_id,
                debit_amount=debit,
                credit_amount=credit,
                description=description,
            )
        )
        return self


def _amount(value: Any) -> float:
    """Return a line amount as float, treating None as zero."""
    if value is None:
        return 0.0
    return float(value)


def entry_totals(draft: DraftEntry) -> tuple[float, float]:
    """Return ``(total_debits, total_credits)`` over all lines of a draft."""
    total_debits = sum(_amount(line.debit_amount) for line in draft.lines)
    total_credits = sum(_amount(line.credit_amount) for line in draft.lines)
    return total_debits, total_credits


def is_balanced(total_debits: float, total_credits: float) -> bool:
    """
    Return True if debits and credits match within ``BALANCE_TOLERANCE``.

    A gap of exactly one cent is tolerated even with float noise
    (e.g. 100.01 - 100.0), anything above it is not.
    """
    return abs(total_debits - total_credits) <= BALANCE_TOLERANCE + _FLOAT_EPSILON


def validate_draft_entry(draft: DraftEntry) -> dict[str, str]:
    """
    Validate a draft entry before submission.

    Returns
    -------
    dict[str, str]
        Field path -> message. Empty when the draft may be submitted.
    """
    errors: dict[str, str] = {}

    if not draft.date:
        errors["date"] = "Date is required"

    if not (draft.description or "").strip():
        errors["description"] = "Description is required"

    if len(draft.lines) < 2:
        errors["lines"] = "At least two lines are required"

    for i, line in enumerate(draft.lines):
        if not (line.account_id or "").strip():
            errors[f"line{i}Account"] = "Account is required"

        debit = _amount(line.debit_amount)
        credit = _amount(line.credit_amount)

        if debit < 0 or credit < 0:
            errors[f"line{i}Amount"] = "Amounts cannot be negative"
        elif debit == 0 and credit == 0:
            errors[f"line{i}Amount"] = "Debit or credit amount is required"
        elif debit != 0 and credit != 0:
            errors[f"line{i}Amount"] = "Cannot have both debit and credit amounts"

    total_debits, total_credits = entry_totals(draft)
    if not is_balanced(total_debits, total_credits):
        errors["balance"] = (
            f"Debits ({total_debits:.2f}) must equal credits ({total_credits:.2f})"
        )

    return errors


def line_description(line: LedgerLine, draft: DraftEntry) -> str:
    """Return the line description, falling back to the entry description."""
    if line.description and line.description.strip():
        return line.description
    return draft.description


def draft_to_payload(draft: DraftEntry) -> dict[str, Any]:
    """
    Serialize a draft into the payload submitted to the storage layer.

    Keys follow the storage schema (``entry_date``, ``debit_amount``, ...).
    Line descriptions are resolved with ``line_description``.
    """
    total_debits, total_credits = entry_totals(draft)
    return {
        "entry_date": draft.date.isoformat() if draft.date else None,
        "entry_type": draft.type,
        "reference_type": draft.reference_type,
        "reference_number": draft.reference_number,
        "description": draft.description,
        "total_debit": total_debits,
        "total_credit": total_credits,
        "lines": [
            {
                "account_id": line.account_id,
                "debit_amount": _amount(line.debit_amount),
                "credit_amount": _amount(line.credit_amount),
                "description": line_description(line, draft),
            }
            for line in draft.lines
        ],
    }
