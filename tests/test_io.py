from datetime import date

import pytest

from qms_ledger.entries import validate_draft_entry
from qms_ledger.io import read_journal_csv


def write_csv(tmp_path, content: str):
    path = tmp_path / "journal.csv"
    path.write_text(content, encoding="utf-8")
    return path


def test_rows_are_grouped_by_entry_key(tmp_path):
    """Lines sharing an entry key form one draft, in file order."""
    path = write_csv(
        tmp_path,
        "Entry,Date,Account,Debit,Credit,Description,Reference_Type\n"
        "A,2024-01-15,1100,100,,Cash sale,sale\n"
        "B,2024-01-16,6100,40,,Rent,expense\n"
        "A,2024-01-15,4000,,100,Cash sale,sale\n"
        "B,2024-01-16,1100,,40,Rent,expense\n",
    )

    drafts = read_journal_csv(path)

    assert len(drafts) == 2
    sale, rent = drafts
    assert sale.date == date(2024, 1, 15)
    assert sale.description == "Cash sale"
    assert sale.reference_type == "sale"
    assert sale.type == "manual"
    assert [(l.account_id, l.debit_amount, l.credit_amount) for l in sale.lines] == [
        ("1100", 100.0, 0.0),
        ("4000", 0.0, 100.0),
    ]
    assert rent.reference_type == "expense"
    assert validate_draft_entry(sale) == {}
    assert validate_draft_entry(rent) == {}


def test_optional_columns(tmp_path):
    path = write_csv(
        tmp_path,
        "entry,date,account,debit,credit,description,type,reference_number,line_description\n"
        "1,2024-12-31,3000,500,0,Year end,closing,CL-1,Close equity\n"
        "1,2024-12-31,1100,0,500,Year end,closing,CL-1,\n",
    )

    (draft,) = read_journal_csv(path)

    assert draft.type == "closing"
    assert draft.reference_number == "CL-1"
    assert draft.reference_type == "other"
    assert [l.description for l in draft.lines] == ["Close equity", None]


def test_missing_columns_raise(tmp_path):
    path = write_csv(tmp_path, "entry,date,account,amount,description\n1,2024-01-01,1100,5,x\n")

    with pytest.raises(ValueError):
        read_journal_csv(path)


def test_non_numeric_amount_raises(tmp_path):
    path = write_csv(
        tmp_path,
        "entry,date,account,debit,credit,description\n"
        "1,2024-01-01,1100,abc,,x\n",
    )

    with pytest.raises(ValueError):
        read_journal_csv(path)


def test_invalid_date_raises(tmp_path):
    path = write_csv(
        tmp_path,
        "entry,date,account,debit,credit,description\n"
        "1,not-a-date,1100,1,,x\n",
    )

    with pytest.raises(ValueError):
        read_journal_csv(path)


def test_unknown_entry_type_raises(tmp_path):
    path = write_csv(
        tmp_path,
        "entry,date,account,debit,credit,description,type\n"
        "1,2024-01-01,1100,1,,x,adjusting\n",
    )

    with pytest.raises(ValueError):
        read_journal_csv(path)


def test_invalid_lines_are_left_to_the_validator(tmp_path):
    """The reader accepts unbalanced entries and missing accounts."""
    path = write_csv(
        tmp_path,
        "entry,date,account,debit,credit,description\n"
        "1,2024-01-01,,100,,Oops\n"
        "1,2024-01-01,4000,,90,Oops\n",
    )

    (draft,) = read_journal_csv(path)
    errors = validate_draft_entry(draft)

    assert errors["line0Account"] == "Account is required"
    assert errors["balance"] == "Debits (100.00) must equal credits (90.00)"
