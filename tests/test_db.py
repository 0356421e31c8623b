import sqlite3
from datetime import date

import pandas as pd
import pytest

from qms_ledger.breakdown import build_report
from qms_ledger.db import DatabaseConfig, SqliteLedgerStore, init_database
from qms_ledger.entries import DraftEntry
from qms_ledger.errors import LedgerQueryError
from qms_ledger.query import EntryFilters


ACCOUNTS = pd.DataFrame(
    [
        {"account_code": "1100", "account_name": "Bank", "account_type": "asset"},
        {"account_code": "2000", "account_name": "Payables", "account_type": "liability"},
        {"account_code": "4000", "account_name": "Sales", "account_type": "revenue"},
        {"account_code": "5000", "account_name": "COGS", "account_type": "expense"},
        {"account_code": "6100", "account_name": "Rent", "account_type": "expense"},
    ]
)


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    db_path = tmp_path / "test_db.sqlite"
    return DatabaseConfig(engine="sqlite", path=db_path)


def make_store(tmp_path) -> SqliteLedgerStore:
    store = SqliteLedgerStore(make_tmp_db_cfg(tmp_path))
    store.import_accounts(ACCOUNTS)
    return store


def make_draft(day, reference_type, debit_account, credit_account, amount, description="Entry"):
    draft = DraftEntry(date=day, description=description, reference_type=reference_type)
    draft.add_line(debit_account, debit=amount)
    draft.add_line(credit_account, credit=amount)
    return draft


def count_rows(cfg: DatabaseConfig, table: str) -> int:
    conn = sqlite3.connect(cfg.path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table};").fetchone()[0]
    finally:
        conn.close()


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file and an empty schema."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()

    store = SqliteLedgerStore(cfg)
    assert store.has_entries() is False
    assert store.list_accounts().empty


def test_unsupported_engine_is_rejected(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")

    with pytest.raises(ValueError):
        init_database(cfg)


def test_import_accounts_upserts_by_code(tmp_path):
    store = make_store(tmp_path)

    renamed = pd.DataFrame(
        [{"account_code": "6100", "account_name": "Office rent", "account_type": "expense"}]
    )
    store.import_accounts(renamed)

    accounts = store.list_accounts()
    assert len(accounts) == 5
    assert accounts.set_index("account_code").loc["6100", "account_name"] == "Office rent"


def test_import_accounts_rejects_unknown_type(tmp_path):
    store = SqliteLedgerStore(make_tmp_db_cfg(tmp_path))
    bad = pd.DataFrame(
        [{"account_code": "9", "account_name": "X", "account_type": "income"}]
    )

    with pytest.raises(ValueError):
        store.import_accounts(bad)


def test_create_entry_assigns_reference_number(tmp_path):
    """Entries without reference get LE-<year>-<NNNN>, numbered per year."""
    store = make_store(tmp_path)

    r1 = store.create_ledger_entry(make_draft(date(2024, 1, 5), "sale", "1100", "4000", 100.0))
    r2 = store.create_ledger_entry(make_draft(date(2024, 1, 6), "sale", "1100", "4000", 50.0))
    r3 = store.create_ledger_entry(make_draft(date(2025, 1, 6), "sale", "1100", "4000", 50.0))

    assert r1.success and r2.success and r3.success
    assert r1.reference_number == "LE-2024-0001"
    assert r2.reference_number == "LE-2024-0002"
    assert r3.reference_number == "LE-2025-0001"


def test_create_entry_keeps_explicit_reference(tmp_path):
    store = make_store(tmp_path)
    draft = make_draft(date(2024, 1, 5), "sale", "1100", "4000", 100.0)
    draft.reference_number = "INV-042"

    result = store.create_ledger_entry(draft)

    assert result.reference_number == "INV-042"


def test_invalid_draft_is_rejected_without_writes(tmp_path):
    """The store re-validates drafts: an unbalanced entry writes nothing."""
    store = make_store(tmp_path)
    draft = DraftEntry(date=date(2024, 1, 5), description="Unbalanced")
    draft.add_line("1100", debit=100.0).add_line("4000", credit=90.0)

    result = store.create_ledger_entry(draft)

    assert result.success is False
    assert "Debits (100.00) must equal credits (90.00)" in result.error
    assert count_rows(store.cfg, "ledger_entries") == 0
    assert count_rows(store.cfg, "ledger_entry_lines") == 0


def test_unknown_account_rejects_whole_entry(tmp_path):
    """All lines or none: one unknown account leaves the database untouched."""
    store = make_store(tmp_path)
    draft = DraftEntry(date=date(2024, 1, 5), description="Split")
    draft.add_line("1100", debit=100.0)
    draft.add_line("4000", credit=60.0)
    draft.add_line("9999", credit=40.0)

    result = store.create_ledger_entry(draft)

    assert result.success is False
    assert "9999" in result.error
    assert count_rows(store.cfg, "ledger_entries") == 0
    assert count_rows(store.cfg, "ledger_entry_lines") == 0


def test_entry_lines_are_stored_in_cents(tmp_path):
    store = make_store(tmp_path)
    draft = DraftEntry(date=date(2024, 1, 5), description="Cash sale")
    draft.add_line("1100", debit=10.1, description="Till")
    draft.add_line("4000", credit=10.1)

    result = store.create_ledger_entry(draft)
    lines = store.get_entry_lines(result.entry_id)

    assert list(lines["account_code"]) == ["1100", "4000"]
    assert list(lines["debit"]) == [10.1, 0.0]
    assert list(lines["credit"]) == [0.0, 10.1]
    assert list(lines["description"]) == ["Till", "Cash sale"]


def test_get_ledger_entries_bounds_order_and_filters(tmp_path):
    store = make_store(tmp_path)
    store.create_ledger_entry(make_draft(date(2024, 1, 31), "sale", "1100", "4000", 100.0))
    store.create_ledger_entry(make_draft(date(2024, 1, 1), "purchase", "5000", "2000", 40.0))
    store.create_ledger_entry(make_draft(date(2024, 2, 1), "expense", "6100", "1100", 10.0))

    entries = store.get_ledger_entries(date(2024, 1, 1), date(2024, 1, 31))
    assert [e.entry_date for e in entries] == [date(2024, 1, 1), date(2024, 1, 31)]
    assert entries[1].total_credit == pytest.approx(100.0)

    sales = store.get_ledger_entries(
        date(2024, 1, 1), date(2024, 2, 29), EntryFilters(reference_type="sale")
    )
    assert [e.reference_type for e in sales] == ["sale"]

    liability = store.get_ledger_entries(
        date(2024, 1, 1), date(2024, 2, 29), EntryFilters(account_type="liability")
    )
    assert [e.reference_type for e in liability] == ["purchase"]

    everything = store.get_ledger_entries(
        date(2024, 1, 1),
        date(2024, 2, 29),
        EntryFilters(reference_type="all", account_type="ALL", status="all"),
    )
    assert len(everything) == 3


def test_financial_metrics_over_posted_entries(tmp_path):
    """Sales, purchases and expenses are summed per reference type."""
    store = make_store(tmp_path)
    store.create_ledger_entry(make_draft(date(2024, 1, 5), "sale", "1100", "4000", 1000.0))
    store.create_ledger_entry(make_draft(date(2024, 1, 6), "sale", "1100", "4000", 500.0))
    store.create_ledger_entry(make_draft(date(2024, 1, 7), "purchase", "5000", "2000", 400.0))
    store.create_ledger_entry(make_draft(date(2024, 1, 8), "expense", "6100", "1100", 150.0))
    store.create_ledger_entry(make_draft(date(2024, 1, 9), "other", "1100", "2000", 999.0))
    store.create_ledger_entry(
        make_draft(date(2024, 1, 10), "invoice", "1100", "4000", 300.0), status="draft"
    )

    metrics = store.get_financial_metrics(date(2024, 1, 1), date(2024, 1, 31))

    assert metrics.total_sales == pytest.approx(1500.0)
    assert metrics.total_purchases == pytest.approx(400.0)
    assert metrics.expenses == pytest.approx(150.0)
    assert metrics.net_profit == pytest.approx(950.0)
    assert metrics.pending_invoices == 1
    assert metrics.pending_amount == pytest.approx(300.0)


def test_get_ledger_entries_frame(tmp_path):
    store = make_store(tmp_path)
    store.create_ledger_entry(make_draft(date(2024, 1, 5), "sale", "1100", "4000", 100.0))

    df = store.get_ledger_entries_frame(date(2024, 1, 1), date(2024, 1, 31))

    assert list(df.columns) == [
        "id",
        "entry_date",
        "reference_type",
        "reference_number",
        "description",
        "total_debit",
        "total_credit",
        "status",
    ]
    assert df["entry_date"].iloc[0] == pd.Timestamp("2024-01-05")

    empty = store.get_ledger_entries_frame(date(2023, 1, 1), date(2023, 1, 31))
    assert empty.empty


def test_storage_failure_is_raised_as_query_error(tmp_path):
    store = make_store(tmp_path)
    conn = sqlite3.connect(store.cfg.path)
    conn.execute("DROP TABLE ledger_entry_lines;")
    conn.execute("DROP TABLE ledger_entries;")
    conn.commit()
    conn.close()

    with pytest.raises(LedgerQueryError):
        store.get_financial_metrics(date(2024, 1, 1), date(2024, 1, 31))


def test_report_ignores_draft_entries(tmp_path):
    """A draft sale is pending in the metrics and absent from the statement."""
    store = make_store(tmp_path)
    store.create_ledger_entry(
        make_draft(date(2024, 3, 10), "sale", "1100", "4000", 1000.0), status="draft"
    )

    metrics = store.get_financial_metrics(date(2024, 3, 1), date(2024, 3, 31))
    st = build_report(store, date(2024, 3, 1), date(2024, 3, 31), comparison=False)

    assert metrics.total_sales == 0.0
    assert metrics.pending_invoices == 1
    assert st.revenue.sales == 0.0
    assert st.summary.net_income == 0.0
    assert [m.revenue for m in st.monthly_breakdown] == [0.0]


def test_reference_number_sequence_past_four_digits(tmp_path):
    """Numbering is ordered numerically, so LE-2024-10000 follows LE-2024-9999."""
    store = make_store(tmp_path)
    for _ in range(2):
        store.create_ledger_entry(make_draft(date(2024, 1, 5), "sale", "1100", "4000", 10.0))
    conn = sqlite3.connect(store.cfg.path)
    conn.execute("UPDATE ledger_entries SET entry_number = 'LE-2024-9999' WHERE id = 1;")
    conn.execute("UPDATE ledger_entries SET entry_number = 'LE-2024-10000' WHERE id = 2;")
    conn.commit()
    conn.close()

    result = store.create_ledger_entry(
        make_draft(date(2024, 1, 6), "sale", "1100", "4000", 10.0)
    )

    assert result.success, result.error
    assert result.reference_number == "LE-2024-10001"
