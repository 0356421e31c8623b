# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for QMS Ledger.

This module wires together the main building blocks of QMS Ledger:

- global configuration (fiscal year, database, report and display options),
- journal CSV import and draft entry validation,
- the SQLite ledger store,
- the profit-and-loss report (statement, monthly breakdown, comparison),
- view helpers (tabular rendering).

The CLI is intentionally thin: it does not implement accounting logic
itself. It orchestrates the underlying modules based on command-line
arguments and the configuration file.


Commands
--------

- ``init``:
    Create the database and seed the chart of accounts configured in
    ``[accounts].chart_of_accounts`` (or given with ``--chart-of-accounts``).

- ``validate CSV``:
    Read draft entries from a journal CSV and print their validation
    errors. Exit status 1 if any draft is invalid.

- ``post CSV``:
    Validate and submit each draft entry. Prints the reference numbers of
    the created entries and the errors of the rejected ones. Exit status 1
    if any entry failed.

- ``entries``:
    List ledger entries for a period, with optional filters on reference
    type, account type and status.

- ``report``:
    Print the profit-and-loss statement of a period, with its monthly
    breakdown and comparison with the preceding period (switchable with
    ``--monthly/--no-monthly`` and ``--compare/--no-compare``).


Periods
-------

``entries`` and ``report`` accept:

- ``--period`` (fy, ytd, mtd, last-month, last-fy), relative to the fiscal
  year defined in the configuration;
- ``--from-date`` / ``--to-date`` (YYYY-MM-DD), which take precedence.

The full fiscal year is used when nothing is given.


Configuration
-------------

By default, the CLI reads ``qms_ledger_config.toml`` in the current working
directory. Use ``--config PATH`` to point to another file.
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .accounts import load_chart_of_accounts, unknown_accounts
from .breakdown import build_report
from .config import GROWTH_FORMULAS, AppConfig, load_app_config
from .db import SqliteLedgerStore
from .entries import validate_draft_entry
from .errors import LedgerQueryError, ReportUnavailableError
from .io import read_journal_csv
from .periods import PERIOD_PRESETS, determine_period_from_args
from .query import ENTRY_STATUSES, EntryFilters
from .views import (
    breakdown_to_frame,
    comparison_to_frame,
    errors_to_frame,
    statement_to_frame,
)

logger = logging.getLogger(__name__)


def _add_period_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--period",
        choices=list(PERIOD_PRESETS),
        help=(
            "Predefined reporting period. "
            "One of: fy, ytd, mtd, last-month, last-fy. "
            "If not provided, the full fiscal year from config is used."
        ),
    )
    parser.add_argument(
        "--from-date",
        dest="from_date",
        help=(
            "Custom period start date (YYYY-MM-DD). If provided without "
            "--to-date, the fiscal year end_date from config is used."
        ),
    )
    parser.add_argument(
        "--to-date",
        dest="to_date",
        help=(
            "Custom period end date (YYYY-MM-DD). If provided without "
            "--from-date, the fiscal year start_date from config is used."
        ),
    )


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="python -m qms_ledger.cli",
        description=(
            "QMS Ledger - General ledger validation & profit-and-loss reporting. "
            "Validates and records manual journal entries and renders the "
            "profit-and-loss statement of a period."
        ),
    )

    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of qms_ledger and exit.",
    )

    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. "
            "If omitted, 'qms_ledger_config.toml' in the current directory is used."
        ),
    )

    ap.add_argument(
        "--log-level",
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override the [logging].level setting from the configuration file.",
    )

    ap.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log at DEBUG level (same as --log-level DEBUG).",
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # init
    init_parser = subparsers.add_parser(
        "init",
        help="Create the database and seed the chart of accounts.",
    )
    init_parser.add_argument(
        "--chart-of-accounts",
        dest="chart_of_accounts",
        help="Override the chart of accounts CSV path defined in the configuration.",
    )

    # validate / post
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate the draft entries of a journal CSV without posting them.",
    )
    validate_parser.add_argument("csv_path", metavar="CSV", help="Journal CSV file.")

    post_parser = subparsers.add_parser(
        "post",
        help="Validate and post the draft entries of a journal CSV.",
    )
    post_parser.add_argument("csv_path", metavar="CSV", help="Journal CSV file.")
    post_parser.add_argument(
        "--status",
        choices=list(ENTRY_STATUSES),
        default="posted",
        help="Status of the created entries (default: posted).",
    )

    # entries
    entries_parser = subparsers.add_parser(
        "entries",
        help="List ledger entries for a period.",
    )
    _add_period_arguments(entries_parser)
    entries_parser.add_argument(
        "--reference-type",
        dest="reference_type",
        help="Only entries with this reference type (sale, purchase, ...; 'all' = no filter).",
    )
    entries_parser.add_argument(
        "--account-type",
        dest="account_type",
        help=(
            "Only entries with at least one line on an account of this type "
            "(asset, liability, equity, revenue, expense; 'all' = no filter)."
        ),
    )
    entries_parser.add_argument(
        "--status",
        help="Only entries with this status (draft, posted; 'all' = no filter).",
    )

    # report
    report_parser = subparsers.add_parser(
        "report",
        help="Print the profit-and-loss statement of a period.",
    )
    _add_period_arguments(report_parser)
    report_parser.add_argument(
        "--monthly",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Include the monthly breakdown (default from [report].monthly_breakdown).",
    )
    report_parser.add_argument(
        "--compare",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Include the comparison with the preceding period (default from [report].comparison).",
    )
    report_parser.add_argument(
        "--growth-formula",
        dest="growth_formula",
        choices=list(GROWTH_FORMULAS),
        help="Override the [report].growth_formula setting.",
    )

    return ap


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _resolve_period(parser: argparse.ArgumentParser, args, config: AppConfig):
    try:
        return determine_period_from_args(args, config.fiscal_year)
    except ValueError as exc:
        parser.error(str(exc))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _handle_init(args: argparse.Namespace, config: AppConfig) -> None:
    store = SqliteLedgerStore(config.database)
    print(f"Database ready: {config.database.path}")

    coa_path: Optional[Path] = (
        Path(args.chart_of_accounts) if args.chart_of_accounts else config.chart_of_accounts
    )
    if coa_path is None:
        print("No chart of accounts configured; skipping account import.")
        return

    accounts = load_chart_of_accounts(str(coa_path))
    count = store.import_accounts(accounts)
    print(f"Imported {count} account(s) from {coa_path}")


def _handle_validate(args: argparse.Namespace, config: AppConfig) -> None:
    """
    Handle the 'validate' subcommand.

    Every draft is checked with ``validate_draft_entry``. When the database
    already has a chart of accounts, account codes missing from it are
    reported as well. The database is only read, never created.
    """
    drafts = read_journal_csv(args.csv_path)

    known_codes: set[str] = set()
    if config.database.path.exists():
        store = SqliteLedgerStore(config.database)
        known_codes = set(store.list_accounts()["account_code"])

    frames = []
    for i, draft in enumerate(drafts, start=1):
        errors = validate_draft_entry(draft)
        if known_codes:
            for code in unknown_accounts(draft, known_codes):
                errors[f"account:{code}"] = "Unknown account"
        if errors:
            frames.append(errors_to_frame(errors, entry=str(i)))

    if not frames:
        print(f"{len(drafts)} entry(ies) valid.")
        return

    report = pd.concat(frames, ignore_index=True)
    invalid = report["entry"].nunique()
    print(report.to_string(index=False))
    print()
    print(f"{invalid} of {len(drafts)} entry(ies) invalid.")
    raise SystemExit(1)


def _handle_post(args: argparse.Namespace, config: AppConfig) -> None:
    """Handle the 'post' subcommand: submit each draft independently."""
    drafts = read_journal_csv(args.csv_path)
    store = SqliteLedgerStore(config.database)

    failures = 0
    for i, draft in enumerate(drafts, start=1):
        result = store.create_ledger_entry(draft, status=args.status)
        if result.success:
            print(f"[{i}] {result.reference_number}  {draft.description}")
        else:
            failures += 1
            print(f"[{i}] FAILED  {draft.description}: {result.error}")

    print()
    print(f"Posted {len(drafts) - failures} of {len(drafts)} entry(ies).")
    if failures:
        raise SystemExit(1)


def _handle_entries(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: AppConfig
) -> None:
    """List ledger entries for the selected period and filters."""
    period = _resolve_period(parser, args, config)
    store = SqliteLedgerStore(config.database)

    filters = EntryFilters(
        reference_type=args.reference_type,
        account_type=args.account_type,
        status=args.status,
    )
    df = store.get_ledger_entries_frame(period.start, period.end, filters)

    print(
        f"Applied period: {period.label} "
        f"({period.start.isoformat()} → {period.end.isoformat()})"
    )

    if df.empty:
        print("No entries found for the given criteria.")
        return

    df_display = df.copy()
    df_display["entry_date"] = df_display["entry_date"].dt.date.astype(str)
    for col in ("total_debit", "total_credit"):
        df_display[col] = df_display[col].round(config.amount_decimals)

    print()
    print(df_display.to_string(index=False))
    print()
    print(
        f"Total entries: {len(df)} | "
        f"Total debit: {float(df['total_debit'].sum()):.2f} | "
        f"Total credit: {float(df['total_credit'].sum()):.2f}"
    )


def _handle_report(
    parser: argparse.ArgumentParser, args: argparse.Namespace, config: AppConfig
) -> None:
    """Build and print the profit-and-loss report of the selected period."""
    period = _resolve_period(parser, args, config)
    store = SqliteLedgerStore(config.database)

    report_cfg = config.report
    monthly = report_cfg.monthly_breakdown if args.monthly is None else args.monthly
    compare = report_cfg.comparison if args.compare is None else args.compare
    growth_formula = args.growth_formula or report_cfg.growth_formula

    try:
        statement = build_report(
            store,
            period.start,
            period.end,
            period_label=period.label,
            monthly_breakdown=monthly,
            comparison=compare,
            growth_formula=growth_formula,
            extra_amounts=config.statement_inputs,
            max_months=report_cfg.max_months,
            max_workers=report_cfg.max_workers,
        )
    except ReportUnavailableError as exc:
        print(f"Error: {exc}. Please try again.")
        raise SystemExit(1) from exc

    title = "Profit and loss statement"
    if config.company_name:
        title = f"{config.company_name} - {title}"
    print(f"{title} ({config.currency})")
    print(
        f"Applied period: {period.label} "
        f"({period.start.isoformat()} → {period.end.isoformat()})"
    )
    print()

    view = statement_to_frame(
        statement,
        amount_decimals=config.amount_decimals,
        percent_decimals=config.percent_decimals,
    )
    print(view.drop(columns=["display_order", "line"]).to_string(index=False))

    if monthly:
        print()
        print("Monthly breakdown:")
        months = breakdown_to_frame(statement.monthly_breakdown, config.amount_decimals)
        if months.empty:
            print("No monthly data available.")
        else:
            print(months.to_string(index=False))

    if compare:
        print()
        print("Comparison with the preceding period:")
        comparison = comparison_to_frame(
            statement.comparison,
            amount_decimals=config.amount_decimals,
            percent_decimals=config.percent_decimals,
        )
        if comparison.empty:
            print("Comparison unavailable.")
        else:
            print(comparison.drop(columns=["key"]).to_string(index=False))


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the QMS Ledger CLI.

    This function parses command-line arguments, loads the application
    configuration, configures logging and dispatches to the handler of the
    requested command.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"qms_ledger version {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    # 1) Load application configuration
    if args.config_path:
        config = load_app_config(args.config_path)
    else:
        config = load_app_config()

    if args.verbose:
        _configure_logging("DEBUG")
    else:
        _configure_logging(args.log_level or config.log_level)
    logger.debug("Loaded configuration, database at %s", config.database.path)

    # 2) Dispatch
    try:
        if args.command == "init":
            _handle_init(args, config)
        elif args.command == "validate":
            _handle_validate(args, config)
        elif args.command == "post":
            _handle_post(args, config)
        elif args.command == "entries":
            _handle_entries(parser, args, config)
        elif args.command == "report":
            _handle_report(parser, args, config)
    except LedgerQueryError as exc:
        print(f"Error: {exc}")
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
