# QMS Ledger - General ledger validation & profit-and-loss reporting
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Configuration helpers for QMS Ledger.

This module is responsible for:
- loading the application configuration from a TOML file,
- validating its values,
- exposing typed dataclasses used by the rest of the application.
"""

import tomllib  # Python 3.11+
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Optional

from .db import DatabaseConfig
from .statement import STATEMENT_INPUT_FIELDS

DEFAULT_CONFIG_FILE = "qms_ledger_config.toml"

GROWTH_FORMULAS: tuple[str, ...] = ("legacy", "standard")


@dataclass(frozen=True)
class FiscalYear:
    """Represents a fiscal year with a start and end date."""

    start_date: date
    end_date: date


@dataclass(frozen=True)
class ReportConfig:
    """
    Options of the profit-and-loss report.

    Attributes
    ----------
    monthly_breakdown:
        Attach a month-by-month breakdown to the statement.
    comparison:
        Attach a comparison with the preceding period of equal length.
    growth_formula:
        'legacy' keeps the historical growth rates (current net income
        against previous revenue); 'standard' compares like with like.
    max_months:
        Upper bound on the number of months of a breakdown.
    max_workers:
        Number of concurrent month fetches (1 = sequential).
    """

    monthly_breakdown: bool = True
    comparison: bool = True
    growth_formula: str = "legacy"
    max_months: int = 120
    max_workers: int = 4


@dataclass(frozen=True)
class AppConfig:
    """
    Application-wide configuration for QMS Ledger.

    This aggregates:
    - the fiscal year definition,
    - the company name and presentation currency,
    - the database configuration (where ledger entries are stored),
    - the optional chart of accounts file,
    - report options,
    - optional manual statement inputs,
    - display and logging options.
    """

    fiscal_year: FiscalYear
    database: DatabaseConfig
    company_name: str = ""
    currency: str = "PKR"
    chart_of_accounts: Optional[Path] = None
    report: ReportConfig = field(default_factory=ReportConfig)
    statement_inputs: dict[str, float] = field(default_factory=dict)
    percent_decimals: int = 2
    amount_decimals: int = 2
    log_level: str = "WARNING"


def _load_toml(path: Path) -> dict[str, Any]:
    """
    Load a TOML file and return its content as a dictionary.

    Raises:
        FileNotFoundError: if the file does not exist.
        ValueError: if the TOML content cannot be parsed or is not a table.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"Failed to parse TOML config file: {path}") from exc

    if not isinstance(data, dict):
        raise ValueError(f"Invalid TOML root type in {path}, expected a table.")

    return data


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    """Return a sub-table, or an empty mapping when absent or malformed."""
    value = data.get(name) or {}
    if not isinstance(value, Mapping):
        return {}
    return value


def _parse_fiscal_year(config_data: Mapping[str, Any]) -> FiscalYear:
    """
    Extract and validate the fiscal year from raw TOML configuration data.

    Raises:
        ValueError: if the fiscal year section or dates are missing/invalid.
    """
    fiscal_data = config_data.get("fiscal_year")
    if not isinstance(fiscal_data, Mapping):
        raise ValueError("Config file is missing [fiscal_year] table.")

    try:
        start_raw = fiscal_data["start_date"]
        end_raw = fiscal_data["end_date"]
    except KeyError as exc:
        raise ValueError(
            "Config file is missing [fiscal_year].start_date or end_date."
        ) from exc

    try:
        start = date.fromisoformat(str(start_raw))
        end = date.fromisoformat(str(end_raw))
    except ValueError as exc:
        raise ValueError(
            "Invalid fiscal year dates, expected YYYY-MM-DD format."
        ) from exc

    if end < start:
        raise ValueError("Fiscal year end_date cannot be before start_date.")

    return FiscalYear(start_date=start, end_date=end)


def _parse_int(section: Mapping[str, Any], key: str, default: int, name: str) -> int:
    raw = section.get(key, default)
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Invalid value for '{name}.{key}' in the configuration. "
            "Expected an integer."
        ) from exc
    return value


def _parse_report(config_data: Mapping[str, Any]) -> ReportConfig:
    """Parse the [report] table."""
    section = _section(config_data, "report")

    growth_formula = str(section.get("growth_formula", "legacy")).lower()
    if growth_formula not in GROWTH_FORMULAS:
        raise ValueError(
            f"Invalid report.growth_formula {growth_formula!r}. "
            f"Expected one of: {', '.join(GROWTH_FORMULAS)}."
        )

    max_months = _parse_int(section, "max_months", 120, "report")
    max_workers = _parse_int(section, "max_workers", 4, "report")
    if max_months < 1:
        raise ValueError("report.max_months must be at least 1.")
    if max_workers < 1:
        raise ValueError("report.max_workers must be at least 1.")

    return ReportConfig(
        monthly_breakdown=bool(section.get("monthly_breakdown", True)),
        comparison=bool(section.get("comparison", True)),
        growth_formula=growth_formula,
        max_months=max_months,
        max_workers=max_workers,
    )


def load_app_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load the QMS Ledger application configuration from a TOML file.

    Expected top-level sections in the TOML file
    --------------------------------------------
    [fiscal_year]
        start_date / end_date (YYYY-MM-DD). Mandatory.

    [company]
        name and presentation currency (display only).

    [database]
        Database engine and SQLite file path.

    [accounts]
        Optional chart of accounts CSV (account_code, account_name,
        account_type).

    [report]
        Monthly breakdown / comparison switches, growth formula, bounds.

    [inputs.statement]
        Optional manual amounts for statement lines the ledger does not
        track (e.g. rent = 8000, income_tax_expense = 1200).

    [display]
        Decimals for amounts and percentages.

    [logging]
        Log level used by the CLI.

    All file paths in the TOML are resolved relative to the directory of
    the TOML file itself.

    Returns
    -------
    AppConfig
        Parsed and validated application configuration.
    """
    if config_path is None:
        config_file = Path(DEFAULT_CONFIG_FILE).resolve()
    else:
        config_file = Path(config_path).resolve()

    raw = _load_toml(config_file)
    base_dir = config_file.parent

    # 1) Fiscal year
    fiscal_year = _parse_fiscal_year(raw)

    # 2) Company
    company_section = _section(raw, "company")
    company_name = str(company_section.get("name") or "")
    currency = str(company_section.get("currency") or "PKR")

    # 3) Database
    database_section = _section(raw, "database")
    db_engine = str(database_section.get("engine") or "sqlite")
    db_path_raw = database_section.get("path") or "data/db/qms_ledger.sqlite"
    database_config = DatabaseConfig(
        engine=db_engine, path=(base_dir / str(db_path_raw)).resolve()
    )

    # 4) Chart of accounts
    accounts_section = _section(raw, "accounts")
    coa_raw = accounts_section.get("chart_of_accounts")
    chart_of_accounts = (base_dir / str(coa_raw)).resolve() if coa_raw else None

    # 5) Report options
    report = _parse_report(raw)

    # 6) Manual statement inputs
    statement_section = _section(_section(raw, "inputs"), "statement")
    statement_inputs: dict[str, float] = {}
    for key, value in statement_section.items():
        if str(key) not in STATEMENT_INPUT_FIELDS:
            raise ValueError(
                f"Unknown statement line in [inputs.statement]: {key!r}. "
                f"Expected one of: {', '.join(sorted(STATEMENT_INPUT_FIELDS))}."
            )
        try:
            statement_inputs[str(key)] = float(value)
        except (TypeError, ValueError):
            # Ignore values that cannot be converted to float
            continue

    # 7) Display options
    display_section = _section(raw, "display")
    percent_decimals = _parse_int(display_section, "percent_decimals", 2, "display")
    amount_decimals = _parse_int(display_section, "amount_decimals", 2, "display")

    # 8) Logging
    logging_section = _section(raw, "logging")
    log_level = str(logging_section.get("level") or "WARNING").upper()

    return AppConfig(
        fiscal_year=fiscal_year,
        database=database_config,
        company_name=company_name,
        currency=currency,
        chart_of_accounts=chart_of_accounts,
        report=report,
        statement_inputs=statement_inputs,
        percent_decimals=percent_decimals,
        amount_decimals=amount_decimals,
        log_level=log_level,
    )
