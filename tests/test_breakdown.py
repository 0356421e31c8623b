import logging
import threading
import time
from datetime import date

import pytest

from qms_ledger.breakdown import build_comparison, build_monthly_breakdown, build_report
from qms_ledger.errors import LedgerQueryError, ReportUnavailableError
from qms_ledger.query import FinancialMetrics


class StubQuery:
    """In-memory query layer keyed by (date_from, date_to)."""

    def __init__(self, metrics=None, failing=(), default=None, delays=None):
        self.metrics = dict(metrics or {})
        self.failing = set(failing)
        self.default = default if default is not None else FinancialMetrics()
        self.delays = dict(delays or {})
        self.calls = []
        self._lock = threading.Lock()

    def get_financial_metrics(self, date_from, date_to):
        with self._lock:
            self.calls.append((date_from, date_to))
        if date_from in self.delays:
            time.sleep(self.delays[date_from])
        if date_from in self.failing:
            raise ConnectionError(f"backend unavailable for {date_from}")
        return self.metrics.get((date_from, date_to), self.default)

    def get_ledger_entries(self, date_from, date_to, filters=None):
        return []

    def create_ledger_entry(self, draft):
        raise NotImplementedError


def month_metrics(sales, purchases=0.0, expenses=0.0) -> FinancialMetrics:
    return FinancialMetrics(
        total_sales=sales,
        total_purchases=purchases,
        expenses=expenses,
        net_profit=sales - purchases - expenses,
    )


Q1_2024 = {
    (date(2024, 1, 1), date(2024, 1, 31)): month_metrics(1000.0, 400.0, 100.0),
    (date(2024, 2, 1), date(2024, 2, 29)): month_metrics(2000.0, 500.0, 200.0),
    (date(2024, 3, 1), date(2024, 3, 31)): month_metrics(3000.0, 600.0, 300.0),
}


def test_monthly_breakdown_rows():
    """Each month carries net revenue, COGS + opex and net income."""
    query = StubQuery(Q1_2024)

    months = build_monthly_breakdown(query, date(2024, 1, 1), date(2024, 3, 31))

    assert [m.month for m in months] == ["January 2024", "February 2024", "March 2024"]
    assert months[0].revenue == pytest.approx(1000.0)
    assert months[0].expenses == pytest.approx(500.0)
    assert months[0].net_income == pytest.approx(500.0)
    assert months[2].net_income == pytest.approx(2100.0)


def test_monthly_breakdown_fetches_full_calendar_months():
    query = StubQuery(Q1_2024)

    build_monthly_breakdown(query, date(2024, 1, 15), date(2024, 2, 10))

    assert query.calls == [
        (date(2024, 1, 1), date(2024, 1, 31)),
        (date(2024, 2, 1), date(2024, 2, 29)),
    ]


def test_failed_month_is_omitted_and_logged(caplog):
    """One failing month does not abort the breakdown."""
    query = StubQuery(Q1_2024, failing={date(2024, 2, 1)})

    with caplog.at_level(logging.WARNING, logger="qms_ledger.breakdown"):
        months = build_monthly_breakdown(query, date(2024, 1, 1), date(2024, 3, 31))

    assert [m.month for m in months] == ["January 2024", "March 2024"]
    assert "February 2024" in caplog.text


def test_all_months_failing_gives_empty_breakdown():
    query = StubQuery(failing={date(2024, 1, 1), date(2024, 2, 1)})

    assert build_monthly_breakdown(query, date(2024, 1, 1), date(2024, 2, 29)) == []


def test_concurrent_breakdown_keeps_chronological_order():
    """Later months finishing first are still returned in month order."""
    delays = {date(2024, 1, 1): 0.2, date(2024, 2, 1): 0.1}
    query = StubQuery(Q1_2024, delays=delays)

    months = build_monthly_breakdown(
        query, date(2024, 1, 1), date(2024, 3, 31), max_workers=3
    )

    assert [m.month for m in months] == ["January 2024", "February 2024", "March 2024"]


def test_concurrent_breakdown_with_failure():
    query = StubQuery(Q1_2024, failing={date(2024, 1, 1)})

    months = build_monthly_breakdown(
        query, date(2024, 1, 1), date(2024, 3, 31), max_workers=4
    )

    assert [m.month for m in months] == ["February 2024", "March 2024"]


def test_reversed_range_yields_no_month():
    query = StubQuery(Q1_2024)

    assert build_monthly_breakdown(query, date(2024, 3, 1), date(2024, 1, 1)) == []
    assert query.calls == []


def test_breakdown_is_capped_at_max_months(caplog):
    query = StubQuery()

    with caplog.at_level(logging.WARNING, logger="qms_ledger.breakdown"):
        months = build_monthly_breakdown(
            query, date(2024, 1, 1), date(2024, 12, 31), max_months=4
        )

    assert len(months) == 4
    assert "truncated" in caplog.text


def test_cancelled_breakdown_stops_fetching():
    """Once the event is set, no further month is fetched."""
    cancel = threading.Event()

    class CancellingQuery(StubQuery):
        def get_financial_metrics(self, date_from, date_to):
            result = super().get_financial_metrics(date_from, date_to)
            if date_from == date(2024, 2, 1):
                cancel.set()
            return result

    query = CancellingQuery(Q1_2024)

    months = build_monthly_breakdown(
        query, date(2024, 1, 1), date(2024, 3, 31), cancel_event=cancel
    )

    assert [m.month for m in months] == ["January 2024", "February 2024"]
    assert len(query.calls) == 2


def test_cancelled_before_start_fetches_nothing():
    cancel = threading.Event()
    cancel.set()
    query = StubQuery(Q1_2024)

    months = build_monthly_breakdown(
        query, date(2024, 1, 1), date(2024, 3, 31), max_workers=2, cancel_event=cancel
    )

    assert months == []
    assert query.calls == []


def test_comparison_legacy_formula():
    """Legacy growth compares current net income with previous sales."""
    previous = {(date(2024, 1, 1), date(2024, 1, 31)): month_metrics(1000.0, 200.0, 300.0)}
    query = StubQuery(previous)

    comp = build_comparison(query, date(2024, 2, 1), date(2024, 2, 29), 750.0)

    assert comp.previous_period.revenue == pytest.approx(1000.0)
    assert comp.previous_period.net_income == pytest.approx(500.0)
    assert comp.growth.revenue_growth == pytest.approx(-25.0)
    assert comp.growth.profit_growth == pytest.approx(50.0)


def test_comparison_standard_formula():
    previous = {(date(2024, 1, 1), date(2024, 1, 31)): month_metrics(1000.0, 200.0, 300.0)}
    query = StubQuery(previous)

    comp = build_comparison(
        query,
        date(2024, 2, 1),
        date(2024, 2, 29),
        750.0,
        current_revenue=1200.0,
        growth_formula="standard",
    )

    assert comp.growth.revenue_growth == pytest.approx(20.0)
    assert comp.growth.profit_growth == pytest.approx(50.0)


def test_comparison_without_previous_data_has_zero_growth():
    query = StubQuery()

    comp = build_comparison(query, date(2024, 2, 1), date(2024, 2, 29), 750.0)

    assert comp.growth.revenue_growth == 0.0
    assert comp.growth.profit_growth == 0.0


def test_comparison_with_previous_loss_has_zero_profit_growth():
    previous = {(date(2024, 1, 1), date(2024, 1, 31)): month_metrics(100.0, 0.0, 300.0)}
    query = StubQuery(previous)

    comp = build_comparison(query, date(2024, 2, 1), date(2024, 2, 29), 50.0)

    assert comp.previous_period.net_income == pytest.approx(-200.0)
    assert comp.growth.profit_growth == 0.0


def test_comparison_standard_formula_requires_revenue():
    with pytest.raises(ValueError):
        build_comparison(
            StubQuery(), date(2024, 2, 1), date(2024, 2, 29), 1.0, growth_formula="standard"
        )


def test_comparison_fetch_failure_raises_query_error():
    query = StubQuery(failing={date(2024, 1, 1)})

    with pytest.raises(LedgerQueryError):
        build_comparison(query, date(2024, 2, 1), date(2024, 2, 29), 1.0)


def test_report_attaches_breakdown_and_comparison():
    metrics = dict(Q1_2024)
    metrics[(date(2024, 1, 1), date(2024, 3, 31))] = month_metrics(6000.0, 1500.0, 600.0)
    metrics[(date(2023, 10, 1), date(2023, 12, 31))] = month_metrics(3000.0, 1000.0, 500.0)
    query = StubQuery(metrics)

    st = build_report(query, date(2024, 1, 1), date(2024, 3, 31), period_label="Q1 2024")

    assert st.period == "Q1 2024"
    assert st.summary.net_income == pytest.approx(3900.0)
    assert len(st.monthly_breakdown) == 3
    assert st.comparison.previous_period.revenue == pytest.approx(3000.0)
    assert st.comparison.growth.revenue_growth == pytest.approx(30.0)


def test_report_switches():
    query = StubQuery(Q1_2024)

    st = build_report(
        query,
        date(2024, 1, 1),
        date(2024, 1, 31),
        monthly_breakdown=False,
        comparison=False,
    )

    assert st.monthly_breakdown is None
    assert st.comparison is None
    assert st.period == "2024-01-01 to 2024-01-31"


def test_report_whole_range_failure_is_a_single_error():
    query = StubQuery(failing={date(2024, 1, 1)})

    with pytest.raises(ReportUnavailableError) as excinfo:
        build_report(query, date(2024, 1, 1), date(2024, 3, 31), period_label="Q1 2024")

    assert excinfo.value.retryable is True
    assert excinfo.value.period_label == "Q1 2024"


def test_report_comparison_failure_leaves_comparison_unset(caplog):
    query = StubQuery(Q1_2024, failing={date(2023, 12, 1)})

    with caplog.at_level(logging.WARNING, logger="qms_ledger.breakdown"):
        st = build_report(query, date(2024, 1, 1), date(2024, 1, 31))

    assert st.comparison is None
    assert st.monthly_breakdown is not None
    assert "Comparison unavailable" in caplog.text
