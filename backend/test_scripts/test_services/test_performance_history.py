"""
Performance history tests.

Period returns, TWR history, since-inception metrics, dashboard periods,
chart filtering and the summary bundle.
"""
import math
from datetime import date
from decimal import Decimal

import pytest

from backend.app.schemas.analytics import PerformancePoint
from backend.app.services.carry_forward import CarryForwardIndex
from backend.app.services.performance import (
    ChartTimeRange,
    DashboardPeriod,
    build_performance_summary,
    cagr_since_inception,
    category_allocation_history,
    category_value_history,
    cumulative_twr_since_inception,
    filter_by_time_range,
    period_return_rate,
    period_growth_rate,
    period_returns,
    portfolio_value_history,
    resolve_period,
    twr_history,
    )
from backend.test_scripts.test_utils import make_asset, make_category, make_history, make_snapshot


def _index(values_by_date, flows_by_date=None):
    """Single-asset history: {date: value}, optional {date: [(amount, currency)]}."""
    flows_by_date = flows_by_date or {}
    return CarryForwardIndex.build(make_history(
        [make_asset("A")],
        [make_snapshot(d, {"A": v}, cash_flows=flows_by_date.get(d, ())) for d, v in values_by_date.items()],
        ))


# ============================================================================
# PERIOD RETURNS & TWR
# ============================================================================

class TestTimeWeightedReturn:
    """Chained Modified Dietz returns over consecutive snapshots."""

    def test_period_returns_with_end_flow(self):
        index = _index(
            {date(2025, 1, 1): 100000, date(2025, 1, 31): 110000, date(2025, 3, 2): 121000},
            {date(2025, 3, 2): [(10000, "USD")]},
            )
        returns = period_returns(index)
        assert [p.date for p in returns] == [date(2025, 1, 31), date(2025, 3, 2)]
        assert returns[0].value == Decimal("0.1")
        # Deposit on the last day of the period: weight 0
        assert returns[1].value == Decimal("1000") / Decimal("110000")

    def test_twr_history_starts_at_zero_and_matches_cumulative(self):
        index = _index(
            {date(2025, 1, 1): 100000, date(2025, 1, 31): 110000, date(2025, 3, 2): 121000},
            {date(2025, 3, 2): [(10000, "USD")]},
            )
        history = twr_history(index)
        assert history[0] == PerformancePoint(date=date(2025, 1, 1), value=Decimal("0"))
        assert history[1].value == Decimal("0.1")
        assert history[-1].value == cumulative_twr_since_inception(index)

    def test_undefined_period_is_neutralized(self):
        index = _index({date(2025, 1, 1): 0, date(2025, 2, 1): 100, date(2025, 3, 1): 110})
        assert [p.value for p in period_returns(index)] == [None, Decimal("0.1")]
        assert [p.value for p in twr_history(index)] == [Decimal("0"), Decimal("0"), Decimal("0.1")]
        assert cumulative_twr_since_inception(index) == Decimal("0.1")

    def test_fewer_than_two_snapshots(self):
        index = _index({date(2025, 1, 1): 100})
        assert period_returns(index) == []
        assert twr_history(index) == []
        assert cumulative_twr_since_inception(index) is None
        assert cagr_since_inception(index) is None

    def test_deposit_is_not_performance(self):
        """A pure deposit between snapshots gives a 0% period return."""
        index = _index(
            {date(2025, 1, 1): 1000, date(2025, 2, 1): 1500},
            {date(2025, 2, 1): [(500, "USD")]},
            )
        assert period_returns(index)[0].value == Decimal("0")


class TestCagrSinceInception:
    """CAGR between first and latest snapshots."""

    def test_cagr_uses_average_year(self):
        index = _index({date(2024, 1, 1): 100000, date(2026, 1, 1): 121000})
        expected = math.pow(1.21, 1 / (731 / 365.25)) - 1
        assert float(cagr_since_inception(index)) == pytest.approx(expected)

    def test_cagr_undefined_with_zero_start(self):
        index = _index({date(2024, 1, 1): 0, date(2025, 1, 1): 100})
        assert cagr_since_inception(index) is None


# ============================================================================
# VALUE HISTORY
# ============================================================================

class TestValueHistory:
    """Portfolio and category series."""

    @pytest.fixture
    def index(self):
        return CarryForwardIndex.build(make_history(
            [make_asset("E", category_id=1), make_asset("B", category_id=2)],
            [
                make_snapshot(date(2025, 1, 1), {"E": 300}),
                make_snapshot(date(2025, 2, 1), {"B": 100}),
                make_snapshot(date(2025, 3, 1), {"E": 500}),
                ],
            [make_category(1, "Equities"), make_category(2, "Bonds")],
            ))

    def test_portfolio_value_history(self, index):
        assert [p.value for p in portfolio_value_history(index)] == [Decimal("300"), Decimal("400"), Decimal("600")]

    def test_category_value_history(self, index):
        history = category_value_history(index)
        assert [p.value for p in history["Equities"]] == [Decimal("300"), Decimal("300"), Decimal("500")]
        # Bonds only from its first record onward
        assert [p.date for p in history["Bonds"]] == [date(2025, 2, 1), date(2025, 3, 1)]

    def test_category_allocation_history(self, index):
        history = category_allocation_history(index)
        assert [p.value for p in history["Equities"]] == [Decimal("100"), Decimal("75"), Decimal("500") / Decimal("600") * 100]
        assert history["Bonds"][0].value == Decimal("25")


# ============================================================================
# DASHBOARD PERIODS
# ============================================================================

class TestDashboardPeriods:
    """Bidirectional lookback to the closest snapshot."""

    @pytest.fixture
    def index(self):
        return _index({
            date(2025, 1, 1): 100,
            date(2025, 2, 10): 105,
            date(2025, 3, 1): 110,
            date(2025, 3, 31): 121,
            })

    def test_one_month_picks_closest_in_either_direction(self, index):
        # Lookback 2025-02-28: 2025-03-01 is one day after
        resolved = resolve_period(index, DashboardPeriod.ONE_MONTH)
        assert resolved.begin_date == date(2025, 3, 1)
        assert resolved.end_date == date(2025, 3, 31)

    def test_long_periods_fall_back_to_oldest(self, index):
        assert resolve_period(index, "3M").begin_date == date(2025, 1, 1)
        assert resolve_period(index, DashboardPeriod.ONE_YEAR).begin_date == date(2025, 1, 1)

    def test_ties_prefer_earlier_snapshot(self):
        index = _index({date(2025, 1, 1): 1, date(2025, 1, 3): 1, date(2025, 2, 2): 1})
        # Lookback 2025-01-02 is one day from both candidates
        assert resolve_period(index, "1M").begin_date == date(2025, 1, 1)

    def test_single_snapshot_has_no_period(self):
        assert resolve_period(_index({date(2025, 1, 1): 1}), "1M") is None

    def test_period_growth_rate(self, index):
        assert period_growth_rate(index, "1M") == Decimal("0.1")
        assert period_growth_rate(index, "1Y") == Decimal("0.21")

    def test_period_return_rate_weights_intermediate_flows(self):
        index = _index(
            {date(2025, 1, 1): 100000, date(2025, 1, 31): 112000, date(2025, 3, 2): 121000},
            {date(2025, 1, 1): [(99999, "USD")], date(2025, 1, 31): [(10000, "USD")]},
            )
        # Begin snapshot flow excluded; mid flow at day 30 of 60 has weight 0.5
        assert period_return_rate(index, "3M") == Decimal("11000") / Decimal("105000")
        assert period_growth_rate(index, "3M") == Decimal("0.21")


# ============================================================================
# CHART FILTERING
# ============================================================================

class TestChartFilter:
    """Time ranges relative to the latest point."""

    @pytest.fixture
    def points(self):
        dates = [date(2023, 6, 1), date(2024, 12, 31), date(2025, 5, 1), date(2025, 5, 25), date(2025, 6, 1)]
        return [PerformancePoint(date=d, value=Decimal(i)) for i, d in enumerate(dates)]

    def test_all_keeps_everything(self, points):
        assert filter_by_time_range(points, ChartTimeRange.ALL) == points

    def test_one_week_inclusive_start(self, points):
        assert [p.date for p in filter_by_time_range(points, "1W")] == [date(2025, 5, 25), date(2025, 6, 1)]

    def test_one_month_and_one_year(self, points):
        assert [p.date for p in filter_by_time_range(points, "1M")] == [date(2025, 5, 1), date(2025, 5, 25), date(2025, 6, 1)]
        assert len(filter_by_time_range(points, ChartTimeRange.ONE_YEAR)) == 4
        assert len(filter_by_time_range(points, ChartTimeRange.THREE_YEARS)) == 5

    def test_empty_input(self):
        assert filter_by_time_range([], "3M") == []


# ============================================================================
# SUMMARY
# ============================================================================

class TestPerformanceSummary:
    """Independent metrics in one bundle."""

    def test_empty_history(self):
        summary = build_performance_summary(CarryForwardIndex.build(make_history([], [])))
        assert summary.latest_snapshot_date is None
        assert summary.total_value == Decimal("0")
        assert summary.cumulative_twr is None
        assert summary.cagr is None
        assert summary.periods == []

    def test_single_snapshot(self):
        summary = build_performance_summary(_index({date(2025, 1, 1): 500}))
        assert summary.total_value == Decimal("500")
        assert summary.asset_count == 1
        assert summary.cumulative_twr is None
        assert summary.periods == []

    def test_undefined_cagr_does_not_hide_other_metrics(self):
        index = _index({date(2024, 1, 1): 0, date(2024, 12, 1): 100, date(2025, 1, 1): 110})
        summary = build_performance_summary(index)
        assert summary.cagr is None
        assert summary.cumulative_twr == Decimal("0.1")
        one_month = next(p for p in summary.periods if p.period == "1M")
        assert one_month.begin_date == date(2024, 12, 1)
        assert one_month.growth_rate == Decimal("0.1")
        assert one_month.return_rate == Decimal("0.1")

    def test_one_day_window_with_large_growth(self):
        """A 10x day annualizes to a huge CAGR instead of failing the summary."""
        index = _index({date(2025, 1, 1): 1000, date(2025, 1, 2): 11000})
        summary = build_performance_summary(index)
        assert summary.cumulative_twr == Decimal("10")
        assert summary.cagr == cagr_since_inception(index)
        assert summary.cagr > Decimal("1E+380")
        one_month = next(p for p in summary.periods if p.period == "1M")
        assert one_month.growth_rate == Decimal("10")

    def test_summary_matches_individual_functions(self):
        index = _index(
            {date(2024, 1, 1): 100000, date(2024, 7, 1): 104000, date(2025, 1, 1): 115000},
            {date(2024, 7, 1): [(2000, "USD")]},
            )
        summary = build_performance_summary(index)
        assert summary.cumulative_twr == cumulative_twr_since_inception(index)
        assert summary.cagr == cagr_since_inception(index)
        assert [p.period for p in summary.periods] == ["1M", "3M", "1Y"]
        for row in summary.periods:
            assert row.growth_rate == period_growth_rate(index, row.period)
            assert row.return_rate == period_return_rate(index, row.period)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
