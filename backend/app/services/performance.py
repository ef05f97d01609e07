"""
Performance history service.

Dashboard analytics computed from a carry-forward index:
- Modified Dietz return per consecutive pair of snapshots
- Cumulative TWR history and since-inception TWR / CAGR
- Portfolio, category value and category allocation history
- Lookback periods (1M, 3M, 1Y) resolved to real snapshots
- Chart time-range filtering

Every metric is independently None when undefined: an undefined CAGR never
prevents the TWR or a period growth rate from being reported.

Each snapshot is valued with the rate table stored with it, unless the
caller passes an explicit table that then applies to every snapshot.
"""
from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, TypeVar

import structlog

from backend.app.config import get_settings
from backend.app.schemas.analytics import (
    CashFlowPoint,
    PerformancePoint,
    PerformanceSummary,
    PeriodPerformance,
    )
from backend.app.schemas.portfolio import ExchangeRateTable
from backend.app.services.carry_forward import CarryForwardIndex
from backend.app.utils.datetime_utils import add_months, days_between
from backend.app.utils.financial_math import (
    cagr,
    cumulative_twr,
    growth_rate,
    modified_dietz_return,
    twr_growth_path,
    years_between,
    )

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")

T = TypeVar("T")


# ============================================================================
# PERIODS & RANGES
# ============================================================================

class DashboardPeriod(str, Enum):
    """Lookback period for growth and return rates."""
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"

    @property
    def months(self) -> int:
        return {"1M": 1, "3M": 3, "1Y": 12}[self.value]


class ChartTimeRange(str, Enum):
    """Zoom range for history charts, relative to the latest data point."""
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    THREE_YEARS = "3Y"
    FIVE_YEARS = "5Y"
    ALL = "All"

    def start_date(self, reference: date) -> Optional[date]:
        """First date included in the range, or None for ALL (no filtering)."""
        if self == ChartTimeRange.ALL:
            return None
        if self == ChartTimeRange.ONE_WEEK:
            return reference - timedelta(days=7)
        months = {
            ChartTimeRange.ONE_MONTH: 1,
            ChartTimeRange.THREE_MONTHS: 3,
            ChartTimeRange.SIX_MONTHS: 6,
            ChartTimeRange.ONE_YEAR: 12,
            ChartTimeRange.THREE_YEARS: 36,
            ChartTimeRange.FIVE_YEARS: 60,
            }[self]
        return add_months(reference, -months)


class ResolvedPeriod(NamedTuple):
    """Begin and end snapshot dates of a dashboard period."""
    begin_date: date
    end_date: date


# ============================================================================
# HELPERS
# ============================================================================

def _snapshot_totals(
    index: CarryForwardIndex,
    display_currency: Optional[str],
    exchange_rates: Optional[ExchangeRateTable],
    ) -> Dict[date, Decimal]:
    """Effective total value at every snapshot date (ascending insertion order)."""
    return {
        valuation.as_of: valuation.total_value
        for valuation in index.resolve_all(display_currency, exchange_rates)
        }


def _period_returns_from_totals(
    index: CarryForwardIndex,
    totals: Dict[date, Decimal],
    display_currency: Optional[str],
    exchange_rates: Optional[ExchangeRateTable],
    ) -> List[PerformancePoint]:
    dates = list(totals)
    points = []
    for begin_date, end_date in zip(dates, dates[1:]):
        total_days = days_between(begin_date, end_date)
        cash_flows = []
        # For consecutive snapshots only the end snapshot lies in (begin, end]
        net_flow = index.net_cash_flow(end_date, display_currency, exchange_rates)
        if net_flow != ZERO:
            cash_flows.append(CashFlowPoint(amount=net_flow, days_since_start=total_days))

        period_return = modified_dietz_return(totals[begin_date], totals[end_date], cash_flows, total_days)
        if period_return is None:
            logger.debug(
                "Undefined period return, chained as 0%",
                begin_date=str(begin_date),
                end_date=str(end_date),
                )
        points.append(PerformancePoint(date=end_date, value=period_return))
    return points


# ============================================================================
# RETURN SERIES
# ============================================================================

def period_returns(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> List[PerformancePoint]:
    """
    Modified Dietz return for each consecutive pair of snapshots.

    The end snapshot's net cash flow is the only flow of the period, placed
    on its last day (weight 0).

    Returns:
        One point per period, dated at the period end; value None when the
        return is undefined (e.g. zero beginning value)
    """
    totals = _snapshot_totals(index, display_currency, exchange_rates)
    return _period_returns_from_totals(index, totals, display_currency, exchange_rates)


def twr_history(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> List[PerformancePoint]:
    """
    Cumulative TWR at each snapshot, starting at 0 on the first one.

    Undefined periods are chained as 0%. Fewer than two snapshots give an
    empty history.
    """
    returns = period_returns(index, display_currency, exchange_rates)
    if not returns:
        return []
    dates = index.snapshot_dates
    path = twr_growth_path(point.value for point in returns)
    return [PerformancePoint(date=d, value=v) for d, v in zip(dates, path)]


def cumulative_twr_since_inception(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> Optional[Decimal]:
    """
    Cumulative TWR from the first to the latest snapshot.

    Always equal to the last point of twr_history(); None with fewer than
    two snapshots.
    """
    returns = period_returns(index, display_currency, exchange_rates)
    if not returns:
        return None
    return cumulative_twr(point.value for point in returns)


def cagr_since_inception(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    days_per_year: Optional[float] = None,
    ) -> Optional[Decimal]:
    """CAGR between the first and the latest snapshot totals (None with fewer than two snapshots)."""
    dates = index.snapshot_dates
    if len(dates) < 2:
        return None
    days_per_year = days_per_year or get_settings().DAYS_PER_YEAR
    first = index.total_value(dates[0], display_currency, exchange_rates)
    latest = index.total_value(dates[-1], display_currency, exchange_rates)
    return cagr(first, latest, years_between(dates[0], dates[-1], days_per_year))


# ============================================================================
# VALUE HISTORY
# ============================================================================

def portfolio_value_history(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> List[PerformancePoint]:
    """Effective total value at every snapshot date."""
    totals = _snapshot_totals(index, display_currency, exchange_rates)
    return [PerformancePoint(date=d, value=v) for d, v in totals.items()]


def category_value_history(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> Dict[str, List[PerformancePoint]]:
    """
    Per-category value series, keyed by category label.

    A category only has points for the snapshots where it holds at least one
    effective asset (no retroactive zeros).
    """
    history: Dict[str, List[PerformancePoint]] = {}
    for valuation in index.resolve_all(display_currency, exchange_rates):
        for label, value in valuation.per_category_value.items():
            history.setdefault(label, []).append(PerformancePoint(date=valuation.as_of, value=value))
    return history


def category_allocation_history(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> Dict[str, List[PerformancePoint]]:
    """Per-category allocation series (percentage points of each snapshot total)."""
    history: Dict[str, List[PerformancePoint]] = {}
    for valuation in index.resolve_all(display_currency, exchange_rates):
        for label, percentage in valuation.per_category_percentage.items():
            history.setdefault(label, []).append(PerformancePoint(date=valuation.as_of, value=percentage))
    return history


# ============================================================================
# DASHBOARD PERIODS
# ============================================================================

def _closest_date(target: date, candidates: Sequence[date]) -> Optional[date]:
    if not candidates:
        return None
    # Absolute day distance, earlier date wins ties
    return min(candidates, key=lambda d: (abs((d - target).days), d))


def resolve_period(index: CarryForwardIndex, period: DashboardPeriod | str) -> Optional[ResolvedPeriod]:
    """
    Resolve a lookback period to real snapshot dates.

    The end is the latest snapshot; the begin is the snapshot closest to
    (end - N months) in either direction, with no distance limit. The
    latest snapshot itself is never the begin.

    Returns:
        ResolvedPeriod, or None with fewer than two snapshots
    """
    period = DashboardPeriod(period)
    dates = index.snapshot_dates
    if len(dates) < 2:
        return None
    end_date = dates[-1]
    lookback = add_months(end_date, -period.months)
    begin_date = _closest_date(lookback, dates[:-1])
    return ResolvedPeriod(begin_date=begin_date, end_date=end_date)


def _period_growth(resolved: Optional[ResolvedPeriod], totals: Dict[date, Decimal]) -> Optional[Decimal]:
    if resolved is None:
        return None
    return growth_rate(totals[resolved.begin_date], totals[resolved.end_date])


def _period_return(
    index: CarryForwardIndex,
    resolved: Optional[ResolvedPeriod],
    totals: Dict[date, Decimal],
    display_currency: Optional[str],
    exchange_rates: Optional[ExchangeRateTable],
    ) -> Optional[Decimal]:
    if resolved is None:
        return None
    total_days = days_between(resolved.begin_date, resolved.end_date)
    if total_days <= 0:
        return None

    cash_flows = []
    for snapshot_date in totals:
        if not resolved.begin_date < snapshot_date <= resolved.end_date:
            continue
        net_flow = index.net_cash_flow(snapshot_date, display_currency, exchange_rates)
        if net_flow != ZERO:
            cash_flows.append(CashFlowPoint(
                amount=net_flow,
                days_since_start=days_between(resolved.begin_date, snapshot_date),
                ))

    return modified_dietz_return(
        totals[resolved.begin_date], totals[resolved.end_date], cash_flows, total_days
        )


def period_growth_rate(
    index: CarryForwardIndex,
    period: DashboardPeriod | str,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> Optional[Decimal]:
    """Simple growth rate over a dashboard period (ignores cash flows)."""
    totals = _snapshot_totals(index, display_currency, exchange_rates)
    return _period_growth(resolve_period(index, period), totals)


def period_return_rate(
    index: CarryForwardIndex,
    period: DashboardPeriod | str,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    ) -> Optional[Decimal]:
    """
    Modified Dietz return over a dashboard period.

    Every snapshot strictly after the begin and up to the end contributes its
    net cash flow at its own day offset.
    """
    totals = _snapshot_totals(index, display_currency, exchange_rates)
    return _period_return(index, resolve_period(index, period), totals, display_currency, exchange_rates)


# ============================================================================
# CHART FILTERING
# ============================================================================

def filter_by_time_range(points: Iterable[T], time_range: ChartTimeRange | str) -> List[T]:
    """
    Keep the points inside a chart time range.

    The range is measured back from the latest point's date (not today), so
    an old portfolio still shows its last N months. Works with any item
    exposing a `date` attribute.
    """
    items = list(points)
    if not items:
        return []
    start = ChartTimeRange(time_range).start_date(max(item.date for item in items))
    if start is None:
        return items
    return [item for item in items if item.date >= start]


# ============================================================================
# SUMMARY
# ============================================================================

def build_performance_summary(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    periods: Iterable[DashboardPeriod] = tuple(DashboardPeriod),
    days_per_year: Optional[float] = None,
    ) -> PerformanceSummary:
    """
    Headline dashboard metrics for the latest snapshot.

    Snapshot totals are resolved once and shared by every metric.

    Returns:
        PerformanceSummary; an empty history gives a zero total and None metrics
    """
    settings = get_settings()
    display_currency = (display_currency or settings.DISPLAY_CURRENCY).strip().upper()
    days_per_year = days_per_year or settings.DAYS_PER_YEAR

    latest_date = index.latest_snapshot_date
    if latest_date is None:
        return PerformanceSummary(display_currency=display_currency)

    latest = index.resolve(latest_date, display_currency, exchange_rates)
    totals = _snapshot_totals(index, display_currency, exchange_rates)
    dates = list(totals)

    twr_value = None
    cagr_value = None
    if len(dates) >= 2:
        returns = _period_returns_from_totals(index, totals, display_currency, exchange_rates)
        twr_value = cumulative_twr(point.value for point in returns)
        cagr_value = cagr(
            totals[dates[0]], totals[latest_date], years_between(dates[0], latest_date, days_per_year)
            )

    period_rows = []
    for period in periods:
        resolved = resolve_period(index, period)
        if resolved is None:
            continue
        period_rows.append(PeriodPerformance(
            period=DashboardPeriod(period).value,
            begin_date=resolved.begin_date,
            end_date=resolved.end_date,
            growth_rate=_period_growth(resolved, totals),
            return_rate=_period_return(index, resolved, totals, display_currency, exchange_rates),
            ))

    return PerformanceSummary(
        display_currency=display_currency,
        latest_snapshot_date=latest_date,
        total_value=latest.total_value,
        asset_count=latest.asset_count,
        cumulative_twr=twr_value,
        cagr=cagr_value,
        periods=period_rows,
        rates_is_fallback=latest.rates_is_fallback,
        )
