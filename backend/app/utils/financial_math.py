"""
Financial mathematics utility functions.

Provides the return metrics used by the performance analytics: growth rate,
Modified Dietz return, chained time-weighted return (TWR), CAGR, category
allocation, TWR rebasing and goal progress.

All functions are pure (no side effects) and reusable.

Key concepts:
- Rate format: decimal fraction (0.05 = 5%)
- Allocation format: percentage points (60 = 60%)
- Undefined metrics are returned as None, never as 0 or NaN: 0 is a legitimate
  result (e.g. no growth), None means "not computable for these inputs".
"""
from datetime import date as date_type
from decimal import Decimal, InvalidOperation, Overflow
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from backend.app.schemas.analytics import CashFlowPoint, PerformancePoint
from backend.app.utils.datetime_utils import days_between

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")


def parse_decimal_value(value) -> Optional[Decimal]:
    """
    Convert input to Decimal safely.

    Args:
        value: Input value (Decimal, int, float, str, or None)

    Returns:
        Decimal or None
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except Exception:
        return None


def _to_decimal(value: Number) -> Decimal:
    result = parse_decimal_value(value)
    if result is None:
        raise TypeError(f"Expected a numeric value, got {value!r}")
    return result


# ============================================================================
# DAY COUNT
# ============================================================================

def years_between(start_date: date_type, end_date: date_type, days_per_year: float = 365.25) -> float:
    """
    Fraction of years between two dates using an average year length.

    Example:
        >>> years_between(date(2024, 1, 1), date(2026, 1, 1))
        1.9986310746064339  # 731 days / 365.25
    """
    return days_between(start_date, end_date) / days_per_year


# ============================================================================
# RETURN METRICS
# ============================================================================

def growth_rate(begin_value: Number, end_value: Number) -> Optional[Decimal]:
    """
    Simple growth rate between two values.

    Formula: (end - begin) / begin

    Returns:
        Growth rate as a decimal fraction, or None when begin_value <= 0

    Example:
        >>> growth_rate(Decimal("100000"), Decimal("110000"))
        Decimal('0.1')
    """
    begin = _to_decimal(begin_value)
    end = _to_decimal(end_value)
    if begin <= ZERO:
        return None
    return (end - begin) / begin


def modified_dietz_return(
    begin_value: Number,
    end_value: Number,
    cash_flows: Sequence[Union[CashFlowPoint, Tuple[Number, int]]],
    total_days: int,
    ) -> Optional[Decimal]:
    """
    Modified Dietz return for a single period.

    Formula: R = (EMV - BMV - CF) / (BMV + sum(w_i * CF_i))
    where w_i = (total_days - days_since_start_i) / total_days

    A flow on day 0 has weight 1 (present for the whole period), a flow on the
    last day has weight 0 (only affects the numerator). Both are valid.

    Args:
        begin_value: Beginning market value (BMV)
        end_value: Ending market value (EMV)
        cash_flows: External flows, as CashFlowPoint or (amount, days_since_start) tuples.
            Positive = deposit, negative = withdrawal.
        total_days: Calendar days in the period

    Returns:
        Return as a decimal fraction, or None when begin_value <= 0,
        total_days <= 0, or the weighted denominator is <= 0.

    Example:
        >>> modified_dietz_return(Decimal("100000"), Decimal("110000"), [], 90)
        Decimal('0.1')
    """
    begin = _to_decimal(begin_value)
    end = _to_decimal(end_value)
    if begin <= ZERO or total_days <= 0:
        return None

    days_total = Decimal(total_days)
    net_cash_flow = ZERO
    weighted_cash_flow = ZERO
    for flow in cash_flows:
        if isinstance(flow, CashFlowPoint):
            amount, days_since_start = flow.amount, flow.days_since_start
        else:
            amount, days_since_start = flow
        amount = _to_decimal(amount)
        weight = Decimal(total_days - days_since_start) / days_total
        net_cash_flow += amount
        weighted_cash_flow += weight * amount

    denominator = begin + weighted_cash_flow
    if denominator <= ZERO:
        return None

    return (end - begin - net_cash_flow) / denominator


def twr_growth_path(period_returns: Iterable[Optional[Number]]) -> List[Decimal]:
    """
    Running cumulative TWR after each period, starting from 0 (inception).

    Undefined periods (None) are chained as 0% (identity multiplier), so a
    single missing period never aborts the series.

    Example:
        >>> twr_growth_path([Decimal("0.1"), None, Decimal("0.1")])
        [Decimal('0'), Decimal('0.1'), Decimal('0.1'), Decimal('0.21')]
    """
    path = [ZERO]
    product = ONE
    for period_return in period_returns:
        if period_return is not None:
            product *= ONE + _to_decimal(period_return)
        path.append(product - ONE)
    return path


def cumulative_twr(period_returns: Iterable[Optional[Number]]) -> Decimal:
    """
    Cumulative time-weighted return by chaining period returns.

    Formula: TWR = (1 + r1) * (1 + r2) * ... * (1 + rn) - 1

    Empty input returns 0 (no periods, no change). None entries are treated
    as 0%, which keeps this value identical to the last point of
    twr_growth_path() over the same periods.

    Example:
        >>> cumulative_twr([Decimal("0.10"), Decimal("0.05"), Decimal("-0.02")])
        Decimal('0.131900')
    """
    return twr_growth_path(period_returns)[-1]


def cagr(begin_value: Number, end_value: Number, years: float) -> Optional[Decimal]:
    """
    Compound annual growth rate.

    Formula: CAGR = (end / begin) ^ (1 / years) - 1

    Args:
        begin_value: Beginning value
        end_value: Ending value
        years: Elapsed years (fractional allowed)

    Returns:
        CAGR as a decimal fraction, or None when begin_value <= 0, years <= 0,
        end_value < 0 (no real root for a negative growth factor),
        or when the annualized factor exceeds the Decimal exponent range.

    Example:
        >>> round(cagr(Decimal("100000"), Decimal("121000"), 2.0), 4)
        Decimal('0.1000')
    """
    begin = _to_decimal(begin_value)
    end = _to_decimal(end_value)
    if begin <= ZERO or years is None or years <= 0:
        return None
    if end < ZERO:
        return None

    if end == ZERO:
        return -ONE

    # Decimal power: short windows with large growth overflow a float
    try:
        return (end / begin) ** (ONE / _to_decimal(years)) - ONE
    except (Overflow, InvalidOperation):
        return None


def category_allocation(category_value: Number, total_value: Number) -> Decimal:
    """
    Category share of the portfolio, in percentage points.

    Formula: category_value / total_value * 100

    Returns:
        Allocation percentage, or 0 when total_value <= 0 (an empty portfolio
        has 0% everywhere).
    """
    total = _to_decimal(total_value)
    if total <= ZERO:
        return ZERO
    return _to_decimal(category_value) / total * HUNDRED


def rebase_twr_series(points: Sequence[PerformancePoint]) -> List[PerformancePoint]:
    """
    Re-express a cumulative TWR series relative to its first point.

    Formula: rebased_i = (1 + twr_i) / (1 + twr_0) - 1

    This is a ratio of growth factors, so it yields the true sub-period return
    for any contiguous window, including windows starting after a loss
    (negative twr_0). The first point is 0 by construction. A first point of
    exactly -100% has no growth factor to divide by: later points are None.

    Example:
        >>> rebase_twr_series([p(d1, "-0.2"), p(d2, "-0.1")])[1].value
        Decimal('0.125')  # 0.9 / 0.8 - 1
    """
    if not points:
        return []

    base_factor = None
    if points[0].value is not None:
        base_factor = ONE + points[0].value

    rebased = [PerformancePoint(date=points[0].date, value=ZERO)]
    for point in points[1:]:
        if base_factor is None or base_factor == ZERO or point.value is None:
            rebased.append(PerformancePoint(date=point.date, value=None))
            continue
        rebased.append(PerformancePoint(date=point.date, value=(ONE + point.value) / base_factor - ONE))
    return rebased


# ============================================================================
# GOAL PROGRESS
# ============================================================================

def goal_achievement_rate(total_value: Number, goal: Optional[Number]) -> Decimal:
    """
    Percentage of a financial goal reached (can exceed 100).

    Returns 0 when there is no goal or the goal is not positive.
    """
    if goal is None:
        return ZERO
    goal_value = _to_decimal(goal)
    if goal_value <= ZERO:
        return ZERO
    return _to_decimal(total_value) / goal_value * HUNDRED


def distance_to_goal(total_value: Number, goal: Optional[Number]) -> Decimal:
    """Remaining amount to the goal: positive below it, negative above it, 0 without a goal."""
    if goal is None:
        return ZERO
    return _to_decimal(goal) - _to_decimal(total_value)


def is_goal_reached(total_value: Number, goal: Optional[Number]) -> bool:
    """True when the total value equals or exceeds the goal."""
    if goal is None:
        return False
    return _to_decimal(total_value) >= _to_decimal(goal)
