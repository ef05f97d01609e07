"""
Services package.
Analytics computations over immutable portfolio records.

Service Layer:
- fx: currency conversion with pass-through on missing rates
- carry_forward: CarryForwardIndex, effective valuation at any date
- performance: period returns, TWR / CAGR, value and allocation history
- rebalancing: buy/sell actions and greedy transfer suggestions
"""
from backend.app.services.carry_forward import CarryForwardIndex, CarryForwardScope
from backend.app.services.fx import convert, convert_with_table
from backend.app.services.performance import ChartTimeRange, DashboardPeriod, build_performance_summary
from backend.app.services.rebalancing import rebalancing_from_valuation, rebalancing_suggestions

__all__ = [
    "CarryForwardIndex",
    "CarryForwardScope",
    "convert",
    "convert_with_table",
    "ChartTimeRange",
    "DashboardPeriod",
    "build_performance_summary",
    "rebalancing_from_valuation",
    "rebalancing_suggestions",
    ]
