"""
Analytics result schemas (engine outputs).

**Domain Coverage**:
- Valuation: CompositeAssetValue rows and the EffectiveValuation aggregate
- Performance: CashFlowPoint, PerformancePoint, PeriodPerformance, PerformanceSummary
- Rebalancing: actions, suggestion rows, informational rows, transfers, result bundle

**Design Notes**:
- Undefined metrics are Optional fields set to None; presentation layers
  render them as "N/A".
- Amounts are Decimals in the display currency unless stated otherwise.
"""
# Postpones evaluation of type hints to improve imports and performance. Also avoid circular import issues.
from __future__ import annotations

from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import Field

from backend.app.schemas.common import EngineModel

RecordId = Union[UUID, int, str]


# ============================================================================
# VALUATION
# ============================================================================

class CompositeAssetValue(EngineModel):
    """
    One asset in an effective (carry-forward) valuation.

    is_carried_forward is False for values entered in the effective snapshot
    itself; otherwise source_snapshot_date tells where the value came from.
    """
    asset_id: RecordId
    asset_name: str
    platform: str
    category_label: str = Field(..., description="Category name, or the uncategorized label")
    is_uncategorized: bool = False
    currency: str = Field(..., description="Asset currency (empty = display currency)")
    market_value: Decimal = Field(..., description="Value in the asset currency")
    converted_value: Decimal = Field(..., description="Value in the display currency")
    is_carried_forward: bool = False
    source_snapshot_date: date_type


class EffectiveValuation(EngineModel):
    """
    Portfolio valuation as of a date, with carry-forward applied.

    Examples:
        # No snapshot at or before the date
        EffectiveValuation(as_of=d, snapshot_date=None, display_currency="USD",
                           total_value=Decimal("0"), rows=[], ...)
    """
    as_of: date_type
    snapshot_date: Optional[date_type] = Field(None, description="Effective snapshot (latest at or before as_of)")
    display_currency: str
    total_value: Decimal = Decimal("0")
    per_category_value: Dict[str, Decimal] = Field(default_factory=dict)
    per_category_percentage: Dict[str, Decimal] = Field(default_factory=dict)
    uncategorized_value: Decimal = Decimal("0")
    rows: List[CompositeAssetValue] = Field(default_factory=list)
    rates_is_fallback: bool = Field(False, description="True when the rate table used is stale/cached")

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def asset_count(self) -> int:
        return len(self.rows)


# ============================================================================
# PERFORMANCE
# ============================================================================

class CashFlowPoint(EngineModel):
    """External flow inside a Modified Dietz period."""
    amount: Decimal
    days_since_start: int


class PerformancePoint(EngineModel):
    """Dated value for history charts (portfolio value, TWR, category values)."""
    date: date_type
    value: Optional[Decimal] = None


class PeriodPerformance(EngineModel):
    """Growth and Modified Dietz return over a dashboard lookback period."""
    period: str
    begin_date: date_type
    end_date: date_type
    growth_rate: Optional[Decimal] = None
    return_rate: Optional[Decimal] = None


class PerformanceSummary(EngineModel):
    """
    Headline metrics for the latest snapshot.

    Each metric is independently None when undefined: a missing CAGR never
    hides the growth rate or the cumulative TWR.
    """
    display_currency: str
    latest_snapshot_date: Optional[date_type] = None
    total_value: Decimal = Decimal("0")
    asset_count: int = 0
    cumulative_twr: Optional[Decimal] = None
    cagr: Optional[Decimal] = None
    periods: List[PeriodPerformance] = Field(default_factory=list)
    rates_is_fallback: bool = False


# ============================================================================
# REBALANCING
# ============================================================================

class RebalancingActionType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    NO_ACTION = "no_action"


class CategoryAllocationInput(EngineModel):
    """Calculator input: current value of a category and its optional target."""
    name: str
    current_value: Decimal
    target_percentage: Optional[Decimal] = None


class RebalancingAction(EngineModel):
    """
    Calculator output for one targeted category.

    difference = current_value - target_value, in currency units:
    positive means oversized (sell), negative undersized (buy).
    """
    category_name: str
    current_value: Decimal
    current_percentage: Decimal
    target_percentage: Decimal
    difference: Decimal
    action: RebalancingActionType


class RebalancingSuggestion(RebalancingAction):
    """Suggestion row: a RebalancingAction plus its human-readable text."""
    action_text: str


class NoTargetRow(EngineModel):
    """Informational row for a category without target allocation."""
    category_name: str
    current_value: Decimal
    current_percentage: Decimal


class UncategorizedRow(EngineModel):
    """Informational row aggregating assets without category."""
    current_value: Decimal
    current_percentage: Decimal


class Transfer(EngineModel):
    """One greedy-matched move from an oversized to an undersized category."""
    from_category: str
    to_category: str
    amount: Decimal


class RebalancingResult(EngineModel):
    """Everything the rebalancing screen needs, recomputed on each call."""
    total_value: Decimal = Decimal("0")
    suggestions: List[RebalancingSuggestion] = Field(default_factory=list)
    no_target_rows: List[NoTargetRow] = Field(default_factory=list)
    uncategorized_row: Optional[UncategorizedRow] = None
    transfers: List[Transfer] = Field(default_factory=list)
    summary_texts: List[str] = Field(default_factory=list)
    target_allocation_warning: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.suggestions and not self.no_target_rows and self.uncategorized_row is None
