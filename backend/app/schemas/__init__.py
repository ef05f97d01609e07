"""
Pydantic schemas for the analytics engine.

Used across the engine modules to validate the incoming record set and to
standardize the shape of every analytics result.

**Organization by Domain**:
- common.py: Shared pieces (currency code validation, EngineModel base)
- portfolio.py: Engine inputs (Asset, Category, Snapshot, ValueRecord,
  CashFlowOperation, ExchangeRateTable, PortfolioHistory)
- analytics.py: Engine outputs (valuation, performance, rebalancing)

**Design Notes**:
- All models use Pydantic v2 and are frozen (inputs are immutable values)
- Undefined metrics are Optional fields, never sentinel numbers
"""
from backend.app.schemas.analytics import (
    CashFlowPoint,
    CategoryAllocationInput,
    CompositeAssetValue,
    EffectiveValuation,
    NoTargetRow,
    PerformancePoint,
    PerformanceSummary,
    PeriodPerformance,
    RebalancingAction,
    RebalancingActionType,
    RebalancingResult,
    RebalancingSuggestion,
    Transfer,
    UncategorizedRow,
    )
from backend.app.schemas.common import (
    CRYPTO_CURRENCIES,
    EngineModel,
    validate_currency_code,
    )
from backend.app.schemas.portfolio import (
    Asset,
    CashFlowOperation,
    Category,
    ExchangeRateTable,
    PortfolioHistory,
    Snapshot,
    ValueRecord,
    )

__all__ = [
    # Common
    "CRYPTO_CURRENCIES",
    "EngineModel",
    "validate_currency_code",
    # Inputs
    "Asset",
    "CashFlowOperation",
    "Category",
    "ExchangeRateTable",
    "PortfolioHistory",
    "Snapshot",
    "ValueRecord",
    # Valuation
    "CompositeAssetValue",
    "EffectiveValuation",
    # Performance
    "CashFlowPoint",
    "PerformancePoint",
    "PeriodPerformance",
    "PerformanceSummary",
    # Rebalancing
    "CategoryAllocationInput",
    "NoTargetRow",
    "RebalancingAction",
    "RebalancingActionType",
    "RebalancingResult",
    "RebalancingSuggestion",
    "Transfer",
    "UncategorizedRow",
    ]
