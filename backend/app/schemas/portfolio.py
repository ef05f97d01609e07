"""
Portfolio record schemas (engine inputs).

These are the read-only records the data-entry / persistence side hands to
the analytics engine: assets, categories, dated snapshots with their direct
value records and cash flows, and exchange rate tables.

**Domain Coverage**:
- Asset: identity, platform label, optional category, currency
- Category: name, optional target allocation (0-100), display order
- ValueRecord: market value of one asset explicitly entered in a snapshot
- CashFlowOperation: signed external deposit/withdrawal in a snapshot
- Snapshot: calendar date + value records + cash flows (+ optional rate table)
- ExchangeRateTable: base-relative rates, fetch date, fallback flag
- PortfolioHistory: the full record set, validated for referential integrity

**Design Notes**:
- All models are frozen: the engine never mutates its inputs.
- Absence of a ValueRecord means "unchanged", never "zero".
- Identifiers are opaque and only need to be hashable and comparable
  (UUID, int or str).
"""
# Postpones evaluation of type hints to improve imports and performance. Also avoid circular import issues.
from __future__ import annotations

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Dict, List, Optional, Union
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from backend.app.schemas.common import EngineModel, validate_currency_code
from backend.app.utils.datetime_utils import parse_ISO_date
from backend.app.utils.validation_utils import coerce_decimal, normalize_currency_code, validate_percentage

RecordId = Union[UUID, int, str]


def _default_base_currency() -> str:
    # Lazy: config imports schemas.common, which loads this module
    from backend.app.config import get_settings
    return get_settings().RATES_BASE_CURRENCY


# ============================================================================
# ASSETS & CATEGORIES
# ============================================================================

class Category(EngineModel):
    """
    Asset category with an optional target allocation.

    A category without target is valid: it is reported informationally but
    never receives rebalancing suggestions. Targets are not required to sum
    to 100 across categories.
    """
    id: RecordId = Field(..., description="Opaque category identifier")
    name: str = Field(..., min_length=1, description="Display name")
    target_allocation_percentage: Optional[Decimal] = Field(None, description="Target share in percentage points (0-100)")
    display_order: int = Field(0, description="Ordering hint for presentation")

    @field_validator('name', mode='before')
    @classmethod
    def _strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator('target_allocation_percentage', mode='before')
    @classmethod
    def _validate_target(cls, v):
        return validate_percentage(v, "target_allocation_percentage")


class Asset(EngineModel):
    """
    A tracked holding.

    The currency is read at valuation time: value records are always
    interpreted in the asset's current currency (currency is not versioned).
    An empty currency means "same as the display currency".
    """
    id: RecordId = Field(..., description="Opaque asset identifier")
    name: str = Field(..., description="Display name")
    platform: str = Field("", description="Free-text broker/exchange label")
    category_id: Optional[RecordId] = Field(None, description="Category reference (None = uncategorized)")
    currency: str = Field("", description="Currency code (case-insensitive)")

    @field_validator('currency', mode='before')
    @classmethod
    def _normalize_currency(cls, v):
        return normalize_currency_code(v)

    @field_validator('platform', mode='before')
    @classmethod
    def _normalize_platform(cls, v):
        if v is None:
            return ""
        return v.strip() if isinstance(v, str) else v


# ============================================================================
# SNAPSHOT CONTENTS
# ============================================================================

class ValueRecord(EngineModel):
    """Market value of one asset, in the asset's currency, as entered in a snapshot."""
    asset_id: RecordId = Field(..., description="Asset this value belongs to")
    market_value: Decimal = Field(..., description="Market value in the asset's currency")

    @field_validator('market_value', mode='before')
    @classmethod
    def _coerce_value(cls, v):
        return coerce_decimal(v, "market_value")


class CashFlowOperation(EngineModel):
    """
    External cash flow recorded with a snapshot.

    Positive amounts are deposits (inflows), negative amounts withdrawals.
    The currency is independent of any asset; empty means display currency.
    """
    description: str = Field("", description="Free-text description")
    amount: Decimal = Field(..., description="Signed amount")
    currency: str = Field("", description="Currency code (case-insensitive)")

    @field_validator('amount', mode='before')
    @classmethod
    def _coerce_amount(cls, v):
        return coerce_decimal(v, "amount")

    @field_validator('currency', mode='before')
    @classmethod
    def _normalize_currency(cls, v):
        return normalize_currency_code(v)


class ExchangeRateTable(EngineModel):
    """
    Base-relative exchange rates, as fetched (or cached) by the rate collaborator.

    rates[code] is the number of `code` units per unit of base currency:
    amount_in_base * rates[code] = amount_in_code. Codes are upper-cased so
    lookups are case-insensitive. The base currency's own rate is implicitly 1.

    Examples:
        {"base_currency": "USD", "rates": {"EUR": "0.85", "JPY": "110"},
         "fetch_date": "2025-06-01T08:00:00Z", "is_fallback": false}
    """
    base_currency: str = Field(
        default_factory=_default_base_currency,
        description="Currency the rates are expressed against (default: RATES_BASE_CURRENCY setting)",
        )
    rates: Dict[str, Decimal] = Field(default_factory=dict, description="Currency code -> units per base unit")
    fetch_date: Optional[datetime] = Field(None, description="When the rates were fetched")
    is_fallback: bool = Field(False, description="True when rates are cached/stale rather than freshly fetched")

    @field_validator('base_currency', mode='before')
    @classmethod
    def _validate_base(cls, v):
        return validate_currency_code(v)

    @field_validator('rates', mode='before')
    @classmethod
    def _normalize_rates(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError(f"rates must be a mapping, got {type(v)}")
        return {normalize_currency_code(code): coerce_decimal(rate, f"rates[{code}]") for code, rate in v.items()}


class Snapshot(EngineModel):
    """
    Point-in-time portfolio state entered by the user.

    The date is normalized to a calendar day. Only assets explicitly entered
    have a ValueRecord; the rest carry forward from earlier snapshots.
    """
    date: date_type = Field(..., description="Snapshot calendar date (start of day)")
    asset_values: List[ValueRecord] = Field(default_factory=list, description="Direct value records")
    cash_flows: List[CashFlowOperation] = Field(default_factory=list, description="External cash flows")
    exchange_rate: Optional[ExchangeRateTable] = Field(None, description="Rates captured with this snapshot")

    @field_validator('date', mode='before')
    @classmethod
    def _normalize_date(cls, v):
        return parse_ISO_date(v)

    @model_validator(mode='after')
    def _unique_assets(self) -> 'Snapshot':
        seen = set()
        for record in self.asset_values:
            if record.asset_id in seen:
                raise ValueError(f"Snapshot {self.date} has more than one value for asset {record.asset_id}")
            seen.add(record.asset_id)
        return self


# ============================================================================
# FULL HISTORY
# ============================================================================

class PortfolioHistory(EngineModel):
    """
    Complete record set handed to the analytics engine.

    Validation guarantees:
    - at most one snapshot per date
    - every value record references a known asset
    - every asset category reference points to a known category
    """
    assets: List[Asset] = Field(default_factory=list)
    categories: List[Category] = Field(default_factory=list)
    snapshots: List[Snapshot] = Field(default_factory=list)

    @model_validator(mode='after')
    def _check_integrity(self) -> 'PortfolioHistory':
        dates = set()
        for snapshot in self.snapshots:
            if snapshot.date in dates:
                raise ValueError(f"Duplicate snapshot date: {snapshot.date}")
            dates.add(snapshot.date)

        category_ids = {category.id for category in self.categories}
        asset_ids = set()
        for asset in self.assets:
            if asset.id in asset_ids:
                raise ValueError(f"Duplicate asset id: {asset.id}")
            asset_ids.add(asset.id)
            if asset.category_id is not None and asset.category_id not in category_ids:
                raise ValueError(f"Asset {asset.id} references unknown category {asset.category_id}")

        for snapshot in self.snapshots:
            for record in snapshot.asset_values:
                if record.asset_id not in asset_ids:
                    raise ValueError(f"Snapshot {snapshot.date} references unknown asset {record.asset_id}")
        return self

    @property
    def snapshot_dates(self) -> List[date_type]:
        """All snapshot dates, ascending."""
        return sorted(snapshot.date for snapshot in self.snapshots)
