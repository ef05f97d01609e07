"""
Composite snapshot resolver (carry-forward valuation).

Reconstructs the "effective" portfolio as of any date from sparse,
user-entered snapshots: an asset's last recorded value stays current until
a newer snapshot explicitly updates it.

Two carry-forward scopes are supported:
- asset (default): every asset contributes its latest value record at or
  before the effective snapshot. An asset whose only records are later is
  excluded, never shown as zero.
- platform: a platform present in the effective snapshot is represented only
  by that snapshot's direct records (assets without a direct record are
  considered removed from it); absent platforms carry forward every record of
  their most recent prior snapshot.

Design Notes:
- The index is built once per history: per-asset record dates are kept
  sorted and looked up with bisect, so a resolve is O(assets * log snapshots).
- Pure with respect to its inputs: resolving the same date twice returns equal
  results, and the history is never mutated.
- Monetary aggregation goes through the FX service, which never raises.
"""
from __future__ import annotations

from bisect import bisect_left, bisect_right
from collections import defaultdict
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

import structlog

from backend.app.config import get_settings
from backend.app.schemas.analytics import CompositeAssetValue, EffectiveValuation
from backend.app.schemas.portfolio import (
    Asset,
    ExchangeRateTable,
    PortfolioHistory,
    RecordId,
    Snapshot,
    )
from backend.app.services.fx import convert_with_table
from backend.app.utils.datetime_utils import parse_ISO_date
from backend.app.utils.financial_math import category_allocation

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class CarryForwardScope(str, Enum):
    """Granularity at which missing values are carried forward."""
    ASSET = "asset"
    PLATFORM = "platform"


class CarryForwardIndex:
    """
    Carry-forward index over a PortfolioHistory.

    Usage:
        index = CarryForwardIndex.build(history)
        valuation = index.resolve(date(2025, 6, 1), "USD")
    """

    def __init__(
        self,
        history: PortfolioHistory,
        scope: Optional[CarryForwardScope | str] = None,
        uncategorized_label: Optional[str] = None,
        ):
        settings = get_settings()
        self.history = history
        self.scope = CarryForwardScope(scope or settings.CARRY_FORWARD_SCOPE)
        self.uncategorized_label = uncategorized_label or settings.UNCATEGORIZED_LABEL

        self._snapshots: List[Snapshot] = sorted(history.snapshots, key=lambda s: s.date)
        self._snapshot_dates: List[date] = [s.date for s in self._snapshots]
        self._snapshot_by_date: Dict[date, Snapshot] = {s.date: s for s in self._snapshots}

        self._assets: Dict[RecordId, Asset] = {a.id: a for a in history.assets}
        self._category_names: Dict[RecordId, str] = {c.id: c.name for c in history.categories}
        # Per-category totals are keyed by label: a real category cannot share the uncategorized one
        if self.uncategorized_label in self._category_names.values():
            raise ValueError(
                f"Category name '{self.uncategorized_label}' is reserved for assets without a category"
                )

        # Asset scope: asset id -> parallel (dates, values), ascending by date
        self._asset_dates: Dict[RecordId, List[date]] = defaultdict(list)
        self._asset_values: Dict[RecordId, List[Decimal]] = defaultdict(list)

        # Platform scope: platform -> ascending snapshot dates with direct records
        self._platform_dates: Dict[str, List[date]] = defaultdict(list)

        for snapshot in self._snapshots:
            platforms_seen = set()
            for record in snapshot.asset_values:
                self._asset_dates[record.asset_id].append(snapshot.date)
                self._asset_values[record.asset_id].append(record.market_value)
                platform = self._assets[record.asset_id].platform
                if platform not in platforms_seen:
                    platforms_seen.add(platform)
                    self._platform_dates[platform].append(snapshot.date)

        logger.debug(
            "Carry-forward index built",
            snapshots=len(self._snapshots),
            assets=len(self._asset_dates),
            platforms=len(self._platform_dates),
            scope=self.scope.value,
            )

    @classmethod
    def build(
        cls,
        history: PortfolioHistory,
        scope: Optional[CarryForwardScope | str] = None,
        uncategorized_label: Optional[str] = None,
        ) -> "CarryForwardIndex":
        """Build the index for a history (alternate constructor)."""
        return cls(history, scope=scope, uncategorized_label=uncategorized_label)

    # =========================================================================
    # SNAPSHOT LOOKUP
    # =========================================================================

    @property
    def snapshot_dates(self) -> List[date]:
        """All snapshot dates, ascending."""
        return list(self._snapshot_dates)

    @property
    def latest_snapshot_date(self) -> Optional[date]:
        return self._snapshot_dates[-1] if self._snapshot_dates else None

    def snapshot_at(self, snapshot_date: date) -> Optional[Snapshot]:
        """Snapshot recorded exactly on a date, or None."""
        return self._snapshot_by_date.get(parse_ISO_date(snapshot_date))

    def effective_snapshot_date(self, as_of: date) -> Optional[date]:
        """Latest snapshot date at or before as_of, or None when there is none."""
        position = bisect_right(self._snapshot_dates, parse_ISO_date(as_of))
        if position == 0:
            return None
        return self._snapshot_dates[position - 1]

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def _effective_records(self, effective_date: date) -> List[Tuple[RecordId, Decimal, date]]:
        """(asset_id, market_value, source_date) for every asset in the effective portfolio."""
        if self.scope == CarryForwardScope.PLATFORM:
            return self._effective_records_by_platform(effective_date)

        records = []
        for asset in self.history.assets:
            dates = self._asset_dates.get(asset.id)
            if not dates:
                continue
            position = bisect_right(dates, effective_date)
            if position == 0:
                # Only recorded after the requested date: excluded, not zero
                continue
            records.append((asset.id, self._asset_values[asset.id][position - 1], dates[position - 1]))
        return records

    def _effective_records_by_platform(self, effective_date: date) -> List[Tuple[RecordId, Decimal, date]]:
        snapshot = self._snapshot_by_date[effective_date]
        records = [(r.asset_id, r.market_value, effective_date) for r in snapshot.asset_values]
        direct_platforms = {self._assets[r.asset_id].platform for r in snapshot.asset_values}

        for platform in sorted(self._platform_dates):
            if platform in direct_platforms:
                continue
            dates = self._platform_dates[platform]
            position = bisect_left(dates, effective_date)
            if position == 0:
                continue
            source_date = dates[position - 1]
            for record in self._snapshot_by_date[source_date].asset_values:
                if self._assets[record.asset_id].platform == platform:
                    records.append((record.asset_id, record.market_value, source_date))
        return records

    def _rate_table(self, snapshot: Optional[Snapshot], exchange_rates: Optional[ExchangeRateTable]) -> Optional[ExchangeRateTable]:
        # Explicit table first, then the one captured with the snapshot
        if exchange_rates is not None:
            return exchange_rates
        if snapshot is not None:
            return snapshot.exchange_rate
        return None

    def resolve(
        self,
        as_of: date,
        display_currency: Optional[str] = None,
        exchange_rates: Optional[ExchangeRateTable] = None,
        ) -> EffectiveValuation:
        """
        Effective valuation as of a date.

        The effective snapshot is the latest one at or before as_of. Without
        any, an empty valuation (total 0, no rows) is returned.

        Args:
            as_of: Requested date (date, datetime or ISO string)
            display_currency: Reporting currency (default: DISPLAY_CURRENCY setting)
            exchange_rates: Rate table overriding the one stored with the snapshot

        Returns:
            EffectiveValuation with per-asset rows and per-category totals
        """
        as_of = parse_ISO_date(as_of)
        display_currency = (display_currency or get_settings().DISPLAY_CURRENCY).strip().upper()

        effective_date = self.effective_snapshot_date(as_of)
        if effective_date is None:
            return EffectiveValuation(as_of=as_of, display_currency=display_currency)

        snapshot = self._snapshot_by_date[effective_date]
        table = self._rate_table(snapshot, exchange_rates)
        if table is not None and table.is_fallback:
            logger.warning(
                "Valuation uses fallback exchange rates",
                snapshot_date=str(effective_date),
                base_currency=table.base_currency,
                )

        rows: List[CompositeAssetValue] = []
        per_category_value: Dict[str, Decimal] = {}
        uncategorized_value = ZERO
        total_value = ZERO

        for asset_id, market_value, source_date in self._effective_records(effective_date):
            asset = self._assets[asset_id]
            asset_currency = asset.currency or display_currency
            converted_value = convert_with_table(market_value, asset_currency, display_currency, table)

            if asset.category_id is None:
                label = self.uncategorized_label
                uncategorized_value += converted_value
            else:
                label = self._category_names[asset.category_id]

            per_category_value[label] = per_category_value.get(label, ZERO) + converted_value
            total_value += converted_value

            rows.append(CompositeAssetValue(
                asset_id=asset.id,
                asset_name=asset.name,
                platform=asset.platform,
                category_label=label,
                is_uncategorized=asset.category_id is None,
                currency=asset.currency,
                market_value=market_value,
                converted_value=converted_value,
                is_carried_forward=source_date != effective_date,
                source_snapshot_date=source_date,
                ))

        per_category_percentage = {
            label: category_allocation(value, total_value)
            for label, value in per_category_value.items()
            }

        return EffectiveValuation(
            as_of=as_of,
            snapshot_date=effective_date,
            display_currency=display_currency,
            total_value=total_value,
            per_category_value=per_category_value,
            per_category_percentage=per_category_percentage,
            uncategorized_value=uncategorized_value,
            rows=rows,
            rates_is_fallback=table.is_fallback if table is not None else False,
            )

    def resolve_all(
        self,
        display_currency: Optional[str] = None,
        exchange_rates: Optional[ExchangeRateTable] = None,
        ) -> List[EffectiveValuation]:
        """Effective valuation at every snapshot date, in chronological order."""
        return [self.resolve(d, display_currency, exchange_rates) for d in self._snapshot_dates]

    def total_value(
        self,
        as_of: date,
        display_currency: Optional[str] = None,
        exchange_rates: Optional[ExchangeRateTable] = None,
        ) -> Decimal:
        """Shortcut for resolve(...).total_value."""
        return self.resolve(as_of, display_currency, exchange_rates).total_value

    # =========================================================================
    # CASH FLOWS
    # =========================================================================

    def net_cash_flow(
        self,
        snapshot_date: date,
        display_currency: Optional[str] = None,
        exchange_rates: Optional[ExchangeRateTable] = None,
        ) -> Decimal:
        """
        Net external cash flow recorded with a snapshot, in the display currency.

        Deposits are positive, withdrawals negative. A date without a
        snapshot has no flows (0).
        """
        display_currency = (display_currency or get_settings().DISPLAY_CURRENCY).strip().upper()
        snapshot = self.snapshot_at(snapshot_date)
        if snapshot is None:
            return ZERO

        table = self._rate_table(snapshot, exchange_rates)
        total = ZERO
        for operation in snapshot.cash_flows:
            currency = operation.currency or display_currency
            total += convert_with_table(operation.amount, currency, display_currency, table)
        return total
