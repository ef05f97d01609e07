"""
Rebalancing suggestion service.

Turns current category values and target allocations into buy/sell actions
and a short list of plain-language transfers.

Pipeline (no persisted state, recomputed on every call):
1. Categories with a target get an action; categories without one are
   informational rows only; assets without category form one extra row.
2. difference = current_value - target_share * grand_total (currency units):
   positive = sell, negative = buy, |difference| < threshold = no action.
3. Actions are sorted by |difference|, largest first (stable on ties).
4. Sells and buys are matched greedily (largest remaining against largest
   remaining). Each match exhausts at least one side, so at most
   (#sells + #buys - 1) transfers are emitted and they never move more money
   than the real imbalance. Pairing every sell with every buy is wrong.

Whether targets sum to 100% is a separate, warning-only concern: it never
changes which categories get suggestions.
"""
from __future__ import annotations

import heapq
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

from backend.app.config import get_settings
from backend.app.schemas.analytics import (
    CategoryAllocationInput,
    EffectiveValuation,
    NoTargetRow,
    RebalancingAction,
    RebalancingActionType,
    RebalancingResult,
    RebalancingSuggestion,
    Transfer,
    UncategorizedRow,
    )
from backend.app.schemas.portfolio import Category, ExchangeRateTable
from backend.app.services.carry_forward import CarryForwardIndex
from backend.app.utils.currency_utils import format_money, format_percentage
from backend.app.utils.financial_math import category_allocation

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


# ============================================================================
# CALCULATOR
# ============================================================================

def calculate_adjustments(
    allocations: Sequence[CategoryAllocationInput],
    total_value: Decimal,
    threshold: Optional[Decimal] = None,
    ) -> List[RebalancingAction]:
    """
    Compute one rebalancing action per category with a target.

    Args:
        allocations: Current value and optional target of each category
        total_value: Grand total of the portfolio (display currency)
        threshold: Minimum |difference| worth acting on (default: REBALANCING_THRESHOLD)

    Returns:
        Actions sorted by |difference| descending; empty when total_value <= 0

    Example:
        Equities 7000 (target 60), Bonds 3000 (target 40), total 10000
        -> [Equities: +1000 sell, Bonds: -1000 buy]
    """
    if threshold is None:
        threshold = get_settings().REBALANCING_THRESHOLD
    if total_value <= ZERO:
        return []

    actions = []
    for allocation in allocations:
        if allocation.target_percentage is None:
            continue

        target_value = total_value * allocation.target_percentage / HUNDRED
        difference = allocation.current_value - target_value

        if abs(difference) < threshold:
            action_type = RebalancingActionType.NO_ACTION
        elif difference > ZERO:
            action_type = RebalancingActionType.SELL
        else:
            action_type = RebalancingActionType.BUY

        actions.append(RebalancingAction(
            category_name=allocation.name,
            current_value=allocation.current_value,
            current_percentage=category_allocation(allocation.current_value, total_value),
            target_percentage=allocation.target_percentage,
            difference=difference,
            action=action_type,
            ))

    # sorted() is stable, also with reverse=True
    return sorted(actions, key=lambda a: abs(a.difference), reverse=True)


# ============================================================================
# GREEDY MATCHING
# ============================================================================

def match_transfers(actions: Sequence[RebalancingAction], threshold: Optional[Decimal] = None) -> List[Transfer]:
    """
    Pair oversized with undersized categories greedily.

    Repeatedly takes the largest remaining sell and the largest remaining
    buy, moves min(sell, buy) between them and drops whichever side falls
    below the threshold. Ties keep the input order.

    Example:
        sells {A: 3000, B: 1000}, buys {C: 2000, D: 2000}
        -> A->C 2000, A->D 1000, B->D 1000  (3 transfers, 4000 moved)
    """
    if threshold is None:
        threshold = get_settings().REBALANCING_THRESHOLD

    # Heap entries: (-remaining, position, category_name)
    sells: List[Tuple[Decimal, int, str]] = []
    buys: List[Tuple[Decimal, int, str]] = []
    for position, action in enumerate(actions):
        if action.action == RebalancingActionType.SELL:
            sells.append((-abs(action.difference), position, action.category_name))
        elif action.action == RebalancingActionType.BUY:
            buys.append((-abs(action.difference), position, action.category_name))
    heapq.heapify(sells)
    heapq.heapify(buys)

    transfers = []
    while sells and buys:
        sell_remaining, sell_position, sell_name = heapq.heappop(sells)
        buy_remaining, buy_position, buy_name = heapq.heappop(buys)
        sell_remaining, buy_remaining = -sell_remaining, -buy_remaining

        amount = min(sell_remaining, buy_remaining)
        transfers.append(Transfer(from_category=sell_name, to_category=buy_name, amount=amount))

        sell_remaining -= amount
        buy_remaining -= amount
        if sell_remaining >= threshold:
            heapq.heappush(sells, (-sell_remaining, sell_position, sell_name))
        if buy_remaining >= threshold:
            heapq.heappush(buys, (-buy_remaining, buy_position, buy_name))

    return transfers


# ============================================================================
# TEXTS
# ============================================================================

def _action_text(action: RebalancingAction, currency: str, locale: str) -> str:
    if action.action == RebalancingActionType.BUY:
        return f"Buy {format_money(abs(action.difference), currency, locale)}"
    if action.action == RebalancingActionType.SELL:
        return f"Sell {format_money(abs(action.difference), currency, locale)}"
    return "No action needed"


def _transfer_text(transfer: Transfer, currency: str, locale: str) -> str:
    return f"Move {format_money(transfer.amount, currency, locale)} from {transfer.from_category} to {transfer.to_category}"


def target_allocation_warning(categories: Sequence[Category], locale: Optional[str] = None) -> Optional[str]:
    """
    Warning text when the defined targets do not add up to 100%.

    Returns None when no category has a target or when targets sum to
    exactly 100. Categories without target are ignored in the sum.
    """
    targets = [c.target_allocation_percentage for c in categories if c.target_allocation_percentage is not None]
    if not targets:
        return None

    total = sum(targets, ZERO)
    if total == HUNDRED:
        return None

    logger.warning("Target allocations do not sum to 100%", total=str(total), categories=len(targets))
    return f"Target allocations sum to {format_percentage(total, locale or get_settings().LOCALE)} instead of 100%."


# ============================================================================
# SUGGESTIONS
# ============================================================================

def rebalancing_suggestions(
    current_by_category: Mapping[str, Decimal],
    categories: Sequence[Category],
    grand_total: Decimal,
    uncategorized_value: Decimal = ZERO,
    currency: Optional[str] = None,
    locale: Optional[str] = None,
    threshold: Optional[Decimal] = None,
    ) -> RebalancingResult:
    """
    Build the full rebalancing view for one point in time.

    Args:
        current_by_category: Category name -> current value (display currency)
        categories: All categories (with or without target)
        grand_total: Total portfolio value, uncategorized assets included
        uncategorized_value: Value of assets without category
        currency: Currency used in the texts (default: DISPLAY_CURRENCY)
        locale: Babel locale for the texts (default: LOCALE)
        threshold: No-action threshold (default: REBALANCING_THRESHOLD)

    Returns:
        RebalancingResult; a zero total or no targeted category gives no
        suggestions, while informational rows may still be present
    """
    settings = get_settings()
    currency = currency or settings.DISPLAY_CURRENCY
    locale = locale or settings.LOCALE
    if threshold is None:
        threshold = settings.REBALANCING_THRESHOLD

    ordered = sorted(categories, key=lambda c: (c.display_order, c.name))
    allocations = [
        CategoryAllocationInput(
            name=category.name,
            current_value=current_by_category.get(category.name, ZERO),
            target_percentage=category.target_allocation_percentage,
            )
        for category in ordered
        ]

    actions = calculate_adjustments(allocations, grand_total, threshold)
    suggestions = [
        RebalancingSuggestion(**action.model_dump(), action_text=_action_text(action, currency, locale))
        for action in actions
        ]

    no_target_rows = sorted(
        (
            NoTargetRow(
                category_name=category.name,
                current_value=current_by_category.get(category.name, ZERO),
                current_percentage=category_allocation(current_by_category.get(category.name, ZERO), grand_total),
                )
            for category in ordered
            if category.target_allocation_percentage is None
            ),
        key=lambda row: row.category_name.casefold(),
        )

    uncategorized_row = None
    if uncategorized_value > ZERO:
        uncategorized_row = UncategorizedRow(
            current_value=uncategorized_value,
            current_percentage=category_allocation(uncategorized_value, grand_total),
            )

    transfers = match_transfers(actions, threshold)

    logger.debug(
        "Rebalancing computed",
        suggestions=len(suggestions),
        transfers=len(transfers),
        no_target=len(no_target_rows),
        )

    return RebalancingResult(
        total_value=grand_total,
        suggestions=suggestions,
        no_target_rows=no_target_rows,
        uncategorized_row=uncategorized_row,
        transfers=transfers,
        summary_texts=[_transfer_text(t, currency, locale) for t in transfers],
        target_allocation_warning=target_allocation_warning(categories, locale),
        )


def rebalancing_from_valuation(
    valuation: EffectiveValuation,
    categories: Sequence[Category],
    locale: Optional[str] = None,
    threshold: Optional[Decimal] = None,
    ) -> RebalancingResult:
    """Rebalancing view for a resolved valuation, in its display currency."""
    current_by_category: Dict[str, Decimal] = {}
    for row in valuation.rows:
        if row.is_uncategorized:
            continue
        current_by_category[row.category_label] = current_by_category.get(row.category_label, ZERO) + row.converted_value

    return rebalancing_suggestions(
        current_by_category,
        categories,
        valuation.total_value,
        uncategorized_value=valuation.uncategorized_value,
        currency=valuation.display_currency,
        locale=locale,
        threshold=threshold,
        )


def latest_rebalancing(
    index: CarryForwardIndex,
    display_currency: Optional[str] = None,
    exchange_rates: Optional[ExchangeRateTable] = None,
    locale: Optional[str] = None,
    ) -> RebalancingResult:
    """Rebalancing view for the latest snapshot of a history (empty result without snapshots)."""
    latest_date = index.latest_snapshot_date
    if latest_date is None:
        return RebalancingResult()
    valuation = index.resolve(latest_date, display_currency, exchange_rates)
    return rebalancing_from_valuation(valuation, index.history.categories, locale=locale)
