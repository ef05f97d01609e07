"""
AssetFlow Analytics Test Utilities Library

Common utilities for all test scripts to avoid code duplication.
Provides standardized output formatting and factories for portfolio records.
"""
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional, Sequence, Tuple

from backend.app.schemas.portfolio import (
    Asset,
    CashFlowOperation,
    Category,
    ExchangeRateTable,
    PortfolioHistory,
    Snapshot,
    ValueRecord,
    )


# ============================================================================
# ANSI COLOR CODES
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    GREEN = '\033[0;32m'
    YELLOW = '\033[1;33m'
    RED = '\033[0;31m'
    BLUE = '\033[0;34m'
    CYAN = '\033[0;36m'
    BOLD = '\033[1m'
    NC = '\033[0m'  # No Color


# ============================================================================
# OUTPUT FORMATTING FUNCTIONS
# ============================================================================

def print_header(text: str):
    """Print a formatted header (large, centered)."""
    print(f"\n{Colors.CYAN}{'=' * 70}{Colors.NC}")
    print(f"{Colors.CYAN}{text:^70}{Colors.NC}")
    print(f"{Colors.CYAN}{'=' * 70}{Colors.NC}\n")


def print_section(title: str):
    """Print a formatted section header."""
    print(f"\n{'=' * 60}")
    print(f"  {title}")
    print('=' * 60)


def print_success(message: str):
    """Print a success message with green checkmark."""
    print(f"{Colors.GREEN}✅ {message}{Colors.NC}")


def print_error(message: str):
    """Print an error message with red X."""
    print(f"{Colors.RED}❌ {message}{Colors.NC}")


def print_info(message: str):
    """Print an info message with blue info symbol."""
    print(f"{Colors.BLUE}ℹ️  {message}{Colors.NC}")


# ============================================================================
# RECORDS HELPER
# ============================================================================

def make_category(category_id, name: str, target=None, display_order: int = 0) -> Category:
    """Build a Category; target in percentage points (None = no target)."""
    return Category(
        id=category_id,
        name=name,
        target_allocation_percentage=None if target is None else Decimal(str(target)),
        display_order=display_order,
        )


def make_asset(asset_id, platform: str = "Broker", category_id=None, currency: str = "USD", name: Optional[str] = None) -> Asset:
    """Build an Asset, named after its id unless a name is given."""
    return Asset(
        id=asset_id,
        name=name or f"Asset {asset_id}",
        platform=platform,
        category_id=category_id,
        currency=currency,
        )


def make_rates(rates: Dict[str, object], base: str = "USD", is_fallback: bool = False) -> ExchangeRateTable:
    """Build an ExchangeRateTable from a plain mapping."""
    return ExchangeRateTable(base_currency=base, rates=rates, is_fallback=is_fallback)


def make_snapshot(
    snapshot_date: date,
    values: Dict[object, object],
    cash_flows: Sequence[Tuple[object, str]] = (),
    rates: Optional[ExchangeRateTable] = None,
    ) -> Snapshot:
    """
    Build a Snapshot.

    Args:
        snapshot_date: Snapshot date
        values: asset_id -> market value (asset currency)
        cash_flows: (amount, currency) pairs
        rates: Optional rate table stored with the snapshot
    """
    return Snapshot(
        date=snapshot_date,
        asset_values=[ValueRecord(asset_id=a, market_value=v) for a, v in values.items()],
        cash_flows=[CashFlowOperation(description="flow", amount=amount, currency=currency) for amount, currency in cash_flows],
        exchange_rate=rates,
        )


def make_history(
    assets: Iterable[Asset],
    snapshots: Iterable[Snapshot],
    categories: Iterable[Category] = (),
    ) -> PortfolioHistory:
    """Bundle records into a validated PortfolioHistory."""
    return PortfolioHistory(assets=list(assets), categories=list(categories), snapshots=list(snapshots))
