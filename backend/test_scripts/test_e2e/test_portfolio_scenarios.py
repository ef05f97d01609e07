"""
End-to-end portfolio scenarios.

Records -> carry-forward valuation (multi-currency) -> performance summary
and rebalancing view, the way a dashboard consumes the engine.
"""
from datetime import date
from decimal import Decimal

import pytest

from backend.app.services.carry_forward import CarryForwardIndex
from backend.app.services.fx import convert
from backend.app.services.performance import build_performance_summary, period_returns, twr_history
from backend.app.services.rebalancing import latest_rebalancing
from backend.test_scripts.test_utils import make_asset, make_category, make_history, make_rates, make_snapshot


@pytest.fixture
def portfolio():
    """
    Two platforms, two currencies.

    2025-01-01  broker: US ETF 6000 USD, EU ETF 1700 EUR; bank: bond fund 2600 USD
    2025-04-01  broker updated only (+1000 USD deposit)
    2025-07-01  bank updated only
    """
    rates = make_rates({"EUR": "0.85"})
    return make_history(
        assets=[
            make_asset("us_etf", platform="Broker", category_id="eq", currency="USD"),
            make_asset("eu_etf", platform="Broker", category_id="eq", currency="EUR"),
            make_asset("bond_fund", platform="Bank", category_id="bd", currency="usd"),
            make_asset("gold", platform="Vault", currency="USD"),
            ],
        snapshots=[
            make_snapshot(date(2025, 1, 1), {"us_etf": 6000, "eu_etf": 1700, "bond_fund": 2600}, rates=rates),
            make_snapshot(
                date(2025, 4, 1),
                {"us_etf": 7000, "eu_etf": 1870},
                cash_flows=[(1000, "USD")],
                rates=rates,
                ),
            make_snapshot(date(2025, 7, 1), {"bond_fund": 2800}, rates=make_rates({"EUR": "0.85"}, is_fallback=True)),
            ],
        categories=[
            make_category("eq", "Equities", 60, display_order=0),
            make_category("bd", "Bonds", 40, display_order=1),
            ],
        )


def test_exchange_rate_scenario():
    """USD 1, EUR 0.85, JPY 110 with USD base."""
    rates = {"USD": 1, "EUR": Decimal("0.85"), "JPY": 110}
    assert convert(Decimal("100"), "USD", "EUR", rates, "USD") == Decimal("85")
    assert convert(Decimal("85"), "EUR", "USD", rates, "USD") == Decimal("100")
    assert convert(Decimal("100"), "EUR", "GBP", rates, "USD") == Decimal("100")


def test_multi_currency_valuation(portfolio):
    """Carry-forward across platforms with conversion into USD."""
    index = CarryForwardIndex.build(portfolio)

    first = index.resolve(date(2025, 1, 1), "USD")
    assert first.total_value == Decimal("10600")
    assert first.per_category_value == {"Equities": Decimal("8000"), "Bonds": Decimal("2600")}

    latest = index.resolve(date(2025, 7, 1), "USD")
    # 7000 + 1870 EUR (2200 USD) carried from April, 2800 direct
    assert latest.total_value == Decimal("12000")
    assert latest.rates_is_fallback is True
    carried = {row.asset_id for row in latest.rows if row.is_carried_forward}
    assert carried == {"us_etf", "eu_etf"}
    assert "gold" not in {row.asset_id for row in latest.rows}


def test_performance_summary(portfolio):
    """Deposit is excluded from the April period return."""
    index = CarryForwardIndex.build(portfolio)
    history = twr_history(index)

    # Jan -> Apr: 10600 -> 11800 with a 1000 deposit on the last day
    assert period_returns(index)[0].value == Decimal("200") / Decimal("10600")
    assert history[1].value == Decimal("1") + Decimal("200") / Decimal("10600") - 1

    summary = build_performance_summary(index, "USD")
    assert summary.latest_snapshot_date == date(2025, 7, 1)
    assert summary.total_value == Decimal("12000")
    assert summary.cumulative_twr == history[-1].value
    assert summary.cagr is not None
    assert summary.rates_is_fallback is True
    assert [p.period for p in summary.periods] == ["1M", "3M", "1Y"]


def test_rebalancing_on_latest_snapshot(portfolio):
    """Equities 9200 / Bonds 2800 of 12000 against 60/40."""
    result = latest_rebalancing(CarryForwardIndex.build(portfolio), "USD")

    equities, bonds = result.suggestions
    assert equities.category_name == "Equities"
    assert equities.difference == Decimal("2000")
    assert bonds.difference == Decimal("-2000")
    assert result.summary_texts == ["Move $2,000.00 from Equities to Bonds"]
    assert result.uncategorized_row is None
    assert result.target_allocation_warning is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
