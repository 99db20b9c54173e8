"""Pytest configuration and fixtures for all tests.

Builds provider-shaped payloads and typed quarterly series so that no
test ever reaches the network.
"""

from decimal import Decimal

import pytest

from value_screener.data_collector import (
    CashFlowReport,
    CollectionResult,
    FundamentalsReport,
    StockQuote,
)
from value_screener.dcf_valuator import StockValuation


@pytest.fixture(autouse=True)
def isolate_from_env(monkeypatch):
    """Make sure a real IEX Cloud token never leaks into tests."""
    monkeypatch.delenv("IEX_CLOUD_API_TOKEN", raising=False)


# =============================================================================
# Quarterly series
# =============================================================================


# Annual EBIT per bucket (oldest, middle, current). With D&A of 10 and
# capex of 20 per year, annual FCF is EBIT + 10: 90, 100, 111.
ANNUAL_EBIT = (Decimal("80"), Decimal("90"), Decimal("101"))
QUARTERLY_DA = Decimal("2.5")
QUARTERLY_CAPEX = Decimal("5")


@pytest.fixture
def make_series():
    """Factory for most-recent-first fundamentals and cash flow series."""

    def _make(
        annual_ebit=ANNUAL_EBIT,
        quarterly_da=QUARTERLY_DA,
        quarterly_capex=QUARTERLY_CAPEX,
        cash=Decimal("1000"),
        debt=Decimal("400"),
        quarters=12,
    ):
        oldest, middle, current = annual_ebit
        # Index 0 is the most recent quarter
        ebit_by_quarter = [current / 4] * 4 + [middle / 4] * 4 + [oldest / 4] * 4

        fundamentals = [
            FundamentalsReport(
                ebit_reported=ebit_by_quarter[i % 12],
                assets_current_cash=cash,
                liabilities_non_current_debt=debt,
                depreciation_amortization_cash_flow=quarterly_da,
                fiscal_date=f"q{i}",
            )
            for i in range(quarters)
        ]
        cash_flow = [
            CashFlowReport(capital_expenditures=-quarterly_capex, fiscal_date=f"q{i}")
            for i in range(quarters)
        ]
        return fundamentals, cash_flow

    return _make


@pytest.fixture
def make_collection(make_series):
    """Factory for a CollectionResult ready to be valued."""

    def _make(
        symbol="TEST",
        price=Decimal("10"),
        market_cap=Decimal("1000"),
        **series_kwargs,
    ):
        fundamentals, cash_flow = make_series(**series_kwargs)
        return CollectionResult(
            symbol=symbol,
            quote=StockQuote(price=price, market_cap=market_cap, volume=Decimal("5000")),
            fundamentals=fundamentals,
            cash_flow=cash_flow,
        )

    return _make


# =============================================================================
# Provider payloads
# =============================================================================


@pytest.fixture
def quote_payload():
    """IEX Cloud quote response."""
    return [
        {
            "symbol": "AAPL",
            "companyName": "Apple Inc.",
            "close": 150.25,
            "iexClose": 150.1,
            "latestPrice": 150.3,
            "marketCap": 2400000000000,
            "avgTotalVolume": 55000000,
        }
    ]


@pytest.fixture
def fundamentals_payload():
    """Twelve quarters of IEX Cloud fundamentals, most recent first."""
    return [
        {
            "fiscalDate": f"2023-Q{i}",
            "ebitReported": 30000000000,
            "assetsCurrentCash": 28000000000,
            "cashLongTerm": 100000000000,
            "cashOperating": 0,
            "liabilitiesNonCurrentDebt": 95000000000,
            "debtShortTerm": 15000000000,
            "debtFinancial": 0,
            "depreciationAndAmortizationCashFlow": 2900000000,
            "expensesDepreciationAndAmortization": 0,
        }
        for i in range(12)
    ]


@pytest.fixture
def cash_flow_payload():
    """Twelve quarters of IEX Cloud cash flow, most recent first."""
    return [
        {"fiscalDate": f"2023-Q{i}", "capitalExpenditures": -2500000000}
        for i in range(12)
    ]


# =============================================================================
# Valuation records
# =============================================================================


@pytest.fixture
def sample_valuation():
    """A fully populated StockValuation for report tests."""
    return StockValuation(
        symbol="AAPL",
        name="Apple, Inc.",
        sector="Technology",
        industry="Consumer Electronics",
        price=Decimal("150.25"),
        market_capitalization=Decimal("2400000000"),
        volume=Decimal("55000000"),
        shares_outstanding=Decimal("16000000"),
        cash=Decimal("128000000"),
        debt=Decimal("110000000"),
        ebit_current_year=Decimal("120000000"),
        ebit_3yr_average=Decimal("110000000"),
        depreciation_current_year=Decimal("11600000"),
        depreciation_3yr_average=Decimal("11000000"),
        capital_expenditures_current_year=Decimal("10000000"),
        capital_expenditures_3yr_average=Decimal("9000000"),
        free_cashflow_current_year=Decimal("118400000"),
        free_cashflow_3yr_average=Decimal("108000000"),
        recent_average_fcf_growth_rate=Decimal("0.1234"),
        recent_average_fcf_conservative_growth_rate=Decimal("0.0617"),
        free_cash_flow_after_5yrs_conservative_growth=Decimal("145500000.00"),
        free_cash_flow_after_5yrs_aggressive_growth=Decimal("159500000.00"),
        terminal_value=Decimal("5092500000"),
        terminal_value_aggressive_growth=Decimal("5582500000"),
        terminal_value_adjusted_for_net_cash=Decimal("5110500000"),
        terminal_value_aggressive_growth_adjusted_for_net_cash=Decimal("5600500000"),
        dcf_target_per_share_price_adjusted_for_net_cash=Decimal("319.40625"),
        dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash=Decimal("350.03125"),
        upside_potential=Decimal("1.129375"),
        is_undervalued=True,
    )
