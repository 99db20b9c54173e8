"""Tests for the DCF valuation engine.

This module tests:
- Free cash flow convention and 3-year average
- Growth estimation and conservative dampening
- 5-year projection and terminal value
- Net cash adjustment, per-share target and verdict
- The StockValuator pipeline end to end
"""

from decimal import Decimal

import pytest

from value_screener.config import VALUATION_CONFIG, ValuationConfig
from value_screener.dcf_valuator import (
    DCFProjector,
    FreeCashFlowCalculator,
    FreeCashFlowMetrics,
    GrowthRateEstimator,
    StockValuator,
    TerminalValueCalculation,
    ValuationVerdict,
    conservative_growth_rate,
    free_cash_flow,
    value_stock,
)
from value_screener.exceptions import (
    InsufficientHistoryError,
    UndefinedGrowthRateError,
    UndefinedTerminalValueError,
    ZeroCapEx3YrError,
    ZeroCashError,
    ZeroDepreciation3YrError,
    ZeroEbit3YrError,
    ZeroMarketCapError,
    ZeroPriceError,
)
from value_screener.fundamentals_aggregator import AggregatedFundamentals, AnnualBucket


def _metrics(year0, year1, year2):
    return FreeCashFlowMetrics(
        fcf_year0=Decimal(year0),
        fcf_year1=Decimal(year1),
        fcf_year2=Decimal(year2),
        fcf_3yr_average=Decimal("0"),
    )


# =============================================================================
# Free cash flow
# =============================================================================


class TestFreeCashFlow:
    """Tests for the FCF convention and calculator."""

    def test_capex_is_added_and_depreciation_subtracted(self):
        """FCF = EBIT - D&A + CapEx."""
        assert free_cash_flow(Decimal("100"), Decimal("10"), Decimal("20")) == Decimal("110")

    def test_calculator_uses_totals_for_average(self):
        """The 3-year average is (total EBIT - total D&A + total CapEx) / 3."""
        aggregated = AggregatedFundamentals(
            oldest=AnnualBucket(Decimal("80"), Decimal("10"), Decimal("20")),
            middle=AnnualBucket(Decimal("90"), Decimal("10"), Decimal("20")),
            current=AnnualBucket(Decimal("101"), Decimal("10"), Decimal("20")),
            total_ebit=Decimal("271"),
            total_depreciation=Decimal("30"),
            total_capex=Decimal("60"),
        )

        fcf = FreeCashFlowCalculator().calculate(aggregated)

        assert fcf.by_year == (Decimal("90"), Decimal("100"), Decimal("111"))
        assert fcf.fcf_current_year == Decimal("111")
        assert fcf.fcf_3yr_average == Decimal("301") / 3


# =============================================================================
# Growth rate
# =============================================================================


class TestConservativeGrowthRate:
    """Tests for the dampening rule."""

    def test_aggressive_growth_is_capped(self):
        """Growth above 30% is replaced by the cap."""
        assert conservative_growth_rate(Decimal("0.40")) == Decimal("0.15")

    def test_moderate_growth_is_halved(self):
        """Positive growth up to 30% is halved."""
        assert conservative_growth_rate(Decimal("0.10")) == Decimal("0.05")

    def test_threshold_is_halved_not_capped(self):
        """Exactly 30% is not above the threshold."""
        assert conservative_growth_rate(Decimal("0.30")) == Decimal("0.15")

    def test_negative_growth_unchanged(self):
        """Shrinking FCF is not adjusted."""
        assert conservative_growth_rate(Decimal("-0.10")) == Decimal("-0.10")

    def test_zero_growth_unchanged(self):
        assert conservative_growth_rate(Decimal("0")) == Decimal("0")

    def test_lower_cap_bounds_halved_rate(self):
        """A halved rate never exceeds a lowered cap."""
        config = VALUATION_CONFIG.with_max_growth_rate("0.10")

        assert conservative_growth_rate(Decimal("0.25"), config) == Decimal("0.10")
        assert conservative_growth_rate(Decimal("0.50"), config) == Decimal("0.10")

    @pytest.mark.parametrize("rate", ["-0.5", "0", "0.05", "0.29", "0.31", "2"])
    def test_never_above_cap(self, rate):
        assert conservative_growth_rate(Decimal(rate)) <= VALUATION_CONFIG.max_conservative_growth_rate


class TestGrowthRateEstimator:
    """Tests for GrowthRateEstimator.estimate."""

    def test_average_of_two_transitions(self):
        """FCF 90 -> 100 -> 111 averages about 11.06% growth."""
        growth = GrowthRateEstimator().estimate(_metrics("90", "100", "111"))

        assert float(growth.growth_year1) == pytest.approx(1 / 9)
        assert growth.growth_year2 == Decimal("0.11")
        assert float(growth.recent_average) == pytest.approx(0.110556, abs=1e-6)
        assert float(growth.conservative) == pytest.approx(0.055278, abs=1e-6)
        assert growth.cap_applied is False

    def test_cap_applied_flag(self):
        """Growth from 100 -> 200 -> 400 is capped."""
        growth = GrowthRateEstimator().estimate(_metrics("100", "200", "400"))

        assert growth.recent_average == Decimal("1")
        assert growth.conservative == Decimal("0.15")
        assert growth.cap_applied is True

    def test_zero_oldest_fcf_is_undefined(self):
        """Growth from a zero base is undefined."""
        with pytest.raises(UndefinedGrowthRateError):
            GrowthRateEstimator().estimate(_metrics("0", "100", "110"))

    def test_zero_middle_fcf_is_undefined(self):
        with pytest.raises(UndefinedGrowthRateError):
            GrowthRateEstimator().estimate(_metrics("100", "0", "110"))


# =============================================================================
# Projection and terminal value
# =============================================================================


class TestDCFProjector:
    """Tests for the projection and terminal value."""

    def test_worked_example(self):
        """Base 100 at 5% for five years is 127.63; terminal value 4467.05."""
        projection = DCFProjector().project(
            base_fcf=Decimal("100"),
            growth_rate=Decimal("0.05"),
            net_cash=Decimal("0"),
            shares_outstanding=Decimal("10"),
        )

        assert projection.fcf_after_projection == Decimal("127.63")
        assert projection.terminal_value == Decimal("4467.05")
        assert projection.terminal_value_adjusted == Decimal("4467.05")
        assert projection.target_per_share == Decimal("446.705")

    def test_projection_rounded_to_cents(self):
        fcf_after = DCFProjector().project_fcf(Decimal("333.333"), Decimal("0.0123"))

        assert fcf_after == fcf_after.quantize(Decimal("0.01"))

    def test_net_cash_added_to_terminal_value(self):
        projection = DCFProjector().project(
            Decimal("100"), Decimal("0.05"), Decimal("-500"), Decimal("10")
        )

        assert projection.terminal_value_adjusted == Decimal("3967.05")
        assert projection.target_per_share == Decimal("396.705")

    def test_negative_growth_projection(self):
        """Shrinking FCF projects downward."""
        fcf_after = DCFProjector().project_fcf(Decimal("100"), Decimal("-0.10"))

        assert fcf_after == Decimal("59.05")

    def test_terminal_value_requires_discount_above_growth(self):
        calculation = TerminalValueCalculation(
            final_year_fcf=Decimal("100"),
            terminal_growth_rate=Decimal("0.08"),
            discount_rate=Decimal("0.08"),
        )

        with pytest.raises(UndefinedTerminalValueError):
            calculation.calculate()


class TestValuationVerdict:
    """Tests for the undervaluation verdict."""

    def test_undervalued_when_value_exceeds_market_cap(self):
        verdict = ValuationVerdict.from_values(Decimal("1500"), Decimal("1000"))

        assert verdict.is_undervalued is True
        assert verdict.upside_potential == Decimal("0.5")

    def test_equal_value_is_not_undervalued(self):
        verdict = ValuationVerdict.from_values(Decimal("1000"), Decimal("1000"))

        assert verdict.is_undervalued is False
        assert verdict.upside_potential == Decimal("0")

    def test_overvalued_has_negative_upside(self):
        verdict = ValuationVerdict.from_values(Decimal("500"), Decimal("1000"))

        assert verdict.is_undervalued is False
        assert verdict.upside_potential == Decimal("-0.5")


# =============================================================================
# StockValuator
# =============================================================================


class TestStockValuator:
    """Tests for the full valuation pipeline."""

    def test_end_to_end(self, make_collection):
        """A clean 12-quarter history is valued on both paths."""
        valuation = StockValuator().value(make_collection(), name="Test Corp")

        assert valuation.symbol == "TEST"
        assert valuation.name == "Test Corp"
        assert valuation.shares_outstanding == Decimal("100")
        assert valuation.net_cash == Decimal("600")
        assert valuation.free_cashflow_by_year == (Decimal("90"), Decimal("100"), Decimal("111"))
        assert valuation.free_cashflow_current_year == Decimal("111")
        assert valuation.free_cashflow_3yr_average == Decimal("301") / 3
        assert float(valuation.recent_average_fcf_conservative_growth_rate) == pytest.approx(
            0.055278, abs=1e-6
        )

        expected_terminal = (
            valuation.free_cash_flow_after_5yrs_conservative_growth
            * Decimal("1.05") / Decimal("0.03")
        )
        assert valuation.terminal_value == expected_terminal
        assert valuation.terminal_value_adjusted_for_net_cash == expected_terminal + Decimal("600")
        assert valuation.dcf_target_per_share_price_adjusted_for_net_cash == (
            valuation.terminal_value_adjusted_for_net_cash / Decimal("100")
        )
        assert valuation.is_undervalued is True
        assert valuation.upside_potential == (
            valuation.terminal_value_adjusted_for_net_cash / Decimal("1000") - 1
        )

    def test_reference_history(self, make_collection):
        """EBIT 100/110/121, D&A 20 and capex 10 per year give FCF 90/100/111."""
        valuation = StockValuator().value(
            make_collection(
                annual_ebit=(Decimal("100"), Decimal("110"), Decimal("121")),
                quarterly_da=Decimal("5"),
                quarterly_capex=Decimal("2.5"),
            )
        )

        assert valuation.free_cashflow_by_year == (Decimal("90"), Decimal("100"), Decimal("111"))
        assert float(valuation.recent_average_fcf_growth_rate) == pytest.approx(0.110556, abs=1e-6)
        assert float(valuation.recent_average_fcf_conservative_growth_rate) == pytest.approx(
            0.055278, abs=1e-6
        )
        assert valuation.depreciation_current_year == Decimal("20")
        assert valuation.capital_expenditures_current_year == Decimal("10")

    def test_aggressive_path_uses_current_year_base_and_conservative_rate(self, make_collection):
        valuation = StockValuator().value(make_collection())
        projector = DCFProjector()

        assert valuation.free_cash_flow_after_5yrs_aggressive_growth == projector.project_fcf(
            Decimal("111"), valuation.recent_average_fcf_conservative_growth_rate
        )
        assert valuation.terminal_value_aggressive_growth > valuation.terminal_value

    def test_verdict_uses_conservative_path(self, make_collection):
        """Market cap between the two adjusted values is not undervalued."""
        collection = make_collection()
        valuation = StockValuator().value(collection)
        conservative = valuation.terminal_value_adjusted_for_net_cash
        aggressive = valuation.terminal_value_aggressive_growth_adjusted_for_net_cash
        market_cap = ((conservative + aggressive) / 2).quantize(Decimal("1"))

        valuation = StockValuator().value(
            make_collection(market_cap=market_cap, price=market_cap / 100)
        )

        assert valuation.is_undervalued is False

    def test_shares_are_exact(self, make_collection):
        """Shares outstanding is market cap / price without rounding."""
        valuation = StockValuator().value(
            make_collection(price=Decimal("3"), market_cap=Decimal("1000"))
        )

        assert valuation.shares_outstanding == Decimal("1000") / Decimal("3")

    def test_net_cash_independent_of_debt_sign(self, make_collection):
        """Debt reported as negative yields the same net cash."""
        positive = StockValuator().value(make_collection(debt=Decimal("400")))
        negative = StockValuator().value(make_collection(debt=Decimal("-400")))

        assert positive.net_cash == negative.net_cash == Decimal("600")
        assert positive.terminal_value_adjusted_for_net_cash == (
            negative.terminal_value_adjusted_for_net_cash
        )

    def test_idempotent(self, make_collection):
        """Valuing the same inputs twice gives identical figures."""
        collection = make_collection()
        first = StockValuator().value(collection).to_dict()
        second = StockValuator().value(collection).to_dict()

        first.pop("valuation_date")
        second.pop("valuation_date")
        assert first == second

    def test_lower_growth_cap_reduces_value(self, make_collection):
        base = StockValuator().value(make_collection())
        capped = StockValuator(VALUATION_CONFIG.with_max_growth_rate("0.02")).value(
            make_collection()
        )

        assert capped.recent_average_fcf_conservative_growth_rate == Decimal("0.02")
        assert capped.terminal_value < base.terminal_value

    def test_value_stock_convenience(self, make_collection):
        valuation = value_stock(make_collection(symbol="CONV"), name="Convenience")

        assert valuation.symbol == "CONV"
        assert valuation.is_undervalued is True

    def test_invalid_configuration_rejected(self):
        config = ValuationConfig(discount_rate=Decimal("0.05"), terminal_growth_rate=Decimal("0.05"))

        with pytest.raises(UndefinedTerminalValueError):
            StockValuator(config)


class TestStockValuatorCheckpoints:
    """Tests that failed checkpoints abort with the symbol attached."""

    def test_zero_price(self, make_collection):
        with pytest.raises(ZeroPriceError) as exc_info:
            StockValuator().value(make_collection(symbol="ZP", price=Decimal("0")))

        assert exc_info.value.symbol == "ZP"

    def test_zero_market_cap(self, make_collection):
        with pytest.raises(ZeroMarketCapError):
            StockValuator().value(make_collection(market_cap=Decimal("0")))

    def test_zero_cash(self, make_collection):
        with pytest.raises(ZeroCashError) as exc_info:
            StockValuator().value(make_collection(symbol="ZC", cash=Decimal("0")))

        assert exc_info.value.symbol == "ZC"
        assert exc_info.value.reason.value == "ZeroCash"

    def test_zero_total_ebit(self, make_collection):
        with pytest.raises(ZeroEbit3YrError):
            StockValuator().value(
                make_collection(annual_ebit=(Decimal("0"), Decimal("0"), Decimal("0")))
            )

    def test_zero_total_depreciation(self, make_collection):
        with pytest.raises(ZeroDepreciation3YrError):
            StockValuator().value(make_collection(quarterly_da=Decimal("0")))

    def test_zero_total_capex(self, make_collection):
        with pytest.raises(ZeroCapEx3YrError):
            StockValuator().value(make_collection(quarterly_capex=Decimal("0")))

    def test_zero_fcf_year_is_undefined_growth(self, make_collection):
        """Oldest-year EBIT of -10 gives an oldest-year FCF of zero."""
        with pytest.raises(UndefinedGrowthRateError):
            StockValuator().value(
                make_collection(annual_ebit=(Decimal("-10"), Decimal("90"), Decimal("101")))
            )

    def test_empty_history_is_insufficient(self, make_collection):
        with pytest.raises(InsufficientHistoryError) as exc_info:
            value_stock(make_collection(symbol="EMPTY", quarters=0))

        assert exc_info.value.symbol == "EMPTY"
        assert exc_info.value.available == 0

    def test_short_history_reported_before_zero_cash(self, make_collection):
        """Eleven quarters with no cash fail on history, not on cash."""
        with pytest.raises(InsufficientHistoryError) as exc_info:
            value_stock(make_collection(symbol="SHORT", quarters=11, cash=Decimal("0")))

        assert exc_info.value.symbol == "SHORT"
        assert exc_info.value.reason.value == "InsufficientHistory"
