"""
DCF Valuation Module - Terminal Value Screening
Value Screener

Turns aggregated fundamentals and a quote into a simplified discounted cash
flow valuation and an undervaluation verdict.

Methodology:
    Free Cash Flow   = EBIT - Depreciation + Capital Expenditure
    Growth           = average of the two year-over-year FCF changes,
                       dampened to a conservative rate
    FCF after 5 yrs  = Base FCF * (1 + conservative growth) ^ 5
    Terminal Value   = FCF after 5 yrs * (1 + g) / (r - g)
    Adjusted Value   = Terminal Value + (Cash - |Debt|)
    Target per Share = Adjusted Value / Shares Outstanding

Free cash flow convention:
    Capital expenditure is credited back and depreciation subtracted.
    Capex is discretionary and should not count against companies that
    invest in growth; depreciation reflects what must be spent to avoid
    deterioration.

Two paths are valued:
    Conservative: base = 3-year average FCF
    Aggressive:   base = current-year FCF
Both paths grow at the conservative rate. Only the conservative path
drives the verdict.

Only the terminal value is used; the first five years are not summed
separately.

Version: 1.0.0
"""

from __future__ import annotations

from datetime import datetime
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP, localcontext
from typing import Dict, List, Optional, Any, Tuple

from .config import (
    LOGGER,
    VALUATION_CONFIG,
    DECIMAL_CONTEXT,
    ValuationConfig,
)
from .data_collector import CollectionResult
from .data_validator import (
    AggregateValidator,
    BalanceSheetValidator,
    QuoteValidator,
    ValidationReport,
)
from .exceptions import (
    UndefinedGrowthRateError,
    UndefinedTerminalValueError,
    ValuationError,
)
from .fundamentals_aggregator import (
    AggregatedFundamentals,
    FundamentalsAggregator,
    build_quarterly_series,
)


__version__ = "1.0.0"

ZERO = Decimal("0")
ONE = Decimal("1")


# =============================================================================
# FREE CASH FLOW
# =============================================================================

def free_cash_flow(ebit: Decimal, depreciation: Decimal, capital_expenditure: Decimal) -> Decimal:
    """EBIT - Depreciation + CapEx."""
    return ebit - depreciation + capital_expenditure


@dataclass(frozen=True)
class FreeCashFlowMetrics:
    """Annual and averaged free cash flow."""

    fcf_year0: Decimal  # two years back
    fcf_year1: Decimal  # one year back
    fcf_year2: Decimal  # current year
    fcf_3yr_average: Decimal

    @property
    def fcf_current_year(self) -> Decimal:
        return self.fcf_year2

    @property
    def by_year(self) -> Tuple[Decimal, Decimal, Decimal]:
        """Annual FCF, oldest to current."""
        return (self.fcf_year0, self.fcf_year1, self.fcf_year2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fcf_by_year": [str(v) for v in self.by_year],
            "fcf_current_year": str(self.fcf_current_year),
            "fcf_3yr_average": str(self.fcf_3yr_average),
        }


class FreeCashFlowCalculator:
    """Computes FCF per annual bucket and the 3-year average."""

    def calculate(self, aggregated: AggregatedFundamentals) -> FreeCashFlowMetrics:
        """
        Args:
            aggregated: Output of FundamentalsAggregator

        Returns:
            FreeCashFlowMetrics
        """
        fcf_year0, fcf_year1, fcf_year2 = (
            free_cash_flow(b.ebit, b.depreciation_amortization, b.capital_expenditure)
            for b in aggregated.buckets
        )

        # Averaging is applied to the combined 3-year figure
        fcf_3yr_average = free_cash_flow(
            aggregated.total_ebit,
            aggregated.total_depreciation,
            aggregated.total_capex,
        ) / aggregated.years

        return FreeCashFlowMetrics(
            fcf_year0=fcf_year0,
            fcf_year1=fcf_year1,
            fcf_year2=fcf_year2,
            fcf_3yr_average=fcf_3yr_average,
        )


# =============================================================================
# GROWTH RATE ESTIMATOR
# =============================================================================

@dataclass(frozen=True)
class GrowthRateAnalysis:
    """Recent FCF growth and its conservative projection."""

    growth_year1: Decimal
    growth_year2: Decimal
    recent_average: Decimal
    conservative: Decimal
    cap_applied: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "growth_year1": str(self.growth_year1),
            "growth_year2": str(self.growth_year2),
            "recent_average": str(self.recent_average),
            "conservative": str(self.conservative),
            "cap_applied": self.cap_applied,
        }


def conservative_growth_rate(rate: Decimal, config: ValuationConfig = VALUATION_CONFIG) -> Decimal:
    """
    Dampen a recent growth rate.

    Above the aggressive threshold the configured cap is used. A positive
    rate below it is halved (and still bounded by the cap). Zero or
    negative growth is passed through: a shrinking business is not
    adjusted upward.
    """
    cap = config.max_conservative_growth_rate
    if rate > config.aggressive_growth_threshold:
        return cap
    if rate > 0:
        return min(rate / 2, cap)
    return rate


class GrowthRateEstimator:
    """Derives the recent average FCF growth rate."""

    def __init__(self, config: ValuationConfig = VALUATION_CONFIG):
        self.config = config

    def estimate(self, fcf: FreeCashFlowMetrics) -> GrowthRateAnalysis:
        """
        Args:
            fcf: Annual FCF, oldest to current

        Returns:
            GrowthRateAnalysis

        Raises:
            UndefinedGrowthRateError: If a prior-year FCF is zero
        """
        growth_year1 = self._growth(fcf.fcf_year0, fcf.fcf_year1, "year 1")
        growth_year2 = self._growth(fcf.fcf_year1, fcf.fcf_year2, "year 2")
        recent_average = (growth_year1 + growth_year2) / 2
        conservative = conservative_growth_rate(recent_average, self.config)
        cap = self.config.max_conservative_growth_rate

        return GrowthRateAnalysis(
            growth_year1=growth_year1,
            growth_year2=growth_year2,
            recent_average=recent_average,
            conservative=conservative,
            cap_applied=(recent_average > self.config.aggressive_growth_threshold
                         or (recent_average > 0 and recent_average / 2 > cap)),
        )

    @staticmethod
    def _growth(previous: Decimal, current: Decimal, transition: str) -> Decimal:
        if previous == 0:
            raise UndefinedGrowthRateError(transition)
        return current / previous - 1


# =============================================================================
# DCF PROJECTOR
# =============================================================================

@dataclass
class TerminalValueCalculation:
    """Terminal value calculation using Gordon Growth Model."""

    final_year_fcf: Decimal = ZERO
    terminal_growth_rate: Decimal = VALUATION_CONFIG.terminal_growth_rate
    discount_rate: Decimal = VALUATION_CONFIG.discount_rate

    # Calculated values
    terminal_value: Decimal = ZERO

    def calculate(self) -> Decimal:
        """
        Calculate terminal value: FCF * (1 + g) / (r - g).

        Raises:
            UndefinedTerminalValueError: If r <= g
        """
        if self.discount_rate <= self.terminal_growth_rate:
            raise UndefinedTerminalValueError(self.discount_rate, self.terminal_growth_rate)

        self.terminal_value = (
            self.final_year_fcf * (ONE + self.terminal_growth_rate)
            / (self.discount_rate - self.terminal_growth_rate)
        )
        return self.terminal_value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_year_fcf": str(self.final_year_fcf),
            "terminal_growth_rate": str(self.terminal_growth_rate),
            "discount_rate": str(self.discount_rate),
            "terminal_value": str(self.terminal_value),
            "formula": "FCF * (1+g) / (r - g)",
        }


@dataclass(frozen=True)
class DCFProjection:
    """Projection of one FCF base to an adjusted, per-share value."""

    base_fcf: Decimal
    growth_rate: Decimal
    fcf_after_projection: Decimal
    terminal_value: Decimal
    net_cash: Decimal
    terminal_value_adjusted: Decimal
    target_per_share: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_fcf": str(self.base_fcf),
            "growth_rate": str(self.growth_rate),
            "fcf_after_projection": str(self.fcf_after_projection),
            "terminal_value": str(self.terminal_value),
            "net_cash": str(self.net_cash),
            "terminal_value_adjusted": str(self.terminal_value_adjusted),
            "target_per_share": str(self.target_per_share),
        }


class DCFProjector:
    """
    Projects FCF forward and applies the terminal value.

    Methodology:
        1. Grow base FCF for projection_years at the given rate
        2. Apply the Gordon Growth terminal value
        3. Add net cash
        4. Divide by shares outstanding
    """

    def __init__(self, config: ValuationConfig = VALUATION_CONFIG):
        self.config = config

    def growth_factor(self, growth_rate: Decimal) -> Decimal:
        """(1 + rate) ^ years, computed in floating point."""
        factor = (1.0 + float(growth_rate)) ** self.config.projection_years
        return Decimal(repr(factor))

    def project_fcf(self, base_fcf: Decimal, growth_rate: Decimal) -> Decimal:
        """FCF after the projection horizon, at currency precision."""
        projected = base_fcf * self.growth_factor(growth_rate)
        return projected.quantize(self.config.currency_precision, rounding=ROUND_HALF_UP)

    def terminal_value(self, final_year_fcf: Decimal) -> Decimal:
        return TerminalValueCalculation(
            final_year_fcf=final_year_fcf,
            terminal_growth_rate=self.config.terminal_growth_rate,
            discount_rate=self.config.discount_rate,
        ).calculate()

    def project(
        self,
        base_fcf: Decimal,
        growth_rate: Decimal,
        net_cash: Decimal,
        shares_outstanding: Decimal,
    ) -> DCFProjection:
        """
        Args:
            base_fcf: Starting FCF
            growth_rate: Conservative growth rate
            net_cash: Cash minus debt magnitude
            shares_outstanding: Market cap / price

        Returns:
            DCFProjection
        """
        fcf_after = self.project_fcf(base_fcf, growth_rate)
        terminal_value = self.terminal_value(fcf_after)
        adjusted = terminal_value + net_cash

        return DCFProjection(
            base_fcf=base_fcf,
            growth_rate=growth_rate,
            fcf_after_projection=fcf_after,
            terminal_value=terminal_value,
            net_cash=net_cash,
            terminal_value_adjusted=adjusted,
            target_per_share=adjusted / shares_outstanding,
        )


# =============================================================================
# VALUATION VERDICT
# =============================================================================

@dataclass(frozen=True)
class ValuationVerdict:
    """Adjusted terminal value compared to market capitalization."""

    is_undervalued: bool
    upside_potential: Decimal

    @classmethod
    def from_values(cls, terminal_value_adjusted: Decimal, market_cap: Decimal) -> "ValuationVerdict":
        return cls(
            is_undervalued=terminal_value_adjusted > market_cap,
            upside_potential=terminal_value_adjusted / market_cap - 1,
        )


# =============================================================================
# STOCK VALUATION RECORD
# =============================================================================

YAHOO_FINANCE_BASE = "https://finance.yahoo.com/quote"


@dataclass
class StockValuation:
    """Complete valuation of one symbol."""

    # Identification
    symbol: str = ""
    name: str = ""
    sector: Optional[str] = None
    industry: Optional[str] = None
    valuation_date: datetime = field(default_factory=datetime.now)

    # Quote
    price: Decimal = ZERO
    market_capitalization: Decimal = ZERO
    volume: Decimal = ZERO
    shares_outstanding: Decimal = ZERO

    # Balance sheet snapshot (debt is a magnitude)
    cash: Decimal = ZERO
    debt: Decimal = ZERO

    # Current year components
    ebit_current_year: Decimal = ZERO
    depreciation_current_year: Decimal = ZERO
    capital_expenditures_current_year: Decimal = ZERO
    free_cashflow_current_year: Decimal = ZERO

    # 3-year averages
    ebit_3yr_average: Decimal = ZERO
    depreciation_3yr_average: Decimal = ZERO
    capital_expenditures_3yr_average: Decimal = ZERO
    free_cashflow_3yr_average: Decimal = ZERO

    # Annual FCF, oldest to current
    free_cashflow_by_year: Tuple[Decimal, ...] = ()

    # Growth
    recent_average_fcf_growth_rate: Decimal = ZERO
    recent_average_fcf_conservative_growth_rate: Decimal = ZERO

    # DCF
    discount_rate: Decimal = VALUATION_CONFIG.discount_rate
    terminal_growth_rate: Decimal = VALUATION_CONFIG.terminal_growth_rate
    free_cash_flow_after_5yrs_conservative_growth: Decimal = ZERO
    free_cash_flow_after_5yrs_aggressive_growth: Decimal = ZERO
    terminal_value: Decimal = ZERO
    terminal_value_aggressive_growth: Decimal = ZERO
    terminal_value_adjusted_for_net_cash: Decimal = ZERO
    terminal_value_aggressive_growth_adjusted_for_net_cash: Decimal = ZERO
    dcf_target_per_share_price_adjusted_for_net_cash: Decimal = ZERO
    dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash: Decimal = ZERO

    # Verdict
    upside_potential: Decimal = ZERO
    is_undervalued: bool = False

    # Validation
    validation_warnings: List[str] = field(default_factory=list)

    @property
    def net_cash(self) -> Decimal:
        return self.cash - abs(self.debt)

    @property
    def free_cashflow_3yr_average_per_share(self) -> Decimal:
        return self.free_cashflow_3yr_average / self.shares_outstanding

    @property
    def yahoo_finance_quote(self) -> str:
        return f"{YAHOO_FINANCE_BASE}/{self.symbol}"

    @property
    def yahoo_finance_income_annual(self) -> str:
        return f"{YAHOO_FINANCE_BASE}/{self.symbol}/financials"

    @property
    def yahoo_finance_cash_flow_annual(self) -> str:
        return f"{YAHOO_FINANCE_BASE}/{self.symbol}/cash-flow"

    @property
    def yahoo_finance_balance_sheet_annual(self) -> str:
        return f"{YAHOO_FINANCE_BASE}/{self.symbol}/balance-sheet"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "sector": self.sector,
            "industry": self.industry,
            "valuation_date": self.valuation_date.isoformat(),
            "price": str(self.price),
            "market_capitalization": str(self.market_capitalization),
            "volume": str(self.volume),
            "shares_outstanding": str(self.shares_outstanding),
            "cash": str(self.cash),
            "debt": str(self.debt),
            "net_cash": str(self.net_cash),
            "ebit_current_year": str(self.ebit_current_year),
            "depreciation_current_year": str(self.depreciation_current_year),
            "capital_expenditures_current_year": str(self.capital_expenditures_current_year),
            "free_cashflow_current_year": str(self.free_cashflow_current_year),
            "ebit_3yr_average": str(self.ebit_3yr_average),
            "depreciation_3yr_average": str(self.depreciation_3yr_average),
            "capital_expenditures_3yr_average": str(self.capital_expenditures_3yr_average),
            "free_cashflow_3yr_average": str(self.free_cashflow_3yr_average),
            "free_cashflow_by_year": [str(v) for v in self.free_cashflow_by_year],
            "recent_average_fcf_growth_rate": str(self.recent_average_fcf_growth_rate),
            "recent_average_fcf_conservative_growth_rate": str(
                self.recent_average_fcf_conservative_growth_rate
            ),
            "discount_rate": str(self.discount_rate),
            "terminal_growth_rate": str(self.terminal_growth_rate),
            "free_cash_flow_after_5yrs_conservative_growth": str(
                self.free_cash_flow_after_5yrs_conservative_growth
            ),
            "free_cash_flow_after_5yrs_aggressive_growth": str(
                self.free_cash_flow_after_5yrs_aggressive_growth
            ),
            "terminal_value": str(self.terminal_value),
            "terminal_value_aggressive_growth": str(self.terminal_value_aggressive_growth),
            "terminal_value_adjusted_for_net_cash": str(self.terminal_value_adjusted_for_net_cash),
            "terminal_value_aggressive_growth_adjusted_for_net_cash": str(
                self.terminal_value_aggressive_growth_adjusted_for_net_cash
            ),
            "dcf_target_per_share_price_adjusted_for_net_cash": str(
                self.dcf_target_per_share_price_adjusted_for_net_cash
            ),
            "dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash": str(
                self.dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash
            ),
            "upside_potential": str(self.upside_potential),
            "is_undervalued": self.is_undervalued,
            "validation_warnings": list(self.validation_warnings),
        }


# =============================================================================
# MAIN VALUATOR CLASS
# =============================================================================

class StockValuator:
    """
    Runs the valuation pipeline for one symbol.

    Stages run in a fixed order and fill a StockValuation field by field.
    Any failed checkpoint raises a ValuationError and the partial record
    is discarded.

    Usage:
        valuator = StockValuator(VALUATION_CONFIG.with_max_growth_rate("0.10"))
        valuation = valuator.value(collection_result, name="Apple Inc.")
    """

    def __init__(self, config: ValuationConfig = VALUATION_CONFIG):
        self.config = config.validate()
        self.aggregator = FundamentalsAggregator(self.config)
        self.fcf_calculator = FreeCashFlowCalculator()
        self.growth_estimator = GrowthRateEstimator(self.config)
        self.projector = DCFProjector(self.config)
        self.quote_validator = QuoteValidator()
        self.balance_sheet_validator = BalanceSheetValidator()
        self.aggregate_validator = AggregateValidator()
        self.logger = LOGGER

    def value(
        self,
        collection: CollectionResult,
        name: str = "",
        sector: Optional[str] = None,
        industry: Optional[str] = None,
    ) -> StockValuation:
        """
        Value a symbol from its collected quote and quarterly series.

        Args:
            collection: CollectionResult from the DataCollector
            name: Company name (informational)
            sector: Sector (informational)
            industry: Industry (informational)

        Returns:
            Fully populated StockValuation

        Raises:
            ValuationError: With the symbol attached, on any checkpoint failure
        """
        try:
            with localcontext(DECIMAL_CONTEXT):
                return self._value(collection, name, sector, industry)
        except ValuationError as e:
            raise e.for_symbol(collection.symbol)

    def _value(
        self,
        collection: CollectionResult,
        name: str,
        sector: Optional[str],
        industry: Optional[str],
    ) -> StockValuation:
        symbol = collection.symbol
        quote = collection.quote
        report = ValidationReport(symbol=symbol)

        result = StockValuation(
            symbol=symbol,
            name=name or quote.company_name or symbol,
            sector=sector,
            industry=industry,
            discount_rate=self.config.discount_rate,
            terminal_growth_rate=self.config.terminal_growth_rate,
        )

        # Step 1: Quote
        result.price = quote.price
        result.volume = quote.volume
        result.market_capitalization = quote.market_cap
        result.shares_outstanding = self.quote_validator.validate(quote.price, quote.market_cap)

        # Step 2: History, checked before any quarter is read
        quarters = build_quarterly_series(
            collection.fundamentals, collection.cash_flow, self.config.quarters_required
        )

        # Step 3: Balance sheet snapshot from the most recent quarter
        latest = collection.latest_fundamentals
        result.cash = latest.cash
        result.debt = latest.debt
        self.balance_sheet_validator.validate(result.cash, result.debt, report)

        # Step 4: Aggregate quarters into annual buckets
        aggregated = self.aggregator.aggregate(quarters)
        self.aggregate_validator.validate(aggregated, report)

        result.ebit_3yr_average = aggregated.ebit_3yr_average
        result.depreciation_3yr_average = aggregated.depreciation_3yr_average
        result.capital_expenditures_3yr_average = aggregated.capex_3yr_average
        result.ebit_current_year = aggregated.current.ebit
        result.depreciation_current_year = aggregated.current.depreciation_amortization
        result.capital_expenditures_current_year = aggregated.current.capital_expenditure

        # Step 5: Free cash flow
        fcf = self.fcf_calculator.calculate(aggregated)
        result.free_cashflow_by_year = fcf.by_year
        result.free_cashflow_current_year = fcf.fcf_current_year
        result.free_cashflow_3yr_average = fcf.fcf_3yr_average

        # Step 6: Growth
        growth = self.growth_estimator.estimate(fcf)
        result.recent_average_fcf_growth_rate = growth.recent_average
        result.recent_average_fcf_conservative_growth_rate = growth.conservative

        # Step 7: DCF, both paths at the conservative rate
        conservative = self.projector.project(
            fcf.fcf_3yr_average, growth.conservative, result.net_cash, result.shares_outstanding
        )
        aggressive = self.projector.project(
            fcf.fcf_current_year, growth.conservative, result.net_cash, result.shares_outstanding
        )

        result.free_cash_flow_after_5yrs_conservative_growth = conservative.fcf_after_projection
        result.free_cash_flow_after_5yrs_aggressive_growth = aggressive.fcf_after_projection
        result.terminal_value = conservative.terminal_value
        result.terminal_value_aggressive_growth = aggressive.terminal_value
        result.terminal_value_adjusted_for_net_cash = conservative.terminal_value_adjusted
        result.terminal_value_aggressive_growth_adjusted_for_net_cash = aggressive.terminal_value_adjusted
        result.dcf_target_per_share_price_adjusted_for_net_cash = conservative.target_per_share
        result.dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash = (
            aggressive.target_per_share
        )

        # Step 8: Verdict from the conservative path only
        verdict = ValuationVerdict.from_values(
            conservative.terminal_value_adjusted, result.market_capitalization
        )
        result.is_undervalued = verdict.is_undervalued
        result.upside_potential = verdict.upside_potential

        result.validation_warnings = list(report.warnings)

        self.logger.info(
            f"{symbol}: target ${float(result.dcf_target_per_share_price_adjusted_for_net_cash):,.2f} "
            f"vs price ${float(result.price):,.2f}, upside {float(result.upside_potential):.1%}"
        )
        return result


# =============================================================================
# CONVENIENCE FUNCTION
# =============================================================================

def value_stock(
    collection: CollectionResult,
    name: str = "",
    config: ValuationConfig = VALUATION_CONFIG,
) -> StockValuation:
    """
    Convenience function for a single valuation.

    Args:
        collection: CollectionResult from the DataCollector
        name: Company name
        config: Valuation assumptions

    Returns:
        StockValuation
    """
    return StockValuator(config).value(collection, name=name)


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    "free_cash_flow",
    "conservative_growth_rate",
    "FreeCashFlowMetrics",
    "FreeCashFlowCalculator",
    "GrowthRateAnalysis",
    "GrowthRateEstimator",
    "TerminalValueCalculation",
    "DCFProjection",
    "DCFProjector",
    "ValuationVerdict",
    "StockValuation",
    "StockValuator",
    "value_stock",
]
