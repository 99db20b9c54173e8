"""
Data Validation Module - Valuation Checkpoints
Value Screener

Checkpoints applied while a StockValuation is being built. A failed
checkpoint raises and the symbol is discarded; a suspicious but usable
value is recorded as a warning and processing continues.

Checkpoints:
    Quote:          price > 0, market cap > 0, shares outstanding != 0
    Balance Sheet:  cash != 0; negative debt is a warning
    Aggregates:     3-year EBIT, depreciation and capex != 0;
                    negative depreciation or capex totals are warnings

Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Any

from .config import LOGGER
from .exceptions import (
    ZeroCapEx3YrError,
    ZeroCashError,
    ZeroDepreciation3YrError,
    ZeroEbit3YrError,
    ZeroMarketCapError,
    ZeroPriceError,
    ZeroSharesError,
)

if TYPE_CHECKING:
    from .fundamentals_aggregator import AggregatedFundamentals


__version__ = "1.0.0"

NEGATIVE_METRIC_WARNING = "NegativeMetricWarning"


# =============================================================================
# DATA CONTAINERS
# =============================================================================

@dataclass
class ValidationReport:
    """Warnings collected for one symbol."""

    symbol: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def warn_negative(self, metric: str, value: Decimal) -> None:
        """Record a negative total that is expected to be non-negative."""
        message = f"{metric} is negative ({value})... Check data consistency"
        self.warnings.append(message)
        LOGGER.warning(f"{self.symbol}: [{NEGATIVE_METRIC_WARNING}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "warnings": list(self.warnings),
        }


# =============================================================================
# CHECKPOINTS
# =============================================================================

class QuoteValidator:
    """Validates quote-derived denominators."""

    def validate(self, price: Decimal, market_cap: Decimal) -> Decimal:
        """
        Check price and market cap and derive shares outstanding.

        Returns:
            Shares outstanding (market cap / price)

        Raises:
            ZeroPriceError, ZeroMarketCapError, ZeroSharesError
        """
        if price <= 0:
            raise ZeroPriceError(f"Price is not positive ({price})")
        if market_cap <= 0:
            raise ZeroMarketCapError(f"Market cap is not positive ({market_cap})")

        shares_outstanding = market_cap / price
        if shares_outstanding == 0:
            raise ZeroSharesError("Share count is zero")
        return shares_outstanding


class BalanceSheetValidator:
    """Validates the cash and debt snapshot."""

    def validate(self, cash: Decimal, debt: Decimal, report: ValidationReport) -> None:
        """
        Raises:
            ZeroCashError: If cash is exactly zero
        """
        if cash == 0:
            raise ZeroCashError()
        if debt < 0:
            report.warn_negative("debt", debt)


class AggregateValidator:
    """Validates 3-year totals before free cash flow is computed."""

    def validate(self, aggregated: AggregatedFundamentals, report: ValidationReport) -> None:
        """
        Raises:
            ZeroEbit3YrError, ZeroDepreciation3YrError, ZeroCapEx3YrError
        """
        if aggregated.total_ebit == 0:
            raise ZeroEbit3YrError()

        if aggregated.total_depreciation == 0:
            raise ZeroDepreciation3YrError()
        if aggregated.total_depreciation < 0:
            report.warn_negative("total_depreciation_3yr", aggregated.total_depreciation)

        if aggregated.total_capex == 0:
            raise ZeroCapEx3YrError()
        if aggregated.total_capex < 0:
            report.warn_negative("total_capex_3yr", aggregated.total_capex)


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    "NEGATIVE_METRIC_WARNING",
    "ValidationReport",
    "QuoteValidator",
    "BalanceSheetValidator",
    "AggregateValidator",
]
