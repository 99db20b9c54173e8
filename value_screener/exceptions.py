"""Exceptions raised while screening a symbol.

Every per-symbol failure derives from ValuationError and carries a
FailureReason code. The screener catches these, logs them and moves on to
the next symbol. ConfigurationError and InputDataError are batch-level and
abort the run before any symbol is processed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from .config import DataSource, FailureReason


class ValuationError(Exception):
    """Base exception for a symbol that cannot be valued."""

    reason: FailureReason = FailureReason.UNEXPECTED_FAILURE

    def __init__(self, message: str, symbol: Optional[str] = None):
        super().__init__(message)
        self.symbol = symbol

    def for_symbol(self, symbol: str) -> "ValuationError":
        """Attach the symbol being processed, keeping any existing one."""
        if self.symbol is None:
            self.symbol = symbol
        return self


# ============================================================================
# Quote errors
# ============================================================================


class MissingQuoteError(ValuationError):
    """No usable price field in the quote payload."""

    reason = FailureReason.MISSING_QUOTE


class ZeroPriceError(ValuationError):
    """Price is zero (or not positive)."""

    reason = FailureReason.ZERO_PRICE


class ZeroMarketCapError(ValuationError):
    """Market capitalization is zero (or not positive)."""

    reason = FailureReason.ZERO_MARKET_CAP


class ZeroSharesError(ValuationError):
    """Derived share count is zero."""

    reason = FailureReason.ZERO_SHARES


# ============================================================================
# Provider record errors
# ============================================================================


class MissingFieldError(ValuationError):
    """A required provider field is null, absent or not numeric."""

    reason = FailureReason.MISSING_FIELD

    def __init__(
        self,
        source: DataSource,
        field_name: str,
        quarter: int,
        symbol: Optional[str] = None,
    ):
        super().__init__(
            f"{source.value} quarter {quarter} has no value for {field_name}",
            symbol=symbol,
        )
        self.source = source
        self.field_name = field_name
        self.quarter = quarter


class InsufficientHistoryError(ValuationError):
    """Fewer quarterly records than required for one data source."""

    reason = FailureReason.INSUFFICIENT_HISTORY

    def __init__(
        self,
        source: DataSource,
        required: int,
        available: int,
        symbol: Optional[str] = None,
    ):
        super().__init__(
            f"{source.value} has {available} quarterly records, {required} required "
            f"(less than {required // 4} years of data)",
            symbol=symbol,
        )
        self.source = source
        self.required = required
        self.available = available


# ============================================================================
# Zero aggregate errors (treated as missing data)
# ============================================================================


class ZeroMetricError(ValuationError):
    """A required aggregate is exactly zero."""

    metric: str = ""

    def __init__(self, symbol: Optional[str] = None):
        super().__init__(f"{self.metric} is zero", symbol=symbol)


class ZeroCashError(ZeroMetricError):
    reason = FailureReason.ZERO_CASH
    metric = "cash"


class ZeroEbit3YrError(ZeroMetricError):
    reason = FailureReason.ZERO_EBIT_3YR
    metric = "total_ebit_3yr"


class ZeroDepreciation3YrError(ZeroMetricError):
    reason = FailureReason.ZERO_DEPRECIATION_3YR
    metric = "total_depreciation_3yr"


class ZeroCapEx3YrError(ZeroMetricError):
    reason = FailureReason.ZERO_CAPEX_3YR
    metric = "total_capex_3yr"


# ============================================================================
# Computation errors
# ============================================================================


class UndefinedGrowthRateError(ValuationError):
    """Year-over-year growth divides by a zero annual FCF."""

    reason = FailureReason.UNDEFINED_GROWTH_RATE

    def __init__(self, transition: str, symbol: Optional[str] = None):
        super().__init__(
            f"FCF growth for {transition} is undefined (prior year FCF is zero)",
            symbol=symbol,
        )
        self.transition = transition


class ConfigurationError(Exception):
    """Invalid global configuration; fatal for the whole run."""

    reason: FailureReason = FailureReason.INVALID_CONFIGURATION


class UndefinedTerminalValueError(ConfigurationError):
    """Discount rate is not strictly greater than the terminal growth rate."""

    reason = FailureReason.UNDEFINED_TERMINAL_VALUE

    def __init__(self, discount_rate: Decimal, terminal_growth_rate: Decimal):
        super().__init__(
            f"Discount rate ({discount_rate}) must exceed terminal growth rate "
            f"({terminal_growth_rate})"
        )
        self.discount_rate = discount_rate
        self.terminal_growth_rate = terminal_growth_rate


# ============================================================================
# Collaborator errors
# ============================================================================


class DataUnavailableError(ValuationError):
    """Provider request failed or retries were exhausted."""

    reason = FailureReason.DATA_UNAVAILABLE

    def __init__(
        self,
        message: str,
        source: Optional[DataSource] = None,
        symbol: Optional[str] = None,
    ):
        super().__init__(message, symbol=symbol)
        self.source = source


class InputDataError(Exception):
    """Batch input file is unreadable or malformed; fatal for the run."""

    reason = FailureReason.INVALID_INPUT

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
