"""
Configuration Module - Valuation Screener
Value Screener

Centralizes configuration constants, provider field mappings, valuation
assumptions, retry settings and report options for the screening pipeline.

Valuation assumptions:
    Discount Rate:               8%  (30-year Treasury yield less expected inflation)
    Terminal Growth Rate:        5%
    Max Conservative Growth:     15% (overridable at invocation time)
    Aggressive Growth Threshold: 30% (growth above this is replaced by the cap)

Version: 1.0.0
"""

from __future__ import annotations

import os
import logging
from pathlib import Path
from dataclasses import dataclass, replace
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Dict, Tuple
from enum import Enum


# =============================================================================
# DIRECTORY CONFIGURATION
# =============================================================================

PROJECT_ROOT = Path(__file__).parent.parent.absolute()
OUTPUT_DIR = PROJECT_ROOT / "outputs"
ERROR_LOG_FILENAME = "errors.log"


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Configure and return a logger instance with professional formatting."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def attach_error_log(path: Path, logger: logging.Logger = None) -> logging.FileHandler:
    """
    Append WARNING and ERROR records of the screener logger to a file.

    Args:
        path: Log file path (created along with its parent directory)
        logger: Logger to attach to (defaults to LOGGER)

    Returns:
        The attached FileHandler, so callers can detach it
    """
    logger = logger or LOGGER
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    for existing in logger.handlers:
        if isinstance(existing, logging.FileHandler) and Path(existing.baseFilename) == path.absolute():
            return existing

    handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    handler.setLevel(logging.WARNING)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    return handler


LOGGER = setup_logger("ValueScreener")


# =============================================================================
# ENUMERATIONS
# =============================================================================

class FailureReason(Enum):
    """Reason codes for a symbol that could not be valued."""
    MISSING_QUOTE = "MissingQuote"
    ZERO_PRICE = "ZeroPrice"
    ZERO_MARKET_CAP = "ZeroMarketCap"
    ZERO_SHARES = "ZeroShares"
    INSUFFICIENT_HISTORY = "InsufficientHistory"
    ZERO_CASH = "ZeroCash"
    ZERO_EBIT_3YR = "ZeroEbit3Yr"
    ZERO_DEPRECIATION_3YR = "ZeroDepreciation3Yr"
    ZERO_CAPEX_3YR = "ZeroCapEx3Yr"
    UNDEFINED_GROWTH_RATE = "UndefinedGrowthRate"
    UNDEFINED_TERMINAL_VALUE = "UndefinedTerminalValue"
    DATA_UNAVAILABLE = "DataUnavailable"
    MISSING_FIELD = "MissingField"
    INVALID_INPUT = "InvalidInput"
    INVALID_CONFIGURATION = "InvalidConfiguration"
    UNEXPECTED_FAILURE = "UnexpectedFailure"


class DataSource(Enum):
    """Independently retrieved provider data series."""
    QUOTE = "quote"
    FUNDAMENTALS = "fundamentals"
    CASH_FLOW = "cash_flow"


# =============================================================================
# IEX CLOUD FIELD MAPPINGS
# =============================================================================

# Quote price fields in order of precedence (first non-null wins)
QUOTE_PRICE_FIELDS: Tuple[str, ...] = (
    "close",
    "iexClose",
    "latestPrice",
)

# Quote: IEX Cloud field names -> standardized names
QUOTE_FIELD_MAP: Dict[str, str] = {
    "marketCap": "market_cap",
    "avgTotalVolume": "volume",
    "companyName": "company_name",
}

# Quarterly fundamentals: IEX Cloud field names -> standardized names
FUNDAMENTALS_FIELD_MAP: Dict[str, str] = {
    # Earnings
    "ebitReported": "ebit_reported",

    # Cash components
    "assetsCurrentCash": "assets_current_cash",
    "cashLongTerm": "cash_long_term",
    "cashOperating": "cash_operating",

    # Debt components
    "liabilitiesNonCurrentDebt": "liabilities_non_current_debt",
    "debtShortTerm": "debt_short_term",
    "debtFinancial": "debt_financial",

    # Depreciation and amortization (reported on two statements)
    "depreciationAndAmortizationCashFlow": "depreciation_amortization_cash_flow",
    "expensesDepreciationAndAmortization": "expenses_depreciation_amortization",
}

# Quarterly cash flow: IEX Cloud field names -> standardized names
CASHFLOW_FIELD_MAP: Dict[str, str] = {
    "capitalExpenditures": "capital_expenditures",
}

# Fundamentals fields required on every quarter; the cash and debt
# components are only required on the most recent quarter
FUNDAMENTALS_QUARTERLY_FIELDS: Tuple[str, ...] = (
    "ebitReported",
    "depreciationAndAmortizationCashFlow",
    "expensesDepreciationAndAmortization",
)

# Fiscal period identifier, present on both quarterly series
FISCAL_DATE_FIELDS: Tuple[str, ...] = ("fiscalDate", "reportDate")


# =============================================================================
# VALUATION CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ValuationConfig:
    """Valuation assumptions consumed by the DCF engine."""

    # Rate at which future cash flows are discounted
    discount_rate: Decimal = Decimal("0.08")

    # Perpetual growth rate applied in the terminal value
    terminal_growth_rate: Decimal = Decimal("0.05")

    # Ceiling for the conservative growth projection
    max_conservative_growth_rate: Decimal = Decimal("0.15")

    # Recent growth above this is considered too aggressive to halve
    aggressive_growth_threshold: Decimal = Decimal("0.30")

    # Forward projection horizon before the terminal value
    projection_years: int = 5

    # 3 years x 4 quarters
    quarters_required: int = 12
    quarters_per_year: int = 4

    # Fixed-point precision for projected currency figures
    currency_precision: Decimal = Decimal("0.01")

    @property
    def years_of_history(self) -> int:
        """Number of annual buckets built from the quarterly history."""
        return self.quarters_required // self.quarters_per_year

    def with_max_growth_rate(self, rate) -> "ValuationConfig":
        """
        Return a copy with a different conservative growth cap.

        Raises:
            ConfigurationError: If the rate is not a number
        """
        from .exceptions import ConfigurationError

        try:
            cap = Decimal(str(rate).strip())
        except InvalidOperation:
            raise ConfigurationError(f"Max growth rate is not a number: {rate!r}")
        return replace(self, max_conservative_growth_rate=cap)

    def validate(self) -> "ValuationConfig":
        """
        Check the configuration before any symbol is processed.

        A growth cap of zero projects no growth at all; a negative cap
        would turn positive recent growth into a projected decline and is
        rejected.

        Raises:
            ConfigurationError: If a rate is not finite or the cap is negative
            UndefinedTerminalValueError: If discount rate <= terminal growth rate
            ValueError: If the quarter counts do not form whole years
        """
        from .exceptions import ConfigurationError, UndefinedTerminalValueError

        rates = {
            "discount_rate": self.discount_rate,
            "terminal_growth_rate": self.terminal_growth_rate,
            "max_conservative_growth_rate": self.max_conservative_growth_rate,
            "aggressive_growth_threshold": self.aggressive_growth_threshold,
        }
        for name, value in rates.items():
            if not value.is_finite():
                raise ConfigurationError(f"{name} must be a finite number, got {value}")

        if self.max_conservative_growth_rate < 0:
            raise ConfigurationError(
                f"max_conservative_growth_rate must not be negative, "
                f"got {self.max_conservative_growth_rate}"
            )
        if self.discount_rate <= self.terminal_growth_rate:
            raise UndefinedTerminalValueError(
                self.discount_rate, self.terminal_growth_rate
            )
        if self.quarters_per_year <= 0 or self.quarters_required % self.quarters_per_year:
            raise ValueError(
                f"quarters_required ({self.quarters_required}) must be a multiple "
                f"of quarters_per_year ({self.quarters_per_year})"
            )
        if self.years_of_history != 3:
            raise ValueError("The growth estimate needs exactly three annual buckets")
        return self


# Arithmetic context for every valuation, independent of the caller's context
DECIMAL_CONTEXT = Context(prec=28, rounding=ROUND_HALF_EVEN)


# =============================================================================
# API CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class IEXCloudConfig:
    """IEX Cloud API configuration."""

    api_token: str = os.getenv("IEX_CLOUD_API_TOKEN", "")
    base_url: str = "https://api.iex.cloud/v1/data"
    request_timeout: int = 30

    # Politeness delay after every request
    request_delay_seconds: float = 0.05

    # Backoff when the provider answers "Too many requests"
    rate_limit_backoff_seconds: float = 1.0
    max_attempts: int = 5


# =============================================================================
# REPORT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ReportConfig:
    """CSV report configuration."""

    filename_template: str = "{date}-data{suffix}.csv"
    date_format: str = "%Y-%m-%d"
    max_save_attempts: int = 10
    save_retry_seconds: float = 1.0

    # Currency columns are reported in thousands
    thousands_scale: Decimal = Decimal("1000")
    thousands_suffix: str = " (000s)"


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

VALUATION_CONFIG = ValuationConfig()
IEX_CLOUD_CONFIG = IEXCloudConfig()
REPORT_CONFIG = ReportConfig()
