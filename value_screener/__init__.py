"""
Value Screener - Terminal Value DCF Screening
=============================================

Screens a list of companies for undervaluation using a simplified
discounted cash flow model on three years of quarterly fundamentals.

Data Collection
- Point-in-time quote and 12 quarters of fundamentals and cash flow from IEX Cloud
- Rate-limit retry with politeness delay between calls

Valuation
- Quarterly to annual aggregation (3 buckets, 3-year totals)
- Free cash flow: EBIT - Depreciation + CapEx
- Recent FCF growth dampened to a conservative rate
- 5-year projection and Gordon Growth terminal value
- Net cash adjustment, per-share target and undervaluation verdict

Reporting
- Dated CSV report with optional extended columns and Yahoo Finance links
- Per-symbol failures logged with reason codes

Version: 1.0.0
"""

from .config import (
    # Configuration
    VALUATION_CONFIG,
    IEX_CLOUD_CONFIG,
    REPORT_CONFIG,
    ValuationConfig,
    IEXCloudConfig,
    ReportConfig,
    LOGGER,
    OUTPUT_DIR,
    PROJECT_ROOT,
    setup_logger,
    attach_error_log,

    # Enums
    FailureReason,
    DataSource,
)

from .exceptions import (
    ValuationError,
    MissingQuoteError,
    ZeroPriceError,
    ZeroMarketCapError,
    ZeroSharesError,
    MissingFieldError,
    InsufficientHistoryError,
    ZeroCashError,
    ZeroEbit3YrError,
    ZeroDepreciation3YrError,
    ZeroCapEx3YrError,
    UndefinedGrowthRateError,
    ConfigurationError,
    UndefinedTerminalValueError,
    DataUnavailableError,
    InputDataError,
)

from .data_collector import (
    StockQuote,
    FundamentalsReport,
    CashFlowReport,
    CollectionResult,
    RetryPolicy,
    IEXCloudClient,
    DataParser,
    DataCollector,
)

from .fundamentals_aggregator import (
    QuarterlyFundamentals,
    AnnualBucket,
    AggregatedFundamentals,
    FundamentalsAggregator,
    build_quarterly_series,
)

from .data_validator import (
    ValidationReport,
    QuoteValidator,
    BalanceSheetValidator,
    AggregateValidator,
)

from .dcf_valuator import (
    free_cash_flow,
    conservative_growth_rate,
    FreeCashFlowMetrics,
    FreeCashFlowCalculator,
    GrowthRateAnalysis,
    GrowthRateEstimator,
    TerminalValueCalculation,
    DCFProjection,
    DCFProjector,
    ValuationVerdict,
    StockValuation,
    StockValuator,
    value_stock,
)

from .report_writer import (
    split_camel_case,
    build_report_frame,
    ReportWriter,
)

from .screener import (
    ScreeningCandidate,
    load_candidates,
    ScreeningOutcome,
    ScreeningSummary,
    ScreeningRunResult,
    StockScreener,
)

__version__ = "1.0.0"

__all__ = [
    # Configuration
    "VALUATION_CONFIG",
    "IEX_CLOUD_CONFIG",
    "REPORT_CONFIG",
    "ValuationConfig",
    "IEXCloudConfig",
    "ReportConfig",
    "LOGGER",
    "OUTPUT_DIR",
    "PROJECT_ROOT",
    "setup_logger",
    "attach_error_log",
    "FailureReason",
    "DataSource",

    # Exceptions
    "ValuationError",
    "MissingQuoteError",
    "ZeroPriceError",
    "ZeroMarketCapError",
    "ZeroSharesError",
    "MissingFieldError",
    "InsufficientHistoryError",
    "ZeroCashError",
    "ZeroEbit3YrError",
    "ZeroDepreciation3YrError",
    "ZeroCapEx3YrError",
    "UndefinedGrowthRateError",
    "ConfigurationError",
    "UndefinedTerminalValueError",
    "DataUnavailableError",
    "InputDataError",

    # Data Collection
    "StockQuote",
    "FundamentalsReport",
    "CashFlowReport",
    "CollectionResult",
    "RetryPolicy",
    "IEXCloudClient",
    "DataParser",
    "DataCollector",

    # Aggregation
    "QuarterlyFundamentals",
    "AnnualBucket",
    "AggregatedFundamentals",
    "FundamentalsAggregator",
    "build_quarterly_series",

    # Checkpoints
    "ValidationReport",
    "QuoteValidator",
    "BalanceSheetValidator",
    "AggregateValidator",

    # Valuation
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

    # Reporting
    "split_camel_case",
    "build_report_frame",
    "ReportWriter",

    # Screening
    "ScreeningCandidate",
    "load_candidates",
    "ScreeningOutcome",
    "ScreeningSummary",
    "ScreeningRunResult",
    "StockScreener",

    # Version
    "__version__",
]
