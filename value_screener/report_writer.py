"""
Report Writer Module - CSV Screening Report
Value Screener

Renders valued symbols as a formatted table and writes it to a dated CSV
file in the output directory.

Column groups:
    Core:         always present
    All columns:  sector/industry, share count/volume, EBIT/depreciation/
                  capex components, terminal growth and discount rates
    Yahoo links:  quote, financials, cash-flow and balance-sheet pages

Formatting:
    Currency totals are reported in thousands with a " (000s)" header
    suffix. Per-share values and prices keep two decimals. Rates are
    rendered as percentages.

Output file:
    {YYYY-MM-DD}-data{n}.csv, where n is empty on the first attempt and
    1, 2, ... on later attempts after a write failure.

Version: 1.0.0
"""

from __future__ import annotations

import re
import time
from datetime import date
from pathlib import Path
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

import pandas as pd

from .config import LOGGER, OUTPUT_DIR, REPORT_CONFIG, ReportConfig
from .dcf_valuator import StockValuation


__version__ = "1.0.0"


# =============================================================================
# FORMATTING HELPERS
# =============================================================================

_CAMEL_BOUNDARY = re.compile(
    r"(?<=[a-z])(?=[A-Z0-9])"      # lower -> upper or digit
    r"|(?<=[A-Z])(?=[A-Z][a-z])"   # end of an acronym
    r"|(?<=[A-Z])(?=[0-9])"        # acronym -> digit
)


def split_camel_case(label: str, thousands: bool = False) -> str:
    """
    Turn a camelCase label into a spaced header.

    >>> split_camel_case("FreeCashflow3YrAverage", thousands=True)
    'Free Cashflow 3Yr Average (000s)'
    """
    header = _CAMEL_BOUNDARY.sub(" ", label).strip()
    if thousands:
        header += REPORT_CONFIG.thousands_suffix
    return header


def format_currency(value: Decimal, decimals: int = 2) -> str:
    """Format value as currency ("-$1,234.50" for negatives)."""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.{decimals}f}"


def format_thousands(value: Decimal, currency: bool = True) -> str:
    """Format value in thousands with no decimals."""
    scaled = value / REPORT_CONFIG.thousands_scale
    if currency:
        return format_currency(scaled, decimals=0)
    return f"{scaled:,.0f}"


def format_percent(value: Decimal, decimals: int = 2) -> str:
    """Format ratio as percentage."""
    return f"{value * 100:,.{decimals}f}%"


def format_text(value: Optional[str]) -> str:
    """Plain text cell; commas are replaced so values stay in one field."""
    if value is None:
        return ""
    return value.replace(",", " ")


# =============================================================================
# COLUMN DEFINITIONS
# =============================================================================

CORE = "core"
ALL_COLUMNS = "all"
YAHOO_LINKS = "links"


@dataclass(frozen=True)
class ReportColumn:
    """One report column: header label, group and cell renderer."""

    label: str
    group: str
    render: Callable[[StockValuation], str]
    thousands: bool = False

    @property
    def header(self) -> str:
        return split_camel_case(self.label, self.thousands)


def _money(attribute: str) -> Callable[[StockValuation], str]:
    return lambda v: format_thousands(getattr(v, attribute))


def _per_share(attribute: str) -> Callable[[StockValuation], str]:
    return lambda v: format_currency(getattr(v, attribute))


def _rate(attribute: str, decimals: int) -> Callable[[StockValuation], str]:
    return lambda v: format_percent(getattr(v, attribute), decimals)


REPORT_COLUMNS: List[ReportColumn] = [
    ReportColumn("UpsidePotential", CORE, _rate("upside_potential", 0)),
    ReportColumn("Symbol", CORE, lambda v: v.symbol),
    ReportColumn("Name", CORE, lambda v: format_text(v.name)),
    ReportColumn("Sector", ALL_COLUMNS, lambda v: format_text(v.sector)),
    ReportColumn("Industry", ALL_COLUMNS, lambda v: format_text(v.industry)),
    ReportColumn("Price", CORE, _per_share("price")),
    ReportColumn(
        "SharesOutstanding", ALL_COLUMNS,
        lambda v: format_thousands(v.shares_outstanding, currency=False), thousands=True,
    ),
    ReportColumn(
        "Volume", ALL_COLUMNS,
        lambda v: format_thousands(v.volume, currency=False), thousands=True,
    ),
    ReportColumn("MarketCapitalization", CORE, _money("market_capitalization"), thousands=True),
    ReportColumn("Cash", CORE, _money("cash"), thousands=True),
    ReportColumn("Debt", CORE, _money("debt"), thousands=True),
    ReportColumn("NetCash", CORE, _money("net_cash"), thousands=True),

    # Components
    ReportColumn("EBITCurrentYear", ALL_COLUMNS, _money("ebit_current_year"), thousands=True),
    ReportColumn("EBIT3YrAverage", ALL_COLUMNS, _money("ebit_3yr_average"), thousands=True),
    ReportColumn(
        "DepreciationCurrentYear", ALL_COLUMNS,
        _money("depreciation_current_year"), thousands=True,
    ),
    ReportColumn(
        "Depreciation3YrAverage", ALL_COLUMNS,
        _money("depreciation_3yr_average"), thousands=True,
    ),
    ReportColumn(
        "CapitalExpendituresCurrentYear", ALL_COLUMNS,
        _money("capital_expenditures_current_year"), thousands=True,
    ),
    ReportColumn(
        "CapitalExpenditures3YrAverage", ALL_COLUMNS,
        _money("capital_expenditures_3yr_average"), thousands=True,
    ),

    # Free cash flow and growth
    ReportColumn(
        "FreeCashflowCurrentYear", CORE, _money("free_cashflow_current_year"), thousands=True,
    ),
    ReportColumn(
        "FreeCashflow3YrAverage", CORE, _money("free_cashflow_3yr_average"), thousands=True,
    ),
    ReportColumn(
        "FreeCashflow3YrAveragePerShare", CORE,
        _per_share("free_cashflow_3yr_average_per_share"),
    ),
    ReportColumn("RecentAverageFCFGrowthRate", CORE, _rate("recent_average_fcf_growth_rate", 2)),
    ReportColumn(
        "RecentAverageFCFConservativeGrowthRate", CORE,
        _rate("recent_average_fcf_conservative_growth_rate", 2),
    ),
    ReportColumn(
        "FreeCashFlowAfter5YrsConservativeGrowth", CORE,
        _money("free_cash_flow_after_5yrs_conservative_growth"), thousands=True,
    ),
    ReportColumn(
        "FreeCashFlowAfter5YrsAggressiveGrowth", CORE,
        _money("free_cash_flow_after_5yrs_aggressive_growth"), thousands=True,
    ),

    # Assumptions
    ReportColumn("TerminalGrowthRate", ALL_COLUMNS, _rate("terminal_growth_rate", 0)),
    ReportColumn("DiscountRate", ALL_COLUMNS, _rate("discount_rate", 0)),

    # Terminal value and targets
    ReportColumn("TerminalValue", CORE, _money("terminal_value"), thousands=True),
    ReportColumn(
        "TerminalValueAggressiveGrowth", CORE,
        _money("terminal_value_aggressive_growth"), thousands=True,
    ),
    ReportColumn(
        "TerminalValueAdjustedForNetCash", CORE,
        _money("terminal_value_adjusted_for_net_cash"), thousands=True,
    ),
    ReportColumn(
        "TerminalValueAggressiveGrowthAdjustedForNetCash", CORE,
        _money("terminal_value_aggressive_growth_adjusted_for_net_cash"), thousands=True,
    ),
    ReportColumn(
        "DCFTargetPerSharePriceAdjustedForNetCash", CORE,
        _per_share("dcf_target_per_share_price_adjusted_for_net_cash"),
    ),
    ReportColumn(
        "DCFTargetPerSharePriceAggressiveGrowthAdjustedForNetCash", CORE,
        _per_share("dcf_target_per_share_price_aggressive_growth_adjusted_for_net_cash"),
    ),

    # Links
    ReportColumn("YahooFinanceQuote", YAHOO_LINKS, lambda v: v.yahoo_finance_quote),
    ReportColumn("YahooFinanceIncomeAnnual", YAHOO_LINKS, lambda v: v.yahoo_finance_income_annual),
    ReportColumn(
        "YahooFinanceCashFlowAnnual", YAHOO_LINKS, lambda v: v.yahoo_finance_cash_flow_annual,
    ),
    ReportColumn(
        "YahooFinanceBalanceSheetAnnual", YAHOO_LINKS,
        lambda v: v.yahoo_finance_balance_sheet_annual,
    ),
]


def select_columns(all_columns: bool = False, yahoo_links: bool = False) -> List[ReportColumn]:
    """Columns in report order for the requested options."""
    groups = {CORE}
    if all_columns:
        groups.add(ALL_COLUMNS)
    if yahoo_links:
        groups.add(YAHOO_LINKS)
    return [c for c in REPORT_COLUMNS if c.group in groups]


# =============================================================================
# REPORT WRITER
# =============================================================================

def build_report_frame(
    valuations: Sequence[StockValuation],
    all_columns: bool = False,
    yahoo_links: bool = False,
) -> pd.DataFrame:
    """
    Render valuations as a DataFrame of formatted strings.

    Rows keep the order in which the valuations are given.
    """
    columns = select_columns(all_columns, yahoo_links)
    rows = [[column.render(v) for column in columns] for v in valuations]
    return pd.DataFrame(rows, columns=[c.header for c in columns])


class ReportWriter:
    """
    Writes the screening report to a dated CSV file.

    Usage:
        writer = ReportWriter(output_dir=Path("outputs"))
        path = writer.write(valuations, all_columns=True)
    """

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        config: ReportConfig = REPORT_CONFIG,
    ):
        self.output_dir = Path(output_dir) if output_dir is not None else OUTPUT_DIR
        self.config = config
        self.logger = LOGGER

    def candidate_paths(self, report_date: Optional[date] = None) -> List[Path]:
        """File names to try, in order."""
        report_date = report_date or date.today()
        stamp = report_date.strftime(self.config.date_format)
        return [
            self.output_dir / self.config.filename_template.format(
                date=stamp, suffix=str(attempt) if attempt else ""
            )
            for attempt in range(self.config.max_save_attempts)
        ]

    def save(self, frame: pd.DataFrame, report_date: Optional[date] = None) -> Path:
        """
        Write a report frame to CSV.

        Returns:
            Path of the written file

        Raises:
            OSError: If every candidate file name failed
        """
        self.output_dir.mkdir(parents=True, exist_ok=True)

        last_error: Optional[OSError] = None
        for attempt, path in enumerate(self.candidate_paths(report_date)):
            if attempt:
                time.sleep(self.config.save_retry_seconds)
            try:
                frame.to_csv(path, index=False)
            except OSError as e:
                self.logger.warning(f"Could not write {path.name}: {e}")
                last_error = e
                continue

            self.logger.info(f"Saved screening report ({len(frame)} rows) to {path}")
            return path

        raise OSError(
            f"Could not write report after {self.config.max_save_attempts} attempts"
        ) from last_error

    def write(
        self,
        valuations: Sequence[StockValuation],
        all_columns: bool = False,
        yahoo_links: bool = False,
        report_date: Optional[date] = None,
    ) -> Path:
        frame = build_report_frame(valuations, all_columns, yahoo_links)
        return self.save(frame, report_date)


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    # Formatting
    "split_camel_case",
    "format_currency",
    "format_thousands",
    "format_percent",
    "format_text",
    # Columns
    "ReportColumn",
    "REPORT_COLUMNS",
    "select_columns",
    # Writer
    "build_report_frame",
    "ReportWriter",
]
