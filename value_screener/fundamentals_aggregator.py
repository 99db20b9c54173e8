"""
Fundamentals Aggregator Module - Quarterly to Annual Reduction
Value Screener

Reduces twelve quarters of fundamentals into three consecutive annual
buckets and 3-year totals for EBIT, depreciation and capital expenditure.

Quarter ordering:
    Index 0 is the most recent quarter; indices increase going back in time.

    Bucket 0 (oldest year)  = quarters 8-11
    Bucket 1 (middle year)  = quarters 4-7
    Bucket 2 (current year) = quarters 0-3

Sign normalization:
    Depreciation/amortization and capital expenditure are absolute-valued
    per quarter before summing. EBIT is summed as reported.

Version: 1.0.0
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Sequence, Tuple, Any

from .config import VALUATION_CONFIG, ValuationConfig, DataSource
from .data_collector import CashFlowReport, FundamentalsReport
from .exceptions import InsufficientHistoryError


__version__ = "1.0.0"

ZERO = Decimal("0")


# =============================================================================
# DATA CONTAINERS
# =============================================================================

@dataclass(frozen=True)
class QuarterlyFundamentals:
    """Normalized fundamentals for one fiscal quarter."""

    ebit: Decimal
    depreciation_amortization: Decimal
    capital_expenditure: Decimal

    @classmethod
    def from_reports(
        cls,
        fundamentals: FundamentalsReport,
        cash_flow: CashFlowReport,
    ) -> "QuarterlyFundamentals":
        """
        Combine one quarter of both provider series.

        D&A is reported on the cash flow statement and the expense
        statement; both are absolute-valued and summed.
        """
        return cls(
            ebit=fundamentals.ebit_reported,
            depreciation_amortization=(
                abs(fundamentals.depreciation_amortization_cash_flow)
                + abs(fundamentals.expenses_depreciation_amortization)
            ),
            capital_expenditure=abs(cash_flow.capital_expenditures),
        )


@dataclass(frozen=True)
class AnnualBucket:
    """Sum of four consecutive quarters."""

    ebit: Decimal = ZERO
    depreciation_amortization: Decimal = ZERO
    capital_expenditure: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ebit": str(self.ebit),
            "depreciation_amortization": str(self.depreciation_amortization),
            "capital_expenditure": str(self.capital_expenditure),
        }


@dataclass(frozen=True)
class AggregatedFundamentals:
    """Annual buckets plus 3-year totals."""

    oldest: AnnualBucket
    middle: AnnualBucket
    current: AnnualBucket

    total_ebit: Decimal
    total_depreciation: Decimal
    total_capex: Decimal

    years: int = 3

    @property
    def buckets(self) -> Tuple[AnnualBucket, AnnualBucket, AnnualBucket]:
        """Buckets ordered oldest to current."""
        return (self.oldest, self.middle, self.current)

    @property
    def ebit_3yr_average(self) -> Decimal:
        return self.total_ebit / self.years

    @property
    def depreciation_3yr_average(self) -> Decimal:
        return self.total_depreciation / self.years

    @property
    def capex_3yr_average(self) -> Decimal:
        return self.total_capex / self.years

    def to_dict(self) -> Dict[str, Any]:
        return {
            "oldest": self.oldest.to_dict(),
            "middle": self.middle.to_dict(),
            "current": self.current.to_dict(),
            "total_ebit": str(self.total_ebit),
            "total_depreciation": str(self.total_depreciation),
            "total_capex": str(self.total_capex),
        }


# =============================================================================
# SERIES ASSEMBLY
# =============================================================================

def build_quarterly_series(
    fundamentals: Sequence[FundamentalsReport],
    cash_flow: Sequence[CashFlowReport],
    quarters_required: int = VALUATION_CONFIG.quarters_required,
) -> List[QuarterlyFundamentals]:
    """
    Zip the two provider series into normalized quarterly records.

    The series are retrieved independently, so each is checked on its own
    before they are combined. Only the most recent quarters_required
    records of each are used.

    Raises:
        InsufficientHistoryError: Once for the first short series
    """
    if len(fundamentals) < quarters_required:
        raise InsufficientHistoryError(
            DataSource.FUNDAMENTALS, quarters_required, len(fundamentals)
        )
    if len(cash_flow) < quarters_required:
        raise InsufficientHistoryError(
            DataSource.CASH_FLOW, quarters_required, len(cash_flow)
        )

    return [
        QuarterlyFundamentals.from_reports(f, c)
        for f, c in zip(fundamentals[:quarters_required], cash_flow[:quarters_required])
    ]


# =============================================================================
# AGGREGATOR
# =============================================================================

class FundamentalsAggregator:
    """
    Reduces quarterly fundamentals into annual buckets.

    Usage:
        aggregator = FundamentalsAggregator()
        aggregated = aggregator.aggregate(quarters)
    """

    def __init__(self, config: ValuationConfig = VALUATION_CONFIG):
        self.config = config

    def aggregate(self, quarters: Sequence[QuarterlyFundamentals]) -> AggregatedFundamentals:
        """
        Aggregate exactly quarters_required records, most recent first.

        Args:
            quarters: Normalized quarterly records

        Returns:
            AggregatedFundamentals with oldest/middle/current buckets

        Raises:
            InsufficientHistoryError: If fewer records are supplied
            ValueError: If more records are supplied
        """
        required = self.config.quarters_required
        if len(quarters) < required:
            raise InsufficientHistoryError(DataSource.FUNDAMENTALS, required, len(quarters))
        if len(quarters) > required:
            raise ValueError(f"Expected exactly {required} quarters, got {len(quarters)}")

        per_year = self.config.quarters_per_year
        buckets = [
            self._bucket(quarters[start:start + per_year])
            for start in range(0, required, per_year)
        ]
        # Slices were taken newest first
        current, middle, oldest = buckets

        return AggregatedFundamentals(
            oldest=oldest,
            middle=middle,
            current=current,
            total_ebit=sum((q.ebit for q in quarters), ZERO),
            total_depreciation=sum((abs(q.depreciation_amortization) for q in quarters), ZERO),
            total_capex=sum((abs(q.capital_expenditure) for q in quarters), ZERO),
            years=self.config.years_of_history,
        )

    @staticmethod
    def _bucket(quarters: Sequence[QuarterlyFundamentals]) -> AnnualBucket:
        return AnnualBucket(
            ebit=sum((q.ebit for q in quarters), ZERO),
            depreciation_amortization=sum(
                (abs(q.depreciation_amortization) for q in quarters), ZERO
            ),
            capital_expenditure=sum((abs(q.capital_expenditure) for q in quarters), ZERO),
        )


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    "QuarterlyFundamentals",
    "AnnualBucket",
    "AggregatedFundamentals",
    "FundamentalsAggregator",
    "build_quarterly_series",
]
