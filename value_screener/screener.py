"""
Screener Module - Batch Screening
Value Screener

Runs collection and valuation for every candidate in an input list.
A symbol that cannot be valued is logged with its reason code and skipped;
the batch always continues.

Input format (JSON array):
    [
        {"Symbol": "AAPL", "Name": "Apple Inc.", "Sector": "...", "Industry": "..."},
        ...
    ]

Version: 1.0.0
"""

from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Any, Sequence

import numpy as np

from .config import LOGGER, FailureReason
from .data_collector import DataCollector
from .dcf_valuator import StockValuation, StockValuator
from .exceptions import InputDataError, ValuationError


__version__ = "1.0.0"


# =============================================================================
# INPUT
# =============================================================================

@dataclass(frozen=True)
class ScreeningCandidate:
    """One entry of the input list."""

    symbol: str
    name: str = ""
    sector: Optional[str] = None
    industry: Optional[str] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ScreeningCandidate":
        return cls(
            symbol=str(record["Symbol"]).upper().strip(),
            name=str(record.get("Name") or ""),
            sector=record.get("Sector"),
            industry=record.get("Industry"),
        )


def load_candidates(path) -> List[ScreeningCandidate]:
    """
    Load screening candidates from a JSON file.

    Args:
        path: Path to a JSON array of objects with Symbol and Name

    Returns:
        Candidates in file order

    Raises:
        InputDataError: If the file cannot be read or is malformed
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise InputDataError(f"Cannot read input file: {e}", path=str(path)) from e
    except json.JSONDecodeError as e:
        raise InputDataError(f"Input file is not valid JSON: {e}", path=str(path)) from e

    if not isinstance(data, list):
        raise InputDataError("Input file must contain a JSON array", path=str(path))

    candidates = []
    for index, record in enumerate(data):
        if not isinstance(record, dict) or not record.get("Symbol"):
            raise InputDataError(f"Entry {index} has no Symbol", path=str(path))
        candidates.append(ScreeningCandidate.from_record(record))

    LOGGER.info(f"Loaded {len(candidates)} candidates from {path}")
    return candidates


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class ScreeningOutcome:
    """Result for one candidate: a valuation or a failure reason."""

    candidate: ScreeningCandidate
    valuation: Optional[StockValuation] = None
    failure_reason: Optional[FailureReason] = None
    failure_message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.valuation is not None


@dataclass
class ScreeningSummary:
    """Aggregate statistics for a screening run."""

    processed: int = 0
    valued: int = 0
    failed: int = 0
    undervalued: int = 0
    failures_by_reason: Dict[str, int] = field(default_factory=dict)
    median_upside: Optional[float] = None
    mean_upside: Optional[float] = None

    @classmethod
    def from_outcomes(cls, outcomes: Sequence[ScreeningOutcome]) -> "ScreeningSummary":
        valuations = [o.valuation for o in outcomes if o.succeeded]
        reasons = Counter(o.failure_reason.value for o in outcomes if not o.succeeded)
        upside = np.array([float(v.upside_potential) for v in valuations], dtype=float)

        return cls(
            processed=len(outcomes),
            valued=len(valuations),
            failed=len(outcomes) - len(valuations),
            undervalued=sum(1 for v in valuations if v.is_undervalued),
            failures_by_reason=dict(reasons),
            median_upside=float(np.median(upside)) if upside.size else None,
            mean_upside=float(np.mean(upside)) if upside.size else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "valued": self.valued,
            "failed": self.failed,
            "undervalued": self.undervalued,
            "failures_by_reason": dict(self.failures_by_reason),
            "median_upside": self.median_upside,
            "mean_upside": self.mean_upside,
        }


@dataclass
class ScreeningRunResult:
    """Complete result of a screening run."""

    outcomes: List[ScreeningOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def valuations(self) -> List[StockValuation]:
        return [o.valuation for o in self.outcomes if o.succeeded]

    @property
    def failures(self) -> List[ScreeningOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def summary(self) -> ScreeningSummary:
        return ScreeningSummary.from_outcomes(self.outcomes)


# =============================================================================
# SCREENER
# =============================================================================

class StockScreener:
    """
    Values each candidate in turn.

    Usage:
        screener = StockScreener(DataCollector(), StockValuator())
        run = screener.run(load_candidates("companies.json"))
    """

    def __init__(self, collector: DataCollector, valuator: Optional[StockValuator] = None):
        self.collector = collector
        self.valuator = valuator or StockValuator()
        self.logger = LOGGER

    def screen(self, candidate: ScreeningCandidate) -> ScreeningOutcome:
        """Collect and value one candidate; failures are returned, not raised."""
        try:
            collection = self.collector.collect(candidate.symbol)
            valuation = self.valuator.value(
                collection,
                name=candidate.name,
                sector=candidate.sector,
                industry=candidate.industry,
            )
        except ValuationError as e:
            self.logger.error(f"{candidate.symbol}:{e.reason.value} {e}")
            return ScreeningOutcome(
                candidate=candidate,
                failure_reason=e.reason,
                failure_message=str(e),
            )
        except Exception as e:
            self.logger.exception(
                f"{candidate.symbol}:{FailureReason.UNEXPECTED_FAILURE.value} {e}"
            )
            return ScreeningOutcome(
                candidate=candidate,
                failure_reason=FailureReason.UNEXPECTED_FAILURE,
                failure_message=str(e),
            )

        return ScreeningOutcome(candidate=candidate, valuation=valuation)

    def run(self, candidates: Sequence[ScreeningCandidate]) -> ScreeningRunResult:
        """
        Screen all candidates in order.

        Returns:
            ScreeningRunResult with one outcome per candidate
        """
        result = ScreeningRunResult()
        total = len(candidates)

        for index, candidate in enumerate(candidates, start=1):
            self.logger.info(f"[{index}/{total}] Screening {candidate.symbol}")
            result.outcomes.append(self.screen(candidate))

        result.finished_at = datetime.now()
        summary = result.summary
        self.logger.info(
            f"Screening complete: {summary.valued} valued, {summary.failed} failed, "
            f"{summary.undervalued} undervalued"
        )
        return result


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    "ScreeningCandidate",
    "load_candidates",
    "ScreeningOutcome",
    "ScreeningSummary",
    "ScreeningRunResult",
    "StockScreener",
]
