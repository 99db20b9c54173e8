"""
Data Collector Module - Quote and Quarterly Fundamentals Acquisition
Value Screener

Retrieves the inputs of the valuation engine from IEX Cloud and adapts the
provider payloads into typed records at the boundary.

Features:
    - Point-in-time quote (price with fallback precedence, market cap, volume)
    - 12 quarters of fundamentals (EBIT, cash, debt, depreciation)
    - 12 quarters of cash flow (capital expenditure)
    - Explicit retry policy for rate-limited responses
    - Politeness delay between API calls

Data Source: IEX Cloud API
Endpoints:
    core/quote/{symbol}
    CORE/FUNDAMENTALS/{symbol}/quarterly?last=12
    CORE/CASH_FLOW/{symbol}/quarterly?last=12

Version: 1.0.0
"""

from __future__ import annotations

import time
import math
import requests
from datetime import datetime
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any

from .config import (
    IEX_CLOUD_CONFIG,
    VALUATION_CONFIG,
    LOGGER,
    DataSource,
    QUOTE_PRICE_FIELDS,
    FUNDAMENTALS_FIELD_MAP,
    CASHFLOW_FIELD_MAP,
    FUNDAMENTALS_QUARTERLY_FIELDS,
    FISCAL_DATE_FIELDS,
)
from .data_validator import QuoteValidator
from .exceptions import (
    DataUnavailableError,
    InsufficientHistoryError,
    MissingFieldError,
    MissingQuoteError,
    ValuationError,
)


__version__ = "1.0.0"

ZERO = Decimal("0")


# =============================================================================
# DATA CONTAINERS
# =============================================================================

@dataclass(frozen=True)
class StockQuote:
    """Point-in-time market data for a symbol."""

    price: Decimal
    market_cap: Decimal
    volume: Decimal = ZERO
    price_field: str = "close"
    company_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "price": str(self.price),
            "market_cap": str(self.market_cap),
            "volume": str(self.volume),
            "price_field": self.price_field,
            "company_name": self.company_name,
        }


@dataclass(frozen=True)
class FundamentalsReport:
    """One quarter of fundamentals, as reported (signs untouched)."""

    ebit_reported: Decimal = ZERO
    assets_current_cash: Decimal = ZERO
    cash_long_term: Decimal = ZERO
    cash_operating: Decimal = ZERO
    liabilities_non_current_debt: Decimal = ZERO
    debt_short_term: Decimal = ZERO
    debt_financial: Decimal = ZERO
    depreciation_amortization_cash_flow: Decimal = ZERO
    expenses_depreciation_amortization: Decimal = ZERO
    fiscal_date: Optional[str] = None

    @property
    def cash(self) -> Decimal:
        """Total cash across the three reported cash lines."""
        return self.assets_current_cash + self.cash_long_term + self.cash_operating

    @property
    def debt(self) -> Decimal:
        """
        Total debt as a magnitude.

        Each component is absolute-valued so that a negatively reported
        liability can never turn net cash positive through cash - debt.
        """
        return (
            abs(self.liabilities_non_current_debt)
            + abs(self.debt_short_term)
            + abs(self.debt_financial)
        )


@dataclass(frozen=True)
class CashFlowReport:
    """One quarter of cash flow data."""

    capital_expenditures: Decimal = ZERO
    fiscal_date: Optional[str] = None


@dataclass
class CollectionResult:
    """
    Complete result of a collection for one symbol.

    Holds the quote and both quarterly series, most recent quarter first.
    """

    symbol: str
    quote: StockQuote
    fundamentals: List[FundamentalsReport] = field(default_factory=list)
    cash_flow: List[CashFlowReport] = field(default_factory=list)

    # Metadata
    data_source: str = "IEX Cloud"
    collection_timestamp: datetime = field(default_factory=datetime.now)
    api_calls_made: int = 0

    @property
    def latest_fundamentals(self) -> FundamentalsReport:
        """Most recent quarter, used for the balance sheet snapshot."""
        return self.fundamentals[0]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "quote": self.quote.to_dict(),
            "fundamentals_quarters": len(self.fundamentals),
            "cash_flow_quarters": len(self.cash_flow),
            "data_source": self.data_source,
            "collection_timestamp": self.collection_timestamp.isoformat(),
            "api_calls_made": self.api_calls_made,
        }


# =============================================================================
# RETRY POLICY
# =============================================================================

@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry behaviour for a rate-limited provider.

    A rate-limited response is retried after a fixed backoff until
    max_attempts is reached. Every request is followed by a short
    politeness delay.
    """

    max_attempts: int = IEX_CLOUD_CONFIG.max_attempts
    backoff_seconds: float = IEX_CLOUD_CONFIG.rate_limit_backoff_seconds
    request_delay_seconds: float = IEX_CLOUD_CONFIG.request_delay_seconds
    rate_limited_status: int = 429
    rate_limited_body: str = "Too many requests"

    def is_rate_limited(self, response: requests.Response) -> bool:
        """Classify a response as rate limited."""
        if response.status_code == self.rate_limited_status:
            return True
        return response.text.strip() == self.rate_limited_body


# =============================================================================
# IEX CLOUD API CLIENT
# =============================================================================

class IEXCloudClient:
    """
    IEX Cloud API client with rate-limit retry.

    Each public method returns the decoded JSON body or raises
    DataUnavailableError. Callers never see retries.
    """

    def __init__(
        self,
        api_token: str,
        base_url: str = IEX_CLOUD_CONFIG.base_url,
        timeout: int = IEX_CLOUD_CONFIG.request_timeout,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """
        Initialize IEXCloudClient.

        Args:
            api_token: IEX Cloud API token
            base_url: API base URL
            timeout: Request timeout in seconds
            retry_policy: Retry behaviour (defaults to RetryPolicy())

        Raises:
            ValueError: If API token is not provided
        """
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy()
        self._call_count: int = 0

        if not self.api_token:
            raise ValueError(
                "IEX Cloud API token required. "
                "Set IEX_CLOUD_API_TOKEN environment variable or pass --api-token."
            )

    def _request(self, path: str, source: DataSource, params: Optional[Dict] = None) -> Any:
        """
        Make API request, retrying while the provider is rate limiting.

        Args:
            path: Endpoint path below the base URL
            source: Data series being requested (for error reporting)
            params: Extra query parameters

        Returns:
            Decoded JSON body

        Raises:
            DataUnavailableError: On transport errors, HTTP errors or
                exhausted retries
        """
        url = f"{self.base_url}/{path}"
        query = dict(params or {})
        query["token"] = self.api_token
        policy = self.retry_policy

        for attempt in range(1, policy.max_attempts + 1):
            try:
                response = requests.get(url, params=query, timeout=self.timeout)
            except requests.exceptions.Timeout:
                raise DataUnavailableError(f"Request timeout for {path}", source=source)
            except requests.exceptions.RequestException as e:
                raise DataUnavailableError(f"Request failed: {str(e)}", source=source)

            self._call_count += 1

            if policy.is_rate_limited(response):
                LOGGER.info(
                    f"Rate limited on {path} (attempt {attempt}/{policy.max_attempts}), "
                    f"waiting {policy.backoff_seconds:.1f}s"
                )
                time.sleep(policy.backoff_seconds)
                continue

            time.sleep(policy.request_delay_seconds)

            try:
                response.raise_for_status()
                return response.json()
            except requests.exceptions.HTTPError as e:
                raise DataUnavailableError(f"Request failed: {str(e)}", source=source)
            except ValueError:
                raise DataUnavailableError(f"Invalid JSON returned for {path}", source=source)

        raise DataUnavailableError(
            f"Rate limit retries exhausted after {policy.max_attempts} attempts for {path}",
            source=source,
        )

    @property
    def call_count(self) -> int:
        """Return total API calls made."""
        return self._call_count

    def get_quote(self, symbol: str) -> Any:
        """Fetch the basic stock quote."""
        return self._request(f"core/quote/{symbol}", DataSource.QUOTE)

    def get_fundamentals(self, symbol: str, quarters: int) -> Any:
        """Fetch the last N quarters of fundamentals."""
        return self._request(
            f"CORE/FUNDAMENTALS/{symbol}/quarterly",
            DataSource.FUNDAMENTALS,
            params={"last": quarters},
        )

    def get_cash_flow(self, symbol: str, quarters: int) -> Any:
        """Fetch the last N quarters of cash flow data."""
        return self._request(
            f"CORE/CASH_FLOW/{symbol}/quarterly",
            DataSource.CASH_FLOW,
            params={"last": quarters},
        )


# =============================================================================
# DATA PARSER
# =============================================================================

class DataParser:
    """
    Adapts IEX Cloud payloads into typed records.

    Responsibilities:
        - Apply the quote price precedence
        - Convert numeric values to Decimal
        - Read null or missing numeric components as zero
    """

    @staticmethod
    def _safe_decimal(value: Any) -> Optional[Decimal]:
        """
        Safely convert value to Decimal.

        Args:
            value: Value to convert

        Returns:
            Decimal value or None if conversion fails
        """
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, Decimal):
            return value if value.is_finite() else None
        if isinstance(value, int):
            return Decimal(value)
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return None
            return Decimal(str(value))
        if isinstance(value, str):
            value = value.strip()
            if value.lower() in ("none", "n/a", "-", "", "null", "nan"):
                return None
            try:
                result = Decimal(value)
            except InvalidOperation:
                return None
            return result if result.is_finite() else None
        return None

    @staticmethod
    def _unwrap_records(data: Any) -> List[Dict]:
        """IEX answers with a JSON array; tolerate a single object."""
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return [record for record in data if isinstance(record, dict)]

    @staticmethod
    def _fiscal_date(record: Dict) -> Optional[str]:
        for key in FISCAL_DATE_FIELDS:
            if record.get(key):
                return str(record[key])
        return None

    def parse_quote(self, data: Any) -> StockQuote:
        """
        Parse quote payload.

        Args:
            data: Raw API response

        Returns:
            StockQuote

        Raises:
            MissingQuoteError: If no price field carries a value
        """
        records = self._unwrap_records(data)
        if not records:
            raise MissingQuoteError("No quote data found")

        quote = records[0]

        price = None
        price_field = None
        for key in QUOTE_PRICE_FIELDS:
            price = self._safe_decimal(quote.get(key))
            if price is not None:
                price_field = key
                break

        if price is None:
            raise MissingQuoteError("No quote data found")

        return StockQuote(
            price=price,
            market_cap=self._safe_decimal(quote.get("marketCap")) or ZERO,
            volume=self._safe_decimal(quote.get("avgTotalVolume")) or ZERO,
            price_field=price_field,
            company_name=quote.get("companyName"),
        )

    def _required_decimal(self, record: Dict, raw_field: str, source: DataSource, quarter: int) -> Decimal:
        value = self._safe_decimal(record.get(raw_field))
        if value is None:
            raise MissingFieldError(source, raw_field, quarter)
        return value

    def parse_fundamentals(self, data: Any) -> List[FundamentalsReport]:
        """
        Parse quarterly fundamentals, preserving provider order.

        EBIT and both depreciation fields must be present on every
        quarter. Cash and debt components are only read from the first
        (most recent) quarter, so only that one must carry them.

        Raises:
            MissingFieldError: If a required field is null, absent or not numeric
        """
        reports = []
        for index, record in enumerate(self._unwrap_records(data)):
            values = {}
            for raw_field, std_field in FUNDAMENTALS_FIELD_MAP.items():
                if index == 0 or raw_field in FUNDAMENTALS_QUARTERLY_FIELDS:
                    values[std_field] = self._required_decimal(
                        record, raw_field, DataSource.FUNDAMENTALS, index + 1
                    )
                else:
                    values[std_field] = self._safe_decimal(record.get(raw_field)) or ZERO
            reports.append(FundamentalsReport(fiscal_date=self._fiscal_date(record), **values))
        return reports

    def parse_cash_flow(self, data: Any) -> List[CashFlowReport]:
        """Parse quarterly cash flow, preserving provider order."""
        reports = []
        for index, record in enumerate(self._unwrap_records(data)):
            values = {
                std_field: self._required_decimal(record, raw_field, DataSource.CASH_FLOW, index + 1)
                for raw_field, std_field in CASHFLOW_FIELD_MAP.items()
            }
            reports.append(CashFlowReport(fiscal_date=self._fiscal_date(record), **values))
        return reports


# =============================================================================
# DATA COLLECTOR
# =============================================================================

class DataCollector:
    """
    Collects the quote and both quarterly series for a symbol.

    Usage:
        collector = DataCollector(api_token="...")
        result = collector.collect("AAPL")
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        client: Optional[IEXCloudClient] = None,
        quarters_required: int = VALUATION_CONFIG.quarters_required,
    ):
        """
        Initialize DataCollector.

        Args:
            api_token: IEX Cloud API token (defaults to environment variable)
            client: Preconfigured client (overrides api_token)
            quarters_required: Quarterly records needed per series
        """
        self.api_client = client or IEXCloudClient(
            api_token=api_token or IEX_CLOUD_CONFIG.api_token,
        )
        self.parser = DataParser()
        self.quote_validator = QuoteValidator()
        self.quarters_required = quarters_required

        LOGGER.info(f"DataCollector initialized (v{__version__})")

    def collect(self, symbol: str) -> CollectionResult:
        """
        Collect quote, fundamentals and cash flow for a symbol.

        Args:
            symbol: Stock ticker symbol

        Returns:
            CollectionResult with the most recent quarters first

        Raises:
            MissingQuoteError: If the quote has no usable price
            ZeroPriceError, ZeroMarketCapError: If the quote cannot be valued
            MissingFieldError: If a required statement field is missing
            InsufficientHistoryError: If either series is short
            DataUnavailableError: If a request fails
        """
        symbol = symbol.upper().strip()
        calls_before = self.api_client.call_count

        try:
            quote = self.parser.parse_quote(self.api_client.get_quote(symbol))
            # No statement requests for a quote that cannot be valued
            self.quote_validator.validate(quote.price, quote.market_cap)

            fundamentals = self.parser.parse_fundamentals(
                self.api_client.get_fundamentals(symbol, self.quarters_required)
            )
            self._check_history(fundamentals, DataSource.FUNDAMENTALS)

            cash_flow = self.parser.parse_cash_flow(
                self.api_client.get_cash_flow(symbol, self.quarters_required)
            )
            self._check_history(cash_flow, DataSource.CASH_FLOW)
        except ValuationError as e:
            raise e.for_symbol(symbol)

        api_calls = self.api_client.call_count - calls_before
        LOGGER.info(
            f"Collection complete for {symbol}: "
            f"fundamentals={len(fundamentals)}, cash_flow={len(cash_flow)}, "
            f"api_calls={api_calls}"
        )

        return CollectionResult(
            symbol=symbol,
            quote=quote,
            fundamentals=fundamentals[: self.quarters_required],
            cash_flow=cash_flow[: self.quarters_required],
            api_calls_made=api_calls,
        )

    def _check_history(self, records: List[Any], source: DataSource) -> None:
        if len(records) < self.quarters_required:
            raise InsufficientHistoryError(
                source=source,
                required=self.quarters_required,
                available=len(records),
            )


# =============================================================================
# MODULE EXPORTS
# =============================================================================

__all__ = [
    "__version__",
    "StockQuote",
    "FundamentalsReport",
    "CashFlowReport",
    "CollectionResult",
    "RetryPolicy",
    "IEXCloudClient",
    "DataParser",
    "DataCollector",
]
