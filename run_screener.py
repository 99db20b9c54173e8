#!/usr/bin/env python3
"""
Value Screener - Batch DCF Screening
====================================

Values every company in an input list with a simplified terminal value
DCF and writes a dated CSV report.

Pipeline per symbol:
- Quote, 12 quarters of fundamentals and cash flow (IEX Cloud)
- Annual aggregation and free cash flow
- Conservative growth estimate
- Terminal value, net cash adjustment and per-share target
- Undervaluation verdict

Usage:
    python run_screener.py companies.json               # Default 15% growth cap
    python run_screener.py companies.json 0.10          # 10% growth cap
    python run_screener.py companies.json --all-columns --yahoo-links
    python run_screener.py companies.json --api-token YOUR_TOKEN

Output:
    - outputs/{YYYY-MM-DD}-data.csv
    - outputs/errors.log (symbols that could not be valued)

Version: 1.0.0
"""

import argparse
import logging
import sys
from pathlib import Path

from value_screener import (
    VALUATION_CONFIG,
    OUTPUT_DIR,
    LOGGER,
    attach_error_log,
    DataCollector,
    ReportWriter,
    StockScreener,
    StockValuator,
    ScreeningSummary,
    InputDataError,
    ConfigurationError,
    load_candidates,
    __version__,
)
from value_screener.config import ERROR_LOG_FILENAME


def format_percent(value, decimals=2):
    """Format value as percentage."""
    if value is None:
        return "N/A"
    return f"{value*100:.{decimals}f}%"


def print_line(char="=", length=80):
    """Print separator line."""
    print(char * length)


def print_header(title):
    """Print section header."""
    print()
    print_line("=")
    print(f"  {title}")
    print_line("=")


def print_banner():
    """Print application banner."""
    print()
    print_line()
    print("  VALUE SCREENER")
    print("  Terminal Value DCF: Collection, Aggregation, Growth, Valuation & Report")
    print_line()
    print(f"  Version: {__version__}")
    print_line()


def print_summary(summary: ScreeningSummary):
    """Print screening run summary."""
    print_header("SCREENING SUMMARY")

    print(f"  Symbols processed:   {summary.processed}")
    print(f"  Valued:              {summary.valued}")
    print(f"  Failed:              {summary.failed}")
    print(f"  Undervalued:         {summary.undervalued}")
    print(f"  Median upside:       {format_percent(summary.median_upside, 0)}")
    print(f"  Mean upside:         {format_percent(summary.mean_upside, 0)}")

    if summary.failures_by_reason:
        print()
        print("  Failures by reason:")
        for reason, count in sorted(summary.failures_by_reason.items()):
            print(f"    {reason:<26} {count}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Value Screener - Batch DCF Screening"
    )
    parser.add_argument(
        "input_file",
        help="JSON array of companies (Symbol, Name, Sector, Industry)"
    )
    parser.add_argument(
        "max_growth_rate",
        nargs="?",
        type=str,
        default=None,
        help=f"Max conservative growth rate (default: {VALUATION_CONFIG.max_conservative_growth_rate})"
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=OUTPUT_DIR,
        help="Directory for the CSV report and error log"
    )
    parser.add_argument(
        "--api-token",
        type=str,
        default=None,
        help="IEX Cloud API token (default: IEX_CLOUD_API_TOKEN)"
    )
    parser.add_argument(
        "--all-columns",
        action="store_true",
        help="Include sector, industry, components and rate assumptions"
    )
    parser.add_argument(
        "--yahoo-links",
        action="store_true",
        help="Append Yahoo Finance links"
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Only log warnings and errors"
    )

    args = parser.parse_args()

    if args.quiet:
        LOGGER.setLevel(logging.WARNING)

    print_banner()

    # Configuration is checked before any symbol is processed
    config = VALUATION_CONFIG
    try:
        if args.max_growth_rate is not None:
            config = config.with_max_growth_rate(args.max_growth_rate)
        valuator = StockValuator(config)
    except ConfigurationError as e:
        print(f"\nConfiguration error: {e}")
        sys.exit(1)

    try:
        candidates = load_candidates(args.input_file)
    except InputDataError as e:
        print(f"\nInput error: {e}")
        sys.exit(1)

    try:
        collector = DataCollector(api_token=args.api_token)
    except ValueError as e:
        print(f"\nError: {e}")
        print("\nTo get an API token:")
        print("  1. Visit https://iexcloud.io")
        print("  2. Create an account and copy a publishable token")
        print("  3. Set environment variable: export IEX_CLOUD_API_TOKEN=your_token")
        sys.exit(1)

    attach_error_log(args.output_dir / ERROR_LOG_FILENAME)

    print(f"\n  Max growth rate: {format_percent(config.max_conservative_growth_rate)}")
    print(f"  Candidates:      {len(candidates)}\n")

    run = StockScreener(collector, valuator).run(candidates)

    writer = ReportWriter(output_dir=args.output_dir)
    try:
        report_path = writer.write(
            run.valuations,
            all_columns=args.all_columns,
            yahoo_links=args.yahoo_links,
        )
    except OSError as e:
        print(f"\nCould not save report: {e}")
        sys.exit(1)

    print_summary(run.summary)
    print(f"\n  Report saved to: {report_path}")
    print()


if __name__ == "__main__":
    main()
