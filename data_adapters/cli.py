"""
Data Adapters - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line front end for the adapter registry.

- Provides argparse-based CLI
- Loads configuration from a YAML file or the environment
- Prints results as JSON on stdout, logs on stderr

============================================================
USAGE
============================================================
python -m data_adapters health
python -m data_adapters quote AAPL
python -m data_adapters history AAPL --start 2024-01-01 --end 2024-01-31
python -m data_adapters fundamentals MSFT --adapter sec-edgar

============================================================
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

from data_adapters.config import RegistryConfig
from data_adapters.exceptions import AdapterError
from data_adapters.models import FundamentalsParams, HistoricalPriceParams, QuoteParams, SUPPORTED_INTERVALS
from data_adapters.registry import AdapterRegistry, create_default_registry


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "text") -> logging.Logger:
    """
    Set up logging on the root logger.

    Args:
        level: Log level
        log_format: Output format (json or text)

    Returns:
        The package logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    # stdout carries the JSON results
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("data_adapters")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="data-adapters",
        description="Query financial data through the adapter registry",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s health
  %(prog)s quote AAPL --adapter yahoo-finance
  %(prog)s history AAPL --start 2024-01-01 --end 2024-01-31
  %(prog)s fundamentals MSFT
        """
    )

    parser.add_argument(
        "--config",
        type=Path,
        metavar="FILE",
        help="YAML configuration file (default: environment variables)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        default="text",
        help="Logging format (default: text)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Probe every adapter and print health records")

    quote = subparsers.add_parser("quote", help="Get a quote")
    quote.add_argument("symbol")
    quote.add_argument("--adapter", metavar="NAME", help="Preferred adapter")

    history = subparsers.add_parser("history", help="Get historical prices")
    history.add_argument("symbol")
    history.add_argument("--start", type=date.fromisoformat, required=True, metavar="YYYY-MM-DD")
    history.add_argument("--end", type=date.fromisoformat, required=True, metavar="YYYY-MM-DD")
    history.add_argument("--interval", choices=SUPPORTED_INTERVALS, default="1d")
    history.add_argument("--adapter", metavar="NAME", help="Preferred adapter")

    fundamentals = subparsers.add_parser("fundamentals", help="Get fundamentals")
    fundamentals.add_argument("symbol")
    fundamentals.add_argument("--adapter", metavar="NAME", help="Preferred adapter")

    return parser


def load_config(args: argparse.Namespace) -> RegistryConfig:
    """Load configuration; the CLI never runs background probing."""
    config = RegistryConfig.from_yaml(args.config) if args.config else RegistryConfig.from_env()
    return dataclasses.replace(config, auto_health_check=False)


# ============================================================
# COMMANDS
# ============================================================

async def run_command(registry: AdapterRegistry, args: argparse.Namespace) -> Any:
    """Run one command and return a JSON-serializable result."""
    if args.command == "health":
        results = await registry.check_all_health()
        return {name: health.to_dict() for name, health in results.items()}

    if args.command == "quote":
        quote = await registry.get_quote(QuoteParams(args.symbol), preferred_name=args.adapter)
        return quote.to_dict()

    if args.command == "history":
        params = HistoricalPriceParams(args.symbol, args.start, args.end, args.interval)
        prices = await registry.get_historical_prices(params, preferred_name=args.adapter)
        return [price.to_dict() for price in prices]

    if args.command == "fundamentals":
        fundamentals = await registry.get_fundamentals(FundamentalsParams(args.symbol), preferred_name=args.adapter)
        return fundamentals.to_dict()

    raise ValueError(f"Unknown command: {args.command}")


async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    registry = create_default_registry(load_config(args))

    try:
        result = await run_command(registry, args)
    except AdapterError as e:
        logger.error(f"Request failed: {e}")
        print(json.dumps({"error": e.to_dict()}, indent=2))
        return 1
    finally:
        await registry.close()

    print(json.dumps(result, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
