#!/usr/bin/env python3
"""Price Consensus Oracle.

Fetches prices for crypto, equity and forex symbols from multiple
independent sources, rejects outliers and prints the confidence-weighted
consensus as JSON.

Configuration comes from CLI flags, falling back to environment variables.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from .src.fetchers import get_available_fetchers
from .src.PriceKey import PriceKey
from .src.PriceOracle import PriceOracle
from .src.SourceManager import BreakerConfig

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_api_keys(api_key_str: str | None) -> dict[str, str]:
    """Parse comma-separated API key string into a dictionary.

    Format: source1=key1,source2=key2
    Example: finnhub=abc123,twelvedata=xyz789

    :param api_key_str: Comma-separated API key string.
    :returns: Dict mapping source names to API keys.
    """
    if not api_key_str:
        return {}

    api_keys = {}
    for item in api_key_str.split(","):
        item = item.strip()
        if "=" in item:
            source, key = item.split("=", 1)
            api_keys[source.strip().lower()] = key.strip()
    return api_keys


def parse_env_api_keys() -> dict[str, str]:
    """Parse API keys from individual environment variables.

    Looks for: API_KEY_FINNHUB, API_KEY_TWELVEDATA, etc.

    :returns: Dict mapping source names to API keys.
    """
    api_keys = {}
    prefixes = ["API_KEY_", "APIKEY_"]

    for key, value in os.environ.items():
        for prefix in prefixes:
            if key.startswith(prefix) and value:
                source = key[len(prefix):].lower()
                api_keys[source] = value
                break

    return api_keys


def parse_breaker_overrides(breaker_str: str | None) -> dict[str, BreakerConfig]:
    """Parse per-source circuit breaker settings.

    Format: source=failures/successes/timeout[,source=...]
    Example: finnhub=3/2/60,coingecko=5/2/120

    :param breaker_str: Comma-separated breaker settings.
    :returns: Dict mapping source names to BreakerConfig.
    :raises ValueError: If an entry is malformed.
    """
    if not breaker_str:
        return {}

    overrides = {}
    for item in breaker_str.split(","):
        item = item.strip()
        if not item:
            continue
        source, sep, setting = item.partition("=")
        parts = setting.split("/")
        if not sep or len(parts) != 3:
            raise ValueError(
                f"Invalid breaker setting '{item}'. "
                "Expected source=failures/successes/timeout"
            )
        overrides[source.strip().lower()] = BreakerConfig(
            failure_threshold=int(parts[0]),
            success_threshold=int(parts[1]),
            timeout=float(parts[2]),
        )
    return overrides


async def run(oracle: PriceOracle, keys: list[PriceKey], period: float) -> None:
    """Resolve the symbols once, or every ``period`` seconds if positive."""
    requests = [(key.symbol, key.asset_type) for key in keys]
    try:
        while True:
            prices = await oracle.get_multiple_prices(requests)
            print(
                json.dumps(
                    {s: p.to_dict() if p else None for s, p in prices.items()},
                    indent=2,
                ),
                flush=True,
            )
            oracle.log_source_health()
            if period <= 0:
                break
            await asyncio.sleep(period)
    finally:
        await oracle.close()


def main() -> None:
    """Main entry point for the Price Consensus Oracle CLI."""
    available_sources = get_available_fetchers()

    parser = argparse.ArgumentParser(
        description="Price Consensus Oracle: fault-tolerant multi-source prices",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available price sources:
  {', '.join(available_sources)}

Examples:
  # BTC and ETH from all keyless crypto sources
  python -m price_consensus.main --symbols crypto:btc,crypto:eth

  # Equities and forex with API keys
  python -m price_consensus.main --symbols equity:AAPL,forex:EUR/USD \\
      --api-keys finnhub=your-key,twelvedata=your-key

  # Poll every 30 seconds with a stricter outlier filter
  python -m price_consensus.main --symbols btc --period 30 --max-deviation 0.02

Environment variables (CLI args take precedence):
  SYMBOLS, SOURCES, MIN_SOURCES, MAX_DEVIATION, STALENESS_SECONDS,
  CACHE_TTL_SECONDS, FETCH_TIMEOUT, REQUEST_TIMEOUT, BREAKERS, API_KEYS,
  API_KEY_FINNHUB, API_KEY_TWELVEDATA, API_KEY_ALPHAVANTAGE, etc.
""",
    )

    parser.add_argument(
        "--symbols",
        type=str,
        help="Comma-separated asset_type:symbol keys (e.g., crypto:btc,equity:AAPL)",
        default=os.environ.get("SYMBOLS") or "crypto:btc",
    )

    parser.add_argument(
        "--sources",
        type=str,
        help=f"Comma-separated price sources. Available: {', '.join(available_sources)}",
        default=os.environ.get("SOURCES"),
    )

    parser.add_argument(
        "--min-sources",
        dest="min_sources",
        type=int,
        help="Sources required for full confidence (default: 2)",
        default=int(os.environ.get("MIN_SOURCES") or "2"),
    )

    parser.add_argument(
        "--max-deviation",
        dest="max_deviation",
        type=float,
        help="Max relative deviation from the median before excluding a quote, "
        "as a fraction (default: 0.05)",
        default=float(os.environ.get("MAX_DEVIATION") or "0.05"),
    )

    parser.add_argument(
        "--staleness",
        type=float,
        help="Max quote age in seconds (default: 300)",
        default=float(os.environ.get("STALENESS_SECONDS") or "300"),
    )

    parser.add_argument(
        "--cache-ttl",
        dest="cache_ttl",
        type=float,
        help="Seconds an aggregated price is reused (default: 30)",
        default=float(os.environ.get("CACHE_TTL_SECONDS") or "30"),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual source requests in seconds (default: 5.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "5.0"),
    )

    parser.add_argument(
        "--request-timeout",
        dest="request_timeout",
        type=float,
        help="Overall deadline per symbol lookup in seconds (default: 8.0)",
        default=float(os.environ.get("REQUEST_TIMEOUT") or "8.0"),
    )

    parser.add_argument(
        "--breakers",
        type=str,
        help="Per-source breaker settings (e.g., finnhub=3/2/60,coingecko=5/2/120)",
        default=os.environ.get("BREAKERS"),
    )

    parser.add_argument(
        "--api-keys",
        dest="api_keys",
        type=str,
        help="Comma-separated API keys (e.g., finnhub=abc,twelvedata=xyz)",
        default=os.environ.get("API_KEYS"),
    )

    parser.add_argument(
        "--period",
        type=float,
        help="Repeat every PERIOD seconds (default: 0, run once)",
        default=float(os.environ.get("PERIOD") or "0"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.min_sources < 1:
        parser.error("--min-sources must be at least 1")

    if not 0 < args.max_deviation < 1:
        parser.error("--max-deviation must be a fraction between 0 and 1")

    if args.fetch_timeout <= 0 or args.request_timeout <= 0:
        parser.error("Timeouts must be positive")

    # Parse symbols and sources
    try:
        keys = [PriceKey.from_string(s.strip()) for s in args.symbols.split(",") if s.strip()]
    except ValueError as e:
        parser.error(str(e))

    if not keys:
        parser.error("At least one symbol must be specified")

    sources = None
    if args.sources:
        sources = [s.strip().lower() for s in args.sources.split(",") if s.strip()]
        invalid_sources = [s for s in sources if s not in available_sources]
        if invalid_sources:
            parser.error(
                f"Unknown sources: {invalid_sources}. "
                f"Available: {', '.join(available_sources)}"
            )

    try:
        breaker_overrides = parse_breaker_overrides(args.breakers)
    except ValueError as e:
        parser.error(str(e))

    # Parse API keys (CLI + environment)
    api_keys = parse_env_api_keys()
    api_keys.update(parse_api_keys(args.api_keys))

    # Log configuration
    logger.info("=" * 60)
    logger.info("Price Consensus Oracle")
    logger.info("=" * 60)
    logger.info(f"Symbols:           {', '.join(str(k) for k in keys)}")
    logger.info(f"Sources:           {', '.join(sources) if sources else 'all'}")
    logger.info(f"Min Sources:       {args.min_sources}")
    logger.info(f"Max Deviation:     {args.max_deviation * 100:.2f}%")
    logger.info(f"Staleness:         {args.staleness}s")
    logger.info(f"Cache TTL:         {args.cache_ttl}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(f"Request Timeout:   {args.request_timeout}s")
    if breaker_overrides:
        logger.info(f"Breakers:          {', '.join(breaker_overrides.keys())}")
    if api_keys:
        logger.info(f"API Keys:          {', '.join(api_keys.keys())}")
    logger.info("=" * 60)

    try:
        oracle = PriceOracle(
            sources=sources,
            api_keys=api_keys,
            breaker_overrides=breaker_overrides,
            min_sources=args.min_sources,
            max_deviation=args.max_deviation,
            staleness_threshold=args.staleness,
            cache_ttl=args.cache_ttl,
            fetch_timeout=args.fetch_timeout,
            request_timeout=args.request_timeout,
        )
        asyncio.run(run(oracle, keys, args.period))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
