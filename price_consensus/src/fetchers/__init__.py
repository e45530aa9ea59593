"""
Price fetchers for multiple API sources.

This module provides a unified interface for fetching prices from crypto,
equity and forex data providers. Every fetcher returns a FetchResult.

Usage:
    from price_consensus.src.fetchers import get_fetcher, get_available_fetchers

    # Get list of available fetchers
    available = get_available_fetchers()
    # ['alphavantage', 'coinbase', 'coingecko', 'defillama', 'finnhub', 'twelvedata']

    # Create a fetcher instance
    fetcher = get_fetcher("coinbase")
    result = await fetcher.fetch("btc")

    # For fetchers requiring API keys
    fetcher = get_fetcher("finnhub", api_key="your-api-key")
"""

# Import base classes and utilities
from .base import (
    FETCHER_REGISTRY,
    BaseFetcher,
    FetcherConfigError,
    FetcherError,
    FetcherHTTPError,
    FetcherTimeoutError,
    get_available_fetchers,
    get_fetcher,
    register_fetcher,
)

# Import all fetcher implementations to trigger registration
from .alphavantage import AlphaVantageFetcher
from .coinbase import CoinbaseFetcher
from .coingecko import CoinGeckoFetcher
from .defillama import DefiLlamaFetcher
from .finnhub import FinnhubFetcher
from .twelvedata import TwelveDataFetcher

__all__ = [
    # Base classes
    "BaseFetcher",
    "FetcherError",
    "FetcherConfigError",
    "FetcherHTTPError",
    "FetcherTimeoutError",
    # Registry functions
    "register_fetcher",
    "get_fetcher",
    "get_available_fetchers",
    "FETCHER_REGISTRY",
    # Fetcher implementations
    "AlphaVantageFetcher",
    "CoinbaseFetcher",
    "CoinGeckoFetcher",
    "DefiLlamaFetcher",
    "FinnhubFetcher",
    "TwelveDataFetcher",
]
