"""
Price Consensus Oracle - Multi-Source Aggregation Module

This module provides a trustworthy current price from several independent
sources:
- PriceKey: Symbol plus asset class, used for routing and caching
- CircuitBreaker: Per-source fault isolation
- SourceManager: Registry pairing each fetcher with its circuit breaker
- QuoteCollector: Concurrent fan-out with an overall deadline
- PriceAggregator: Median outlier filter and confidence-weighted consensus
- PriceCache: Short-lived memoization of aggregated prices
- PriceOracle: Entry point for single and batch lookups
- fetchers: Modular price fetcher implementations
"""

from .CircuitBreaker import BreakerState, BreakerStatus, CircuitBreaker
from .exceptions import (
    AllSourcesRejected,
    BreakerOpenError,
    NoDataAvailable,
    OracleError,
    SourceUnavailable,
)
from .PriceAggregator import AggregationResult, PriceAggregator
from .PriceCache import PriceCache
from .PriceKey import PriceKey
from .PriceOracle import PriceOracle
from .QuoteCollector import CollectionResult, QuoteCollector
from .SourceManager import BreakerConfig, SourceManager
from .types import AggregatedPrice, AssetType, FailureKind, FetchResult, PriceQuote

__all__ = [
    "AggregatedPrice",
    "AggregationResult",
    "AllSourcesRejected",
    "AssetType",
    "BreakerConfig",
    "BreakerOpenError",
    "BreakerState",
    "BreakerStatus",
    "CircuitBreaker",
    "CollectionResult",
    "FailureKind",
    "FetchResult",
    "NoDataAvailable",
    "OracleError",
    "PriceAggregator",
    "PriceCache",
    "PriceKey",
    "PriceOracle",
    "PriceQuote",
    "QuoteCollector",
    "SourceManager",
    "SourceUnavailable",
]
