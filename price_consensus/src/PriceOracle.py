"""PriceOracle: Entry point for consensus price lookups.

This module answers "what is the price of X right now" by asking every
source that covers X's asset class, discarding what cannot be trusted, and
caching the consensus briefly.

Architecture:
    - PriceCache answers repeated lookups within the cache TTL
    - SourceManager pairs each fetcher with its own circuit breaker
    - QuoteCollector fans a symbol out to all relevant sources concurrently
    - PriceAggregator filters stale quotes and outliers and computes the
      confidence-weighted consensus
    - Only a complete lack of usable data reaches the caller, as
      NoDataAvailable or AllSourcesRejected
"""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from .CircuitBreaker import BreakerStatus
from .exceptions import AllSourcesRejected, NoDataAvailable, OracleError
from .fetchers import BaseFetcher, get_available_fetchers, get_fetcher
from .PriceAggregator import ALL_REJECTED, PriceAggregator
from .PriceCache import PriceCache
from .PriceKey import PriceKey
from .QuoteCollector import QuoteCollector
from .SourceManager import BreakerConfig, SourceManager
from .types import AggregatedPrice, AssetType

logger = logging.getLogger(__name__)


class PriceOracle:
    """Multi-source consensus price oracle.

    The cache and the source registry are owned by the oracle instance and
    may be injected for testing or to share them between oracles.

    :ivar source_manager: Fetchers and circuit breakers per source.
    :ivar cache: Cache of aggregated prices.
    :ivar aggregator: Consensus calculator.
    :ivar collector: Concurrent quote fan-out.
    """

    def __init__(
        self,
        sources: list[str] | None = None,
        api_keys: dict[str, str] | None = None,
        breaker_overrides: dict[str, BreakerConfig] | None = None,
        min_sources: int = 2,
        max_deviation: float = 0.05,
        staleness_threshold: float = PriceAggregator.DEFAULT_STALENESS_SECONDS,
        cache_ttl: float = PriceCache.DEFAULT_TTL_SECONDS,
        fetch_timeout: float = SourceManager.DEFAULT_FETCH_TIMEOUT,
        request_timeout: float = QuoteCollector.DEFAULT_REQUEST_TIMEOUT,
        source_manager: SourceManager | None = None,
        cache: PriceCache | None = None,
    ) -> None:
        """Initialize the price oracle.

        :param sources: Source names to use (default: every registered fetcher).
            Ignored when source_manager is given.
        :param api_keys: Dict mapping source names to API keys.
        :param breaker_overrides: Breaker parameters per source name, replacing
            the fetcher's defaults.
        :param min_sources: Sources needed for full confidence (default: 2).
        :param max_deviation: Max relative deviation from the median before a
            quote is an outlier (default: 0.05).
        :param staleness_threshold: Max quote age in seconds (default: 300).
        :param cache_ttl: Seconds an aggregated price is reused (default: 30).
        :param fetch_timeout: Timeout per source call in seconds (default: 5).
        :param request_timeout: Overall deadline per lookup (default: 8).
        :param source_manager: Pre-built source registry.
        :param cache: Pre-built cache.
        :raises ValueError: If sources or parameters are invalid.
        """
        self.aggregator = PriceAggregator(
            min_sources=min_sources,
            max_deviation=max_deviation,
            staleness_threshold=staleness_threshold,
        )
        self.cache = cache or PriceCache(ttl=cache_ttl)

        if source_manager is None:
            source_manager = self._build_source_manager(
                sources, api_keys or {}, breaker_overrides or {}, fetch_timeout
            )
        self.source_manager = source_manager
        self.collector = QuoteCollector(source_manager, request_timeout=request_timeout)

        logger.info(
            f"PriceOracle initialized: sources={self.source_manager.sources}, "
            f"min_sources={min_sources}, max_deviation={max_deviation}, "
            f"staleness={staleness_threshold}s, cache_ttl={self.cache.ttl}s"
        )

    @staticmethod
    def _build_source_manager(
        sources: list[str] | None,
        api_keys: dict[str, str],
        breaker_overrides: dict[str, BreakerConfig],
        fetch_timeout: float,
    ) -> SourceManager:
        """Create fetchers for the requested sources and register them.

        Sources that need an API key but have none are skipped with a warning.
        """
        available = get_available_fetchers()
        if sources is None:
            sources = available
        invalid = [s for s in sources if s not in available]
        if invalid:
            raise ValueError(f"Unknown sources: {invalid}. Available: {available}")

        manager = SourceManager(fetch_timeout=fetch_timeout)
        for source in sources:
            fetcher = get_fetcher(source, api_key=api_keys.get(source), timeout=fetch_timeout)
            if fetcher.requires_api_key and not fetcher.has_api_key:
                logger.warning(f"[{source}] No API key configured, source disabled")
                continue
            manager.register(fetcher, breaker_overrides.get(source))
        return manager

    async def get_aggregated_price(
        self, symbol: str, asset_type: AssetType | str = AssetType.CRYPTO
    ) -> AggregatedPrice:
        """Get the consensus price of a symbol.

        Within the cache TTL the same AggregatedPrice object is returned.

        :param symbol: Symbol (e.g., "btc", "AAPL", "EUR/USD").
        :param asset_type: Asset class (default: crypto).
        :returns: AggregatedPrice, possibly with reduced confidence.
        :raises NoDataAvailable: If no source produced a fresh quote.
        :raises AllSourcesRejected: If every quote was rejected as an outlier.
        :raises ValueError: If the symbol or asset type is invalid.
        """
        key = PriceKey(symbol, asset_type)
        cache_key = str(key)

        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for {cache_key}")
            return cached

        sources = self.source_manager.sources_for(key.asset_type)
        if not sources:
            logger.error(f"No sources configured for {key.asset_type.value}")
            raise NoDataAvailable(
                key.symbol, f"No sources configured for {key.asset_type.value}"
            )

        collected = await self.collector.collect(key.symbol, sources)
        result = self.aggregator.aggregate(
            collected.quotes, symbol=key.symbol, asset_type=key.asset_type
        )

        if result.aggregated is None:
            if result.error == ALL_REJECTED:
                logger.error(f"All quotes for {cache_key} rejected as outliers")
                raise AllSourcesRejected(key.symbol, result.metadata.get("dropped", {}))
            failed = {s: k.value for s, k in collected.failures.items()}
            logger.error(f"No valid prices for {cache_key} from any source: {failed}")
            raise NoDataAvailable(key.symbol)

        aggregated = result.aggregated
        self.cache.put(cache_key, aggregated)

        logger.info(
            f"Price aggregated for {cache_key}: {aggregated.price:.4f} "
            f"from {', '.join(aggregated.sources)} "
            f"(confidence {aggregated.confidence * 100:.1f}%, "
            f"deviation {aggregated.deviation * 100:.2f}%)"
        )
        return aggregated

    async def _get_or_none(
        self, symbol: str, asset_type: AssetType | str
    ) -> AggregatedPrice | None:
        try:
            return await self.get_aggregated_price(symbol, asset_type)
        except (OracleError, ValueError) as e:
            logger.warning(f"No price for {symbol}: {e}")
            return None

    async def get_multiple_prices(
        self, requests: Iterable[tuple[str, AssetType | str]]
    ) -> dict[str, AggregatedPrice | None]:
        """Get consensus prices for several symbols concurrently.

        A failure for one symbol maps it to None without affecting the others.

        :param requests: (symbol, asset_type) tuples.
        :returns: Dict mapping each requested symbol to its price or None.
        """
        requests = list(requests)
        prices = await asyncio.gather(
            *(self._get_or_none(symbol, asset_type) for symbol, asset_type in requests)
        )
        return {symbol: price for (symbol, _), price in zip(requests, prices)}

    def clear_cache(self) -> None:
        """Drop every cached price."""
        self.cache.invalidate_all()

    def get_cache_stats(self) -> dict:
        """Get the number and keys of live cache entries.

        :returns: Dict with "size" and "keys".
        """
        return self.cache.stats()

    def get_source_health(self) -> dict[str, BreakerStatus]:
        """Get a circuit breaker snapshot for every source."""
        return self.source_manager.get_all_status()

    def log_source_health(self) -> None:
        """Log every source's breaker state and counters at DEBUG level."""
        for source, status in self.get_source_health().items():
            logger.debug(
                f"[{source}] Breaker {status.state.value}: "
                f"{status.consecutive_failures} consecutive failures, "
                f"{status.total_successes}/{status.total_attempts} calls succeeded, "
                f"{status.total_rejections} rejected"
            )

    def reset_source(self, source: str) -> None:
        """Force a source's circuit breaker closed.

        :param source: Source name.
        """
        self.source_manager.reset_source(source)

    async def close(self) -> None:
        """Release the shared HTTP client."""
        await BaseFetcher.close_shared_client()

    async def __aenter__(self) -> PriceOracle:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
