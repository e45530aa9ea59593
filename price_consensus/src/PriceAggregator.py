"""PriceAggregator: Confidence-weighted consensus with outlier detection.

Algorithm:
    1. Filter out invalid prices and quotes older than the staleness threshold
    2. Calculate the median across all fresh quotes
    3. Exclude outliers (relative deviation > max_deviation from the median)
    4. Average the survivors, weighted by each source's base confidence
    5. Score confidence from survivor count and residual spread
    6. Fail if no fresh quote exists or every quote was an outlier

Fewer than min_sources survivors is not a failure: the result is returned
with its confidence scaled down by survivors / min_sources.

.. code-block:: python

    >>> aggregator = PriceAggregator(min_sources=2, max_deviation=0.05)
    >>> result = aggregator.aggregate(quotes, now=now)
    >>> result.success
    True
    >>> result.aggregated.sources
    ('coinbase', 'kraken')
    >>> result.metadata["dropped"]
    {'rogue': 150.0}
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from statistics import median as _median
from typing import Iterable, TypedDict

from .types import AggregatedPrice, AssetType, PriceQuote

logger = logging.getLogger(__name__)

NO_DATA = "no_data"
ALL_REJECTED = "all_rejected"


class AggregationError(TypedDict, total=False):
    """Error information when aggregation fails.

    :ivar error: Error type identifier (NO_DATA or ALL_REJECTED).
    :ivar available: Number of fresh, valid quotes.
    :ivar stale: Sources whose quotes were too old.
    :ivar dropped: Dict of sources dropped as outliers.
    """

    error: str
    available: int
    stale: list[str]
    dropped: dict[str, float]


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar sources: Sources used in the final calculation.
    :ivar dropped: Dict of sources dropped as outliers.
    :ivar stale: Sources whose quotes were too old.
    :ivar count: Number of sources used.
    :ivar median: Median before outlier filtering.
    :ivar degraded: True if fewer than min_sources survived.
    """

    sources: list[str]
    dropped: dict[str, float]
    stale: list[str]
    count: int
    median: float
    degraded: bool


@dataclass
class AggregationResult:
    """Result of price aggregation.

    :ivar aggregated: Consensus price, or None if aggregation failed.
    :ivar metadata: Additional information about the aggregation.
    """

    aggregated: AggregatedPrice | None
    metadata: AggregationMetadata | AggregationError

    @property
    def success(self) -> bool:
        """Check if aggregation was successful."""
        return self.aggregated is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.aggregated is None:
            return self.metadata.get("error")
        return None


class PriceAggregator:
    """Aggregates quotes from multiple sources into one consensus price.

    :ivar min_sources: Survivors needed for full confidence.
    :ivar max_deviation: Max relative deviation from the median (0.05 = 5%).
    :ivar staleness_threshold: Max quote age in seconds.

    .. code-block:: python

        >>> agg = PriceAggregator(min_sources=2, max_deviation=0.05)
        >>> agg.aggregate([q100, q101, q150]).aggregated.price
        100.5
    """

    DEFAULT_STALENESS_SECONDS = 300.0

    def __init__(
        self,
        min_sources: int = 2,
        max_deviation: float = 0.05,
        staleness_threshold: float = DEFAULT_STALENESS_SECONDS,
    ) -> None:
        """Initialize the aggregator.

        :param min_sources: Number of surviving sources required for full
            confidence (default 2).
        :param max_deviation: Maximum relative deviation from the median before
            a quote is considered an outlier, as a fraction (default 0.05).
        :param staleness_threshold: Quotes older than this many seconds are
            ignored (default 300).
        :raises ValueError: If parameters are invalid.
        """
        if min_sources < 1:
            raise ValueError("min_sources must be at least 1")
        if max_deviation <= 0:
            raise ValueError("max_deviation must be positive")
        if staleness_threshold <= 0:
            raise ValueError("staleness_threshold must be positive")

        self.min_sources = min_sources
        self.max_deviation = max_deviation
        self.staleness_threshold = staleness_threshold

    def aggregate(
        self,
        quotes: Iterable[PriceQuote],
        *,
        now: float | None = None,
        symbol: str = "",
        asset_type: AssetType | None = None,
    ) -> AggregationResult:
        """Aggregate quotes from multiple sources into a consensus price.

        The result depends only on the set of quotes, not on their order.

        :param quotes: Quotes gathered in this cycle.
        :param now: Unix timestamp to measure staleness against (default: now).
        :param symbol: Symbol being priced, recorded on the result.
        :param asset_type: Asset class, recorded on the result.
        :returns: AggregationResult with an AggregatedPrice, or error metadata.
        """
        if now is None:
            now = time.time()

        # Step 1: Filter out invalid and stale quotes
        fresh: list[PriceQuote] = []
        stale: list[str] = []
        for quote in sorted(quotes, key=lambda q: (q.source, q.price)):
            if not math.isfinite(quote.price) or quote.price <= 0:
                logger.debug(f"[{quote.source}] Invalid price {quote.price} for {symbol}")
                continue
            if now - quote.observed_at > self.staleness_threshold:
                logger.debug(
                    f"[{quote.source}] Stale quote for {symbol}: "
                    f"{now - quote.observed_at:.0f}s old"
                )
                stale.append(quote.source)
                continue
            fresh.append(quote)

        if not fresh:
            return AggregationResult(
                aggregated=None,
                metadata={"error": NO_DATA, "available": 0, "stale": stale},
            )

        # Step 2: Calculate the median
        median = _median(q.price for q in fresh)

        # Step 3: Filter outliers
        filtered: list[PriceQuote] = []
        deviations: list[float] = []
        dropped: dict[str, float] = {}

        for quote in fresh:
            deviation = abs(quote.price - median) / median
            if deviation <= self.max_deviation:
                filtered.append(quote)
                deviations.append(deviation)
            else:
                dropped[quote.source] = quote.price
                logger.warning(
                    f"[{quote.source}] Outlier rejected for {symbol}: "
                    f"{quote.price} deviates {deviation * 100:.2f}% from median {median}"
                )

        if not filtered:
            return AggregationResult(
                aggregated=None,
                metadata={
                    "error": ALL_REJECTED,
                    "available": len(fresh),
                    "stale": stale,
                    "dropped": dropped,
                },
            )

        degraded = len(filtered) < self.min_sources
        if degraded:
            logger.warning(
                f"Low source count for {symbol}: {len(filtered)} of "
                f"{self.min_sources} required, confidence reduced"
            )

        # Step 4: Confidence-weighted average
        total_weight = sum(q.base_confidence for q in filtered)
        if total_weight > 0:
            price = sum(q.price * q.base_confidence for q in filtered) / total_weight
        else:
            price = sum(q.price for q in filtered) / len(filtered)

        # Step 5: Confidence from source count and agreement
        avg_deviation = sum(deviations) / len(deviations)
        confidence = min(1.0, len(filtered) / self.min_sources) * (
            1 - min(avg_deviation * 10, 0.5)
        )

        staleness = max(0.0, now - min(q.observed_at for q in filtered))
        sources = tuple(q.source for q in filtered)

        aggregated = AggregatedPrice(
            price=price,
            sources=sources,
            computed_at=now,
            confidence=confidence,
            deviation=avg_deviation,
            staleness=staleness,
            symbol=symbol,
            asset_type=asset_type,
            dropped=dropped,
        )
        return AggregationResult(
            aggregated=aggregated,
            metadata={
                "sources": list(sources),
                "dropped": dropped,
                "stale": stale,
                "count": len(filtered),
                "median": median,
                "degraded": degraded,
            },
        )
