"""Shared test helpers.

Provides an in-memory fetcher whose behavior can be changed between calls,
so breaker, collector and oracle tests run without network access.
"""

from __future__ import annotations

import asyncio
import time

from price_consensus.src.fetchers.base import BaseFetcher
from price_consensus.src.SourceManager import BreakerConfig, SourceManager
from price_consensus.src.types import AssetType, FailureKind, FetchResult, PriceQuote


class StubFetcher(BaseFetcher):
    """Fetcher returning a configurable price or failure.

    Not registered in FETCHER_REGISTRY.

    :ivar calls: Number of times fetch() was invoked.
    """

    def __init__(
        self,
        name: str,
        price: float | None = None,
        *,
        asset_types: frozenset[AssetType] = frozenset({AssetType.CRYPTO}),
        failure: FailureKind | None = None,
        raises: Exception | None = None,
        delay: float = 0.0,
        base_confidence: float = 0.9,
        age: float = 0.0,
    ) -> None:
        super().__init__()
        self.name = name
        self.asset_types = asset_types
        self.base_confidence = base_confidence
        self.price = price
        self.failure = failure
        self.raises = raises
        self.delay = delay
        self.age = age
        self.calls = 0
        self.symbols: list[str] = []

    async def fetch(self, symbol: str) -> FetchResult:
        self.calls += 1
        self.symbols.append(symbol)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.failure is not None:
            return FetchResult.err(self.name, self.failure, "stubbed failure")
        if self.price is None:
            return FetchResult.err(self.name, FailureKind.NO_DATA, "no price")
        return FetchResult.ok(
            PriceQuote(
                price=self.price,
                source=self.name,
                observed_at=time.time() - self.age,
                base_confidence=self.base_confidence,
            )
        )


def make_manager(
    *fetchers: StubFetcher,
    fetch_timeout: float = 5.0,
    config: BreakerConfig | None = None,
) -> SourceManager:
    """Build a SourceManager with the given stubs registered."""
    manager = SourceManager(fetch_timeout=fetch_timeout)
    for fetcher in fetchers:
        manager.register(fetcher, config)
    return manager


def quote(source: str, price: float, *, age: float = 0.0, confidence: float = 0.9,
          now: float = 1_700_000_000.0) -> PriceQuote:
    """Build a PriceQuote observed ``age`` seconds before ``now``."""
    return PriceQuote(
        price=price, source=source, observed_at=now - age, base_confidence=confidence
    )
