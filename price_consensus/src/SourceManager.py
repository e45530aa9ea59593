"""SourceManager: Registry of price sources, each paired with a circuit breaker.

Every registered fetcher gets its own CircuitBreaker, built from the
fetcher's default thresholds unless overridden. Calls to a source always go
through its breaker, so a failing source is skipped quickly while the others
keep serving. Adding a source only requires registering a fetcher here.

.. code-block:: python

    >>> manager = SourceManager()
    >>> manager.register(get_fetcher("coinbase"))
    >>> manager.register(get_fetcher("finnhub", api_key="..."), BreakerConfig(3, 2, 60.0))
    >>> manager.sources_for(AssetType.CRYPTO)
    ['coinbase']
    >>> result = await manager.fetch("coinbase", "btc")
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .CircuitBreaker import BreakerStatus, CircuitBreaker
from .exceptions import BreakerOpenError, SourceUnavailable
from .types import AssetType, FailureKind, FetchResult

if TYPE_CHECKING:
    from .fetchers import BaseFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreakerConfig:
    """Circuit breaker parameters for one source.

    :ivar failure_threshold: Consecutive failures before opening.
    :ivar success_threshold: Consecutive half-open successes before closing.
    :ivar timeout: Seconds an open breaker waits before probing.
    """

    failure_threshold: int
    success_threshold: int
    timeout: float

    @classmethod
    def for_fetcher(cls, fetcher: BaseFetcher) -> BreakerConfig:
        """Build the default config declared by a fetcher class."""
        return cls(
            failure_threshold=fetcher.failure_threshold,
            success_threshold=fetcher.success_threshold,
            timeout=fetcher.breaker_timeout,
        )


class SourceManager:
    """Owns the fetcher and circuit breaker of every source.

    :ivar fetch_timeout: Upper bound in seconds on a single fetcher call.
    """

    DEFAULT_FETCH_TIMEOUT = 5.0

    def __init__(self, fetch_timeout: float = DEFAULT_FETCH_TIMEOUT) -> None:
        """Initialize an empty source manager.

        :param fetch_timeout: Per-call timeout in seconds (default: 5).
        :raises ValueError: If fetch_timeout is not positive.
        """
        if fetch_timeout <= 0:
            raise ValueError("fetch_timeout must be positive")
        self.fetch_timeout = fetch_timeout
        self._fetchers: dict[str, BaseFetcher] = {}
        self._breakers: dict[str, CircuitBreaker] = {}

    @property
    def sources(self) -> list[str]:
        """Names of all registered sources, in registration order."""
        return list(self._fetchers)

    def register(self, fetcher: BaseFetcher, config: BreakerConfig | None = None) -> None:
        """Register a fetcher together with a fresh circuit breaker.

        :param fetcher: Fetcher instance.
        :param config: Breaker parameters (default: the fetcher's own defaults).
        :raises ValueError: If a source with the same name is registered.
        """
        if fetcher.name in self._fetchers:
            raise ValueError(f"Source '{fetcher.name}' is already registered")
        config = config or BreakerConfig.for_fetcher(fetcher)
        self._fetchers[fetcher.name] = fetcher
        self._breakers[fetcher.name] = CircuitBreaker(
            fetcher.name,
            failure_threshold=config.failure_threshold,
            success_threshold=config.success_threshold,
            timeout=config.timeout,
        )
        logger.debug(
            f"[{fetcher.name}] Registered for "
            f"{sorted(a.value for a in fetcher.asset_types)} with {config}"
        )

    def remove_source(self, source: str) -> None:
        """Stop tracking a source.

        :param source: Source name to remove.
        """
        self._fetchers.pop(source, None)
        self._breakers.pop(source, None)

    def sources_for(self, asset_type: AssetType) -> list[str]:
        """Get the sources that price an asset class.

        :param asset_type: Asset class.
        :returns: Source names in registration order.
        """
        return [name for name, f in self._fetchers.items() if f.supports(asset_type)]

    def get_breaker(self, source: str) -> CircuitBreaker | None:
        return self._breakers.get(source)

    async def fetch(self, source: str, symbol: str) -> FetchResult:
        """Fetch a quote from one source through its circuit breaker.

        Never raises for source-level problems: an open breaker, a timeout or
        a failed request all come back as a failed FetchResult.

        :param source: Source name.
        :param symbol: Symbol to price.
        :returns: FetchResult from the fetcher, or describing why it failed.
        """
        fetcher = self._fetchers.get(source)
        breaker = self._breakers.get(source)
        if fetcher is None or breaker is None:
            return FetchResult.err(source, FailureKind.NOT_CONFIGURED, "unknown source")

        async def guarded_fetch() -> FetchResult:
            try:
                result = await asyncio.wait_for(
                    fetcher.fetch(symbol), timeout=self.fetch_timeout
                )
            except asyncio.TimeoutError:
                raise SourceUnavailable(
                    source, FailureKind.TIMEOUT, f"no answer within {self.fetch_timeout}s"
                ) from None
            if result.counts_as_fault:
                raise SourceUnavailable(source, result.failure, result.detail)
            return result

        try:
            return await breaker.execute(guarded_fetch)
        except BreakerOpenError as e:
            logger.debug(f"[{source}] Skipped for {symbol}: {e}")
            return FetchResult.err(source, FailureKind.BREAKER_OPEN, str(e))
        except SourceUnavailable as e:
            return FetchResult.err(source, e.kind, str(e))
        except Exception as e:
            # A fetcher bug must not take the aggregation down with it
            logger.warning(f"[{source}] Unexpected error fetching {symbol}: {e!r}")
            return FetchResult.err(source, FailureKind.NETWORK, repr(e))

    def get_source_status(self, source: str) -> BreakerStatus | None:
        """Get a snapshot of one source's breaker.

        :param source: Source name.
        :returns: BreakerStatus or None if the source is not tracked.
        """
        breaker = self._breakers.get(source)
        return breaker.get_stats() if breaker else None

    def get_all_status(self) -> dict[str, BreakerStatus]:
        """Get breaker snapshots of all sources."""
        return {name: b.get_stats() for name, b in self._breakers.items()}

    def reset_source(self, source: str) -> None:
        """Force a source's breaker closed.

        :param source: Source name to reset.
        """
        breaker = self._breakers.get(source)
        if breaker is not None:
            breaker.reset()

    def reset_all(self) -> None:
        """Force every breaker closed."""
        for breaker in self._breakers.values():
            breaker.reset()
