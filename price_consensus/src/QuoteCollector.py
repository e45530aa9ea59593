"""QuoteCollector: Concurrent fan-out of one symbol to many sources.

Architecture:
    - One task per source, each going through SourceManager.fetch()
      (circuit breaker plus per-call timeout)
    - Waits for every task to settle instead of stopping at the first quote
    - An overall deadline bounds the whole round; sources still running
      at the deadline are cancelled and the quotes already received are kept
    - Cancelling collect() itself cancels every source task before returning
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .types import FailureKind, PriceQuote

if TYPE_CHECKING:
    from .SourceManager import SourceManager

logger = logging.getLogger(__name__)


@dataclass
class CollectionResult:
    """Outcome of one fan-out round.

    :ivar quotes: Quotes received, in source order.
    :ivar failures: Failure kind per source that produced no quote.
    """

    quotes: list[PriceQuote] = field(default_factory=list)
    failures: dict[str, FailureKind] = field(default_factory=dict)


class QuoteCollector:
    """Gathers quotes for a symbol from several sources at once.

    :ivar source_manager: Registry of fetchers and their breakers.
    :ivar request_timeout: Overall deadline for one round, in seconds.
    """

    DEFAULT_REQUEST_TIMEOUT = 8.0

    def __init__(
        self,
        source_manager: SourceManager,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialize the collector.

        :param source_manager: Source registry to fetch through.
        :param request_timeout: Overall deadline per round (default: 8.0).
        :raises ValueError: If request_timeout is not positive.
        """
        if request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        self.source_manager = source_manager
        self.request_timeout = request_timeout

    async def collect(self, symbol: str, sources: list[str]) -> CollectionResult:
        """Fetch a symbol from all given sources concurrently.

        :param symbol: Symbol to price.
        :param sources: Source names to query.
        :returns: CollectionResult with quotes and per-source failures.
        """
        result = CollectionResult()
        if not sources:
            return result

        tasks = {
            asyncio.ensure_future(self.source_manager.fetch(source, symbol)): source
            for source in sources
        }
        try:
            done, pending = await asyncio.wait(tasks, timeout=self.request_timeout)
        except asyncio.CancelledError:
            # The caller gave up; no source call may outlive the lookup
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            late = sorted(tasks[t] for t in pending)
            logger.warning(
                f"Deadline of {self.request_timeout}s hit for {symbol}, "
                f"proceeding without {late}"
            )
            for source in late:
                result.failures[source] = FailureKind.TIMEOUT

        for task in done:
            source = tasks[task]
            fetched = task.result()
            if fetched.quote is not None:
                result.quotes.append(fetched.quote)
            else:
                result.failures[source] = fetched.failure or FailureKind.NO_DATA

        result.quotes.sort(key=lambda q: q.source)
        failed = {s: k.value for s, k in result.failures.items()}
        logger.debug(
            f"Collected {len(result.quotes)}/{len(sources)} quotes for {symbol}, "
            f"failures: {failed}"
        )
        return result
