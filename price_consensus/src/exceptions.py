"""Exceptions raised by the consensus engine.

Only NoDataAvailable and AllSourcesRejected ever reach callers of
PriceOracle. SourceUnavailable and BreakerOpenError are handled inside the
engine: the affected source is left out of the current aggregation.
"""

from __future__ import annotations

from .types import FailureKind


class OracleError(Exception):
    """Base exception for consensus engine errors."""

    pass


class SourceUnavailable(OracleError):
    """A single source could not contribute a quote.

    :ivar source: Source name.
    :ivar kind: Failure kind reported for the source.
    """

    def __init__(self, source: str, kind: FailureKind, message: str = ""):
        self.source = source
        self.kind = kind
        super().__init__(f"[{source}] {kind.value}" + (f": {message}" if message else ""))


class BreakerOpenError(SourceUnavailable):
    """Raised by a circuit breaker that rejects a call without running it.

    :ivar retry_at: Unix timestamp after which a trial call is allowed.
    """

    def __init__(self, source: str, retry_at: float | None = None):
        self.retry_at = retry_at
        message = f"circuit open until {retry_at:.0f}" if retry_at else "trial call in flight"
        super().__init__(source, FailureKind.BREAKER_OPEN, message)


class NoDataAvailable(OracleError):
    """No source produced a usable, fresh quote for the symbol."""

    def __init__(self, symbol: str, message: str = ""):
        self.symbol = symbol
        super().__init__(message or f"No price data available for {symbol}")


class AllSourcesRejected(OracleError):
    """Quotes arrived, but every one was rejected as an outlier.

    :ivar dropped: Rejected prices by source.
    """

    def __init__(self, symbol: str, dropped: dict[str, float]):
        self.symbol = symbol
        self.dropped = dict(dropped)
        super().__init__(
            f"All {len(dropped)} quotes for {symbol} rejected as outliers: {self.dropped}"
        )
