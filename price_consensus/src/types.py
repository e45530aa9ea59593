"""Value types shared by fetchers, the aggregator and the oracle facade.

A fetcher never returns a bare float or None: it returns a FetchResult that
either carries a PriceQuote or names the FailureKind that prevented one.

.. code-block:: python

    >>> quote = PriceQuote(price=100.0, source="coinbase", observed_at=1700000000.0)
    >>> FetchResult.ok(quote).success
    True
    >>> FetchResult.err("kraken", FailureKind.TIMEOUT).counts_as_fault
    True
    >>> FetchResult.err("kraken", FailureKind.NO_DATA).counts_as_fault
    False
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class AssetType(str, Enum):
    """Asset class of a symbol; selects which sources are queried."""

    CRYPTO = "crypto"
    EQUITY = "equity"
    FOREX = "forex"

    @classmethod
    def parse(cls, value: str | AssetType) -> AssetType:
        """Parse an asset type, accepting "stock" as an alias for equity.

        :param value: Asset type string (case-insensitive) or AssetType.
        :returns: Matching AssetType.
        :raises ValueError: If the value is not a known asset type.
        """
        if isinstance(value, AssetType):
            return value
        normalized = value.strip().lower()
        if normalized == "stock":
            return cls.EQUITY
        try:
            return cls(normalized)
        except ValueError:
            valid = ", ".join(a.value for a in cls)
            raise ValueError(
                f"Unknown asset type '{value}'. Expected one of: {valid}"
            ) from None


class FailureKind(str, Enum):
    """Why a fetcher could not produce a quote."""

    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    NO_DATA = "no_data"
    UNSUPPORTED = "unsupported"
    NOT_CONFIGURED = "not_configured"
    BREAKER_OPEN = "breaker_open"

    @property
    def is_source_fault(self) -> bool:
        """Whether this failure says something about the source's health."""
        return self in _SOURCE_FAULTS


_SOURCE_FAULTS = frozenset(
    {
        FailureKind.TIMEOUT,
        FailureKind.NETWORK,
        FailureKind.HTTP_ERROR,
        FailureKind.PARSE_ERROR,
    }
)


@dataclass(frozen=True)
class PriceQuote:
    """One source's observation of a price.

    :ivar price: Observed price.
    :ivar source: Name of the source that produced it.
    :ivar observed_at: Unix timestamp the source reports for the price.
    :ivar base_confidence: Static trust in the source, between 0 and 1.
    """

    price: float
    source: str
    observed_at: float
    base_confidence: float = 1.0


@dataclass(frozen=True)
class FetchResult:
    """Outcome of a single fetcher call: a quote or a failure kind."""

    source: str
    quote: PriceQuote | None = None
    failure: FailureKind | None = None
    detail: str = ""

    @classmethod
    def ok(cls, quote: PriceQuote) -> FetchResult:
        return cls(source=quote.source, quote=quote)

    @classmethod
    def err(cls, source: str, failure: FailureKind, detail: str = "") -> FetchResult:
        return cls(source=source, failure=failure, detail=detail)

    @property
    def success(self) -> bool:
        return self.quote is not None

    @property
    def counts_as_fault(self) -> bool:
        """True if the circuit breaker should record this as a failure."""
        return self.failure is not None and self.failure.is_source_fault


@dataclass(frozen=True)
class AggregatedPrice:
    """Consensus price computed from several quotes.

    :ivar price: Confidence-weighted average of the surviving quotes.
    :ivar sources: Sources that survived outlier filtering, sorted by name.
    :ivar computed_at: Unix timestamp of the aggregation.
    :ivar confidence: Trust in the result, between 0 and 1.
    :ivar deviation: Mean relative deviation of survivors from the median.
    :ivar staleness: Seconds since the oldest surviving quote was observed.
    :ivar symbol: Symbol the price belongs to.
    :ivar asset_type: Asset class of the symbol.
    :ivar dropped: Outliers rejected in this cycle, by source (read-only).
    """

    price: float
    sources: tuple[str, ...]
    computed_at: float
    confidence: float
    deviation: float
    staleness: float
    symbol: str = ""
    asset_type: AssetType | None = None
    dropped: Mapping[str, float] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "dropped", MappingProxyType(dict(self.dropped)))

    def to_dict(self) -> dict:
        """Return a JSON-serializable representation."""
        return {
            "price": self.price,
            "sources": list(self.sources),
            "computed_at": self.computed_at,
            "confidence": self.confidence,
            "deviation": self.deviation,
            "staleness": self.staleness,
            "symbol": self.symbol,
            "asset_type": self.asset_type.value if self.asset_type else None,
            "dropped": dict(self.dropped),
        }
