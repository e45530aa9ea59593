"""Finnhub fetcher.

Endpoint: https://finnhub.io/api/v1/quote?symbol={SYMBOL}&token={key}
Rate Limit: 60 calls/min (free)
Asset types: equity
API Key: Required
"""

import logging

from ..types import AssetType, FailureKind, FetchResult
from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class FinnhubFetcher(BaseFetcher):
    """Fetcher for Finnhub stock quotes.

    Finnhub answers unknown symbols with an all-zero quote, so a zero
    current price ("c") is treated as no data.
    """

    name = "finnhub"
    asset_types = frozenset({AssetType.EQUITY})
    base_confidence = 0.95
    requires_api_key = True
    failure_threshold = 3
    breaker_timeout = 60.0
    BASE_URL = "https://finnhub.io/api/v1"

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch the current quote from Finnhub.

        :param symbol: Equity ticker (e.g., "AAPL").
        :returns: FetchResult with the current price and quote time.
        """
        if not self.api_key:
            return FetchResult.err(
                self.name, FailureKind.NOT_CONFIGURED, "API key required"
            )

        try:
            response = await self._get(
                f"{self.BASE_URL}/quote",
                params={"symbol": symbol.upper(), "token": self.api_key},
            )
            data = response.json()

            # c = current price, t = quote unix time
            if not data.get("c"):
                return self._no_data(symbol, "zero quote")

            return self._quote(float(data["c"]), data.get("t"))

        except (FetcherError, KeyError, ValueError, TypeError, AttributeError) as e:
            return self._failure(symbol, e)
