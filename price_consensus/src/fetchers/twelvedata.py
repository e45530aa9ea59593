"""Twelve Data fetcher.

Endpoint: https://api.twelvedata.com/price?symbol={SYMBOL}&apikey={key}
Rate Limit: 8 calls/min (free)
Asset types: equity, forex
API Key: Required
"""

import logging

from ..types import AssetType, FailureKind, FetchResult
from .base import BaseFetcher, FetcherError, FetcherHTTPError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class TwelveDataFetcher(BaseFetcher):
    """Fetcher for Twelve Data's real-time price endpoint.

    Equity tickers ("AAPL") and forex pairs ("EUR/USD") share one endpoint.
    Twelve Data reports errors with HTTP 200 and a JSON body carrying a
    "code" field, which is mapped back onto HTTP semantics here.
    """

    name = "twelvedata"
    asset_types = frozenset({AssetType.EQUITY, AssetType.FOREX})
    base_confidence = 0.95
    requires_api_key = True
    failure_threshold = 3
    breaker_timeout = 60.0
    BASE_URL = "https://api.twelvedata.com"

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch the latest price from Twelve Data.

        :param symbol: Equity ticker or forex pair.
        :returns: FetchResult with the price (timestamped now).
        """
        if not self.api_key:
            return FetchResult.err(
                self.name, FailureKind.NOT_CONFIGURED, "API key required"
            )

        try:
            response = await self._get(
                f"{self.BASE_URL}/price",
                params={"symbol": symbol.upper(), "apikey": self.api_key},
            )
            data = response.json()

            if data.get("status") == "error":
                code = int(data.get("code", 500))
                if code in (400, 404):
                    return self._no_data(symbol, data.get("message", ""))
                raise FetcherHTTPError(code, data.get("message", ""))

            if not data.get("price"):
                return self._no_data(symbol, "no price in response")

            # The /price endpoint carries no timestamp
            return self._quote(float(data["price"]))

        except (FetcherError, KeyError, ValueError, TypeError, AttributeError) as e:
            return self._failure(symbol, e)
