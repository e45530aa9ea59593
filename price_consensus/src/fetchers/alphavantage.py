"""Alpha Vantage fetcher.

Endpoints:
    equity: https://www.alphavantage.co/query?function=GLOBAL_QUOTE&symbol={SYMBOL}
    forex:  https://www.alphavantage.co/query?function=CURRENCY_EXCHANGE_RATE
            &from_currency={FROM}&to_currency={TO}
Rate Limit: 25 calls/day (free)
Asset types: equity, forex
API Key: Required
"""

import logging
from datetime import datetime, timezone

from ..types import AssetType, FailureKind, FetchResult
from .base import BaseFetcher, FetcherError, FetcherHTTPError, register_fetcher

logger = logging.getLogger(__name__)


@register_fetcher
class AlphaVantageFetcher(BaseFetcher):
    """Fetcher for Alpha Vantage quotes and exchange rates.

    Symbols containing "/" are treated as forex pairs, everything else as an
    equity ticker. Alpha Vantage signals throttling with a "Note" or
    "Information" field and HTTP 200; that is reported as HTTP 429 so the
    breaker counts it. Its tight daily quota is why it gets the longest
    breaker timeout.
    """

    name = "alphavantage"
    asset_types = frozenset({AssetType.EQUITY, AssetType.FOREX})
    base_confidence = 0.85
    requires_api_key = True
    failure_threshold = 5
    breaker_timeout = 120.0
    BASE_URL = "https://www.alphavantage.co/query"

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch a quote or exchange rate from Alpha Vantage.

        :param symbol: Equity ticker ("IBM") or forex pair ("EUR/USD").
        :returns: FetchResult with the price.
        """
        if not self.api_key:
            return FetchResult.err(
                self.name, FailureKind.NOT_CONFIGURED, "API key required"
            )

        try:
            if "/" in symbol:
                return await self._fetch_forex(symbol)
            return await self._fetch_equity(symbol)

        except (FetcherError, KeyError, ValueError, TypeError, AttributeError) as e:
            return self._failure(symbol, e)

    async def _query(self, params: dict[str, str]) -> dict:
        response = await self._get(self.BASE_URL, params={**params, "apikey": self.api_key})
        data = response.json()
        throttled = data.get("Note") or data.get("Information")
        if throttled:
            raise FetcherHTTPError(429, str(throttled)[:200])
        return data

    async def _fetch_equity(self, symbol: str) -> FetchResult:
        data = await self._query({"function": "GLOBAL_QUOTE", "symbol": symbol.upper()})
        quote = data.get("Global Quote") or {}
        if not quote.get("05. price"):
            return self._no_data(symbol, "empty global quote")
        # Only a trading day is reported, not a time
        return self._quote(float(quote["05. price"]))

    async def _fetch_forex(self, symbol: str) -> FetchResult:
        from_currency, to_currency = symbol.upper().split("/", 1)
        data = await self._query(
            {
                "function": "CURRENCY_EXCHANGE_RATE",
                "from_currency": from_currency,
                "to_currency": to_currency,
            }
        )
        rate = data.get("Realtime Currency Exchange Rate") or {}
        if not rate.get("5. Exchange Rate"):
            return self._no_data(symbol, "no exchange rate in response")

        observed_at = None
        refreshed = rate.get("6. Last Refreshed")
        if refreshed and rate.get("7. Time Zone", "UTC") == "UTC":
            observed_at = (
                datetime.strptime(refreshed, "%Y-%m-%d %H:%M:%S")
                .replace(tzinfo=timezone.utc)
                .timestamp()
            )
        return self._quote(float(rate["5. Exchange Rate"]), observed_at)
