"""Coinbase Exchange fetcher.

Endpoint: https://api.exchange.coinbase.com/products/{BASE}-USD/ticker
Rate Limit: High (no key required)
Asset types: crypto
"""

import logging
from datetime import datetime

from ..types import AssetType, FetchResult
from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)


def _parse_time(value: str | None) -> float | None:
    """Parse Coinbase's ISO-8601 trade time into a unix timestamp.

    Returns None for times that cannot be parsed (older interpreters reject
    fractional seconds that are not 3 or 6 digits), so the quote is stamped
    at receipt instead of being discarded.
    """
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
    except ValueError:
        logger.debug(f"[coinbase] Unparsable trade time {value!r}, using receipt time")
        return None


@register_fetcher
class CoinbaseFetcher(BaseFetcher):
    """Fetcher for Coinbase Exchange API.

    Prices crypto symbols against USD from the public ticker endpoint.
    No API key required. Unknown products answer 404, which counts as
    "no data" rather than a source failure.
    """

    name = "coinbase"
    asset_types = frozenset({AssetType.CRYPTO})
    base_confidence = 0.9
    failure_threshold = 3
    breaker_timeout = 30.0
    BASE_URL = "https://api.exchange.coinbase.com"

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch price from Coinbase Exchange.

        :param symbol: Crypto symbol (e.g., "btc", "eth").
        :returns: FetchResult with the last trade price.
        """
        product = f"{symbol.upper()}-USD"
        url = f"{self.BASE_URL}/products/{product}/ticker"

        try:
            response = await self._get(url)
            data = response.json()

            if "price" not in data:
                return self._no_data(symbol, f"no price in response for {product}")

            return self._quote(float(data["price"]), _parse_time(data.get("time")))

        except (FetcherError, KeyError, ValueError, TypeError) as e:
            return self._failure(symbol, e)
