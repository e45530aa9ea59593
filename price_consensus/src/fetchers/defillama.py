"""DefiLlama coins fetcher.

Endpoint: https://coins.llama.fi/prices/current/coingecko:{id}
Rate Limit: Generous (no key required)
Asset types: crypto
"""

import logging

from ..types import AssetType, FetchResult
from .base import BaseFetcher, FetcherError, register_fetcher
from .coingecko import coin_id_for

logger = logging.getLogger(__name__)


@register_fetcher
class DefiLlamaFetcher(BaseFetcher):
    """Fetcher for the DefiLlama coins API.

    Coins are addressed by CoinGecko ID under the "coingecko:" namespace.
    Free and keyless, so it is the most trusted crypto source.
    """

    name = "defillama"
    asset_types = frozenset({AssetType.CRYPTO})
    base_confidence = 0.95
    failure_threshold = 5
    breaker_timeout = 60.0
    BASE_URL = "https://coins.llama.fi"

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch the USD price from DefiLlama.

        :param symbol: Crypto symbol or CoinGecko ID.
        :returns: FetchResult with the price and DefiLlama's timestamp.
        """
        coin_key = f"coingecko:{coin_id_for(symbol)}"
        url = f"{self.BASE_URL}/prices/current/{coin_key}"

        try:
            response = await self._get(url)
            coins = response.json().get("coins", {})

            coin = coins.get(coin_key)
            if not coin or not coin.get("price"):
                return self._no_data(symbol, f"{coin_key} not in response")

            return self._quote(float(coin["price"]), coin.get("timestamp"))

        except (FetcherError, KeyError, ValueError, TypeError, AttributeError) as e:
            return self._failure(symbol, e)
