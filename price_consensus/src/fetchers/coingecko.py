"""CoinGecko fetcher.

Endpoint: https://api.coingecko.com/api/v3/simple/price?ids={id}&vs_currencies=usd
Rate Limit: 30 calls/min (free), higher with API key
Asset types: crypto
"""

import logging

from ..types import AssetType, FetchResult
from .base import BaseFetcher, FetcherError, register_fetcher

logger = logging.getLogger(__name__)

# Map common ticker symbols to CoinGecko IDs. Unknown symbols are passed
# through unchanged, so callers may also use CoinGecko IDs directly.
COIN_IDS = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "rose": "oasis-network",
    "usdt": "tether",
    "usdc": "usd-coin",
    "sol": "solana",
    "avax": "avalanche-2",
    "matic": "matic-network",
    "dot": "polkadot",
    "atom": "cosmos",
    "link": "chainlink",
    "uni": "uniswap",
    "aave": "aave",
    "bnb": "binancecoin",
    "xrp": "ripple",
    "ada": "cardano",
    "doge": "dogecoin",
}


def coin_id_for(symbol: str) -> str:
    """Resolve a ticker symbol to a CoinGecko coin ID."""
    symbol = symbol.lower()
    return COIN_IDS.get(symbol, symbol)


@register_fetcher
class CoinGeckoFetcher(BaseFetcher):
    """Fetcher for CoinGecko API.

    API tiers:
        - Free: api.coingecko.com (no key, 30 calls/min)
        - Demo: api.coingecko.com + x-cg-demo-api-key header
        - Pro: pro-api.coingecko.com + x-cg-pro-api-key header

    To use a demo key, prefix with "demo:": API_KEY_COINGECKO=demo:CG-xxxxx
    Pro keys need no prefix: API_KEY_COINGECKO=xxxxx
    """

    name = "coingecko"
    asset_types = frozenset({AssetType.CRYPTO})
    base_confidence = 0.9
    failure_threshold = 5
    breaker_timeout = 60.0
    BASE_URL_FREE = "https://api.coingecko.com/api/v3"
    BASE_URL_PRO = "https://pro-api.coingecko.com/api/v3"

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize with optional demo: prefix handling."""
        self._is_demo = False
        if api_key and api_key.lower().startswith("demo:"):
            self._is_demo = True
            api_key = api_key[5:]  # Strip "demo:" prefix
        super().__init__(api_key=api_key, timeout=timeout)

    @property
    def base_url(self) -> str:
        """Return appropriate base URL based on API key type."""
        if not self.has_api_key:
            return self.BASE_URL_FREE
        # Demo keys use free URL, pro keys use pro URL
        return self.BASE_URL_FREE if self._is_demo else self.BASE_URL_PRO

    @property
    def api_header(self) -> tuple[str, str] | None:
        """Return appropriate header name and value for API key."""
        if not self.api_key:
            return None
        header_name = "x-cg-demo-api-key" if self._is_demo else "x-cg-pro-api-key"
        return (header_name, self.api_key)

    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch the USD price from CoinGecko.

        :param symbol: Crypto symbol or CoinGecko ID (e.g., "btc", "bitcoin").
        :returns: FetchResult with the price and CoinGecko's update time.
        """
        coin_id = coin_id_for(symbol)
        url = f"{self.base_url}/simple/price"

        headers = {}
        if self.api_header:
            header_name, header_value = self.api_header
            headers[header_name] = header_value

        try:
            response = await self._get(
                url,
                params={
                    "ids": coin_id,
                    "vs_currencies": "usd",
                    "include_last_updated_at": "true",
                },
                headers=headers if headers else None,
            )
            data = response.json()

            coin = data.get(coin_id)
            if not coin or not coin.get("usd"):
                return self._no_data(symbol, f"coin {coin_id} not in response")

            return self._quote(float(coin["usd"]), coin.get("last_updated_at"))

        except (FetcherError, KeyError, ValueError, TypeError, AttributeError) as e:
            return self._failure(symbol, e)
