"""PriceKey: Symbol plus asset class, used to route requests and key the cache.

The same ticker can mean different instruments in different asset classes,
so every lookup carries both. The string form is "<asset_type>:<symbol>":

.. code-block:: python

    >>> key = PriceKey("BTC", AssetType.CRYPTO)
    >>> str(key)
    'crypto:btc'
    >>> key = PriceKey.from_string("equity:AAPL")
    >>> key.symbol
    'AAPL'
"""

from __future__ import annotations

from .types import AssetType


class PriceKey:
    """A symbol within an asset class.

    Crypto symbols are lowercased (they are mapped to provider IDs); equity
    and forex tickers are uppercased, matching exchange notation.

    :ivar symbol: Normalized symbol.
    :ivar asset_type: Asset class of the symbol.
    """

    def __init__(self, symbol: str, asset_type: AssetType | str = AssetType.CRYPTO) -> None:
        """Initialize a price key.

        :param symbol: Symbol (e.g., "btc", "AAPL", "EUR/USD").
        :param asset_type: Asset class, as AssetType or string.
        :raises ValueError: If the symbol is empty or the asset type unknown.
        """
        symbol = symbol.strip()
        if not symbol:
            raise ValueError("Symbol must not be empty")
        self.asset_type = AssetType.parse(asset_type)
        if self.asset_type is AssetType.CRYPTO:
            self.symbol = symbol.lower()
        else:
            self.symbol = symbol.upper()

    def __str__(self) -> str:
        """Return the cache key string."""
        return f"{self.asset_type.value}:{self.symbol}"

    def __repr__(self) -> str:
        return f"PriceKey({self.symbol!r}, {self.asset_type.value!r})"

    def __hash__(self) -> int:
        return hash(str(self))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriceKey):
            return NotImplemented
        return str(self) == str(other)

    @classmethod
    def from_string(cls, key_str: str) -> PriceKey:
        """Parse a key string in format "asset_type:symbol".

        A bare symbol without an asset type is treated as crypto.

        :param key_str: Key string like "crypto:eth" or "forex:EUR/USD".
        :returns: New PriceKey instance.
        :raises ValueError: If the string format is invalid.

        .. code-block:: python

            >>> PriceKey.from_string("sol")
            PriceKey('sol', 'crypto')
            >>> PriceKey.from_string("stock:msft").asset_type
            <AssetType.EQUITY: 'equity'>
        """
        if ":" not in key_str:
            return cls(key_str, AssetType.CRYPTO)
        asset_type, symbol = key_str.split(":", 1)
        if not symbol.strip():
            raise ValueError(
                f"Invalid key format '{key_str}'. Expected 'asset_type:symbol' "
                "(e.g., 'crypto:btc')"
            )
        return cls(symbol, asset_type)
