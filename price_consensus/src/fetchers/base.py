"""Base fetcher interface and shared HTTP client management.

All price fetchers inherit from BaseFetcher and implement the fetch() method.
A shared httpx.AsyncClient is used across all fetchers to avoid connection overhead.

A fetcher makes exactly one bounded request per call and never retries;
retrying a sick source is the circuit breaker's job. Instead of raising or
returning None, fetch() returns a FetchResult that is either a PriceQuote or
a FailureKind.

.. code-block:: python

    @register_fetcher
    class MyFetcher(BaseFetcher):
        name = "myfetcher"
        asset_types = frozenset({AssetType.CRYPTO})

        async def fetch(self, symbol: str) -> FetchResult:
            try:
                response = await self._get(f"https://api.example.com/{symbol}")
                return self._quote(float(response.json()["price"]))
            except FetcherError as e:
                return self._failure(symbol, e)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import ClassVar

import httpx

from ..types import AssetType, FailureKind, FetchResult, PriceQuote

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors."""

    pass


class FetcherConfigError(FetcherError):
    """Raised when fetcher configuration is invalid (e.g., missing API key)."""

    pass


class FetcherTimeoutError(FetcherError):
    """Raised when an HTTP request exceeds the fetcher's timeout."""

    pass


class FetcherHTTPError(FetcherError):
    """Raised when HTTP request fails.

    :ivar status_code: HTTP status code from the failed request.
    """

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class BaseFetcher(ABC):
    """Abstract base class for price fetchers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "coinbase", "finnhub")
        - asset_types: Asset classes the source can price
        - fetch(): Async method returning a FetchResult for a symbol

    Subclasses may override the breaker defaults to match the upstream's
    rate-limit profile.

    :cvar name: Unique identifier for this fetcher.
    :cvar asset_types: Asset classes served by this fetcher.
    :cvar base_confidence: Static trust in this source's quotes (0-1).
    :cvar requires_api_key: Whether the source is unusable without an API key.
    :cvar failure_threshold: Default consecutive failures before the breaker opens.
    :cvar success_threshold: Default half-open successes before it closes.
    :cvar breaker_timeout: Default seconds an open breaker waits before probing.
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :ivar api_key: Optional API key for authenticated endpoints.
    :ivar timeout: Request timeout in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Fetcher identification
    name: ClassVar[str] = ""
    asset_types: ClassVar[frozenset[AssetType]] = frozenset()
    base_confidence: ClassVar[float] = 0.9
    requires_api_key: ClassVar[bool] = False

    # Circuit breaker defaults
    failure_threshold: ClassVar[int] = 5
    success_threshold: ClassVar[int] = 2
    breaker_timeout: ClassVar[float] = 60.0

    # Default timeout for HTTP requests (seconds)
    DEFAULT_TIMEOUT = 5.0

    def __init__(self, api_key: str | None = None, timeout: float | None = None):
        """Initialize the fetcher.

        :param api_key: Optional API key for authenticated endpoints.
        :param timeout: Request timeout in seconds (default: 5).
        """
        self.api_key = api_key
        self.timeout = timeout or self.DEFAULT_TIMEOUT

    @property
    def has_api_key(self) -> bool:
        """Check if this fetcher has an API key configured."""
        return self.api_key is not None and len(self.api_key) > 0

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        The client is shared across all fetcher instances to reuse connections.

        :returns: Shared httpx.AsyncClient instance.
        """
        client = BaseFetcher._shared_client
        if client is None or client.is_closed:
            client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                follow_redirects=True,
            )
            BaseFetcher._shared_client = client
        return client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseFetcher._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseFetcher._shared_client = None

    @abstractmethod
    async def fetch(self, symbol: str) -> FetchResult:
        """Fetch the current price for a symbol.

        :param symbol: Symbol in the notation of its asset class
            (e.g., "btc", "AAPL", "EUR/USD").
        :returns: FetchResult carrying a PriceQuote or a FailureKind.
        """
        pass

    def supports(self, asset_type: AssetType) -> bool:
        """Check if this fetcher prices the given asset class."""
        return asset_type in self.asset_types

    def _quote(self, price: float, observed_at: float | None = None) -> FetchResult:
        """Build a successful result stamped with this source's confidence.

        :param price: Observed price.
        :param observed_at: Source-reported unix timestamp; now if missing.
        :returns: FetchResult wrapping a PriceQuote.
        """
        return FetchResult.ok(
            PriceQuote(
                price=price,
                source=self.name,
                observed_at=observed_at or time.time(),
                base_confidence=self.base_confidence,
            )
        )

    def _no_data(self, symbol: str, detail: str = "") -> FetchResult:
        logger.debug(f"[{self.name}] No data for {symbol}: {detail}")
        return FetchResult.err(self.name, FailureKind.NO_DATA, detail)

    def _failure(self, symbol: str, error: Exception) -> FetchResult:
        """Classify an exception raised while fetching into a FetchResult.

        HTTP 404 means the source does not know the symbol, which is not a
        fault of the source. Every other non-2xx status is.

        :param symbol: Symbol being fetched, for logging.
        :param error: Exception raised by the request or the parsing.
        :returns: Failed FetchResult.
        """
        if isinstance(error, FetcherHTTPError) and error.status_code == 404:
            return self._no_data(symbol, str(error))

        if isinstance(error, FetcherTimeoutError):
            kind = FailureKind.TIMEOUT
        elif isinstance(error, FetcherHTTPError):
            kind = FailureKind.HTTP_ERROR
        elif isinstance(error, FetcherConfigError):
            kind = FailureKind.NOT_CONFIGURED
        elif isinstance(error, FetcherError):
            kind = FailureKind.NETWORK
        else:
            kind = FailureKind.PARSE_ERROR

        logger.warning(f"[{self.name}] Failed to fetch {symbol}: {error}")
        return FetchResult.err(self.name, kind, str(error))

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request using the shared client.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherTimeoutError: On timeout.
        :raises FetcherError: On other network errors.
        """
        client = self.get_shared_client()
        try:
            response = await client.get(
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherTimeoutError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.text[:200])
        return response


# Registry of available fetchers (populated by subclass imports)
FETCHER_REGISTRY: dict[str, type[BaseFetcher]] = {}


def register_fetcher(cls: type[BaseFetcher]) -> type[BaseFetcher]:
    """Decorator to register a fetcher class in the global registry.

    :param cls: Fetcher class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If fetcher has no name or no asset types defined.

    .. code-block:: python

        @register_fetcher
        class CoinbaseFetcher(BaseFetcher):
            name = "coinbase"
            asset_types = frozenset({AssetType.CRYPTO})
            ...
    """
    if not cls.name:
        raise ValueError(f"Fetcher {cls.__name__} must define a 'name' class variable")
    if not cls.asset_types:
        raise ValueError(f"Fetcher {cls.__name__} must define at least one asset type")
    FETCHER_REGISTRY[cls.name] = cls
    return cls


def get_fetcher(
    name: str, api_key: str | None = None, timeout: float | None = None
) -> BaseFetcher:
    """Get a fetcher instance by name.

    :param name: Fetcher name (e.g., "coinbase", "finnhub").
    :param api_key: Optional API key.
    :param timeout: Optional request timeout in seconds.
    :returns: Fetcher instance.
    :raises ValueError: If fetcher name is unknown.
    """
    if name not in FETCHER_REGISTRY:
        available = ", ".join(sorted(FETCHER_REGISTRY.keys()))
        raise ValueError(f"Unknown fetcher '{name}'. Available: {available}")
    return FETCHER_REGISTRY[name](api_key=api_key, timeout=timeout)


def get_available_fetchers() -> list[str]:
    """Get list of available fetcher names.

    :returns: Sorted list of registered fetcher names.
    """
    return sorted(FETCHER_REGISTRY.keys())
