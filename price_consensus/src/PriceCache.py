"""PriceCache: Short-lived memoization of aggregated prices.

Repeated lookups of the same symbol within the TTL are answered from here
instead of querying every upstream source again. The TTL only governs how
long a consensus result is reused; it is unrelated to the staleness window
the aggregator applies to individual quotes.

Expiry is lazy: an expired entry is treated as absent when looked up and
dropped at that point. purge_expired() can be called to reclaim memory from
keys that are never looked up again.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass

from .types import AggregatedPrice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached aggregated price and its expiry time.

    :ivar key: Cache key ("asset_type:symbol").
    :ivar value: Cached aggregated price.
    :ivar expires_at: Unix timestamp from which the entry is no longer served.
    """

    key: str
    value: AggregatedPrice
    expires_at: float


class PriceCache:
    """Thread-safe TTL cache of aggregated prices keyed by PriceKey string.

    Entries are replaced wholesale on every put; the last writer wins.

    :ivar ttl: Default time-to-live in seconds.
    """

    DEFAULT_TTL_SECONDS = 30.0

    def __init__(self, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        """Initialize an empty cache.

        :param ttl: Default time-to-live in seconds (default: 30).
        :raises ValueError: If ttl is not positive.
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> AggregatedPrice | None:
        """Get a cached price if it has not expired.

        :param key: Cache key.
        :returns: The cached AggregatedPrice, or None on a miss.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if time.time() >= entry.expires_at:
                del self._entries[key]
                logger.debug(f"Cache entry for {key} expired")
                return None
            return entry.value

    def put(self, key: str, value: AggregatedPrice, ttl: float | None = None) -> None:
        """Store a price, replacing any existing entry for the key.

        :param key: Cache key.
        :param value: Aggregated price to cache.
        :param ttl: Time-to-live in seconds (default: the cache's ttl).
        """
        entry = CacheEntry(
            key=key,
            value=value,
            expires_at=time.time() + (ttl if ttl is not None else self.ttl),
        )
        with self._lock:
            self._entries[key] = entry

    def invalidate_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
        logger.info("Price cache cleared")

    def purge_expired(self) -> int:
        """Drop expired entries.

        :returns: Number of entries removed.
        """
        now = time.time()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def stats(self) -> dict:
        """Get the number and keys of live (unexpired) entries.

        :returns: Dict with "size" and sorted "keys".
        """
        now = time.time()
        with self._lock:
            keys = sorted(k for k, e in self._entries.items() if now < e.expires_at)
        return {"size": len(keys), "keys": keys}
