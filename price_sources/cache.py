"""
Quote Cache - Token-keyed TTL cache shared by venues and the aggregator.

Entries expire ttl_seconds after the quote was fetched. Time comes from an
injectable monotonic clock so tests can move it.
"""

import logging
import time
from typing import Any, Callable, Optional

from price_sources.models import CacheEntry, PriceQuote, is_valid_price


logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class QuoteCache:
    """
    TTL cache of PriceQuote keyed by token address.

    Invalid prices are never stored.
    """

    MAX_ENTRIES = 1000

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        clock: Optional[Clock] = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock or time.monotonic
        self._entries: dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, token: str) -> Optional[PriceQuote]:
        """Return the fresh quote for token, or None."""
        entry = self._entries.get(token)
        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self._clock(), self._ttl):
            del self._entries[token]
            self._misses += 1
            return None

        entry.hits += 1
        self._hits += 1
        return entry.quote

    def peek(self, token: str) -> Optional[PriceQuote]:
        """Like get() but without touching hit statistics."""
        entry = self._entries.get(token)
        if entry is None or entry.is_expired(self._clock(), self._ttl):
            return None
        return entry.quote

    def put(self, quote: PriceQuote) -> bool:
        """
        Store quote. Returns False when the price is not usable or already stale.

        Age counts from quote.fetched_monotonic, so re-storing a quote taken
        from another cache does not extend its lifetime. The clock given here
        must share a time base with the one that stamped the quote.
        """
        if not is_valid_price(quote.usd_price):
            logger.debug(f"Refusing to cache invalid price for {quote.token}: {quote.usd_price}")
            return False

        fetched_at = quote.fetched_monotonic
        if fetched_at is None:
            fetched_at = self._clock()

        entry = CacheEntry(quote=quote, fetched_at=fetched_at)
        if entry.is_expired(self._clock(), self._ttl):
            logger.debug(f"Not caching expired quote for {quote.token}")
            return False

        self._entries[quote.token] = entry

        if len(self._entries) > self.MAX_ENTRIES:
            self.purge_expired()
        return True

    def purge_expired(self) -> int:
        """Drop expired entries, returning how many were removed."""
        now = self._clock()
        expired = [
            token for token, entry in self._entries.items()
            if entry.is_expired(now, self._ttl)
        ]
        for token in expired:
            del self._entries[token]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, token: str) -> bool:
        return self.peek(token) is not None

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0
        return {
            "entries": len(self._entries),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
        }
