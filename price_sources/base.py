"""
Base Price Source - Abstract interface for all DEX price venues.

All venues MUST implement this interface to ensure:
- Isolation
- Replaceability
- Fail-safety (a venue never aborts the aggregation pipeline)
"""

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Optional, TypeVar

import aiohttp

from price_sources.cache import Clock, QuoteCache
from price_sources.exceptions import (
    FetchError,
    NormalizationError,
    PriceSourceError,
    RateLimitError,
)
from price_sources.models import (
    Confidence,
    PriceQuote,
    SourceHealth,
    SourceIncident,
    SourceMetadata,
    SourceStatus,
    is_valid_price,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_price(value: Any) -> Optional[Decimal]:
    """Convert a venue number/string to a usable Decimal price, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return price if is_valid_price(price) else None


def parse_retry_after(
    value: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[float]:
    """
    Seconds to wait from a Retry-After header.

    Accepts delta-seconds ("120") or an HTTP date. Returns None when the
    header is missing or unparseable; a date in the past gives 0.
    """
    if not value:
        return None
    value = value.strip()

    try:
        seconds = float(value)
    except ValueError:
        pass
    else:
        return max(0.0, seconds) if math.isfinite(seconds) else None

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - now).total_seconds())


class BasePriceSource(ABC):
    """
    Abstract base class for all price venues.

    Each venue implementation must:
    1. Implement name - Unique venue identifier
    2. Implement fetch_raw() - Get the raw payload (None = venue has no data)
    3. Implement normalize() - Convert the payload to a PriceQuote (or None)
    4. Implement metadata() - Return venue metadata

    Features:
    - Per-venue quote cache; a high-confidence hit skips the request
    - Minimum spacing between requests (delayed, never rejected)
    - Linear backoff retry (attempt x retry_delay)
    - Per-call timeout
    - Health tracking and incident logging
    """

    # Configuration defaults (can be overridden by subclasses)
    DEFAULT_TIMEOUT = 5.0
    DEFAULT_CACHE_TTL = 30.0
    MIN_REQUEST_INTERVAL = 0.1
    MAX_RETRIES = 3
    RETRY_DELAY = 1.0
    DEGRADED_THRESHOLD = 3  # consecutive failures before degraded
    UNAVAILABLE_THRESHOLD = 5  # consecutive failures before unavailable

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        min_request_interval: float = MIN_REQUEST_INTERVAL,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY,
        session: Optional[aiohttp.ClientSession] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._timeout = timeout
        self._min_request_interval = min_request_interval
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._session = session
        self._owns_session = session is None
        self._clock: Callable[[], float] = clock or time.monotonic

        self._cache = QuoteCache(ttl_seconds=cache_ttl, clock=self._clock)

        # Rate limiting: earliest time the next request may start
        self._next_request_at = float("-inf")

        # Health tracking
        self._health = SourceHealth(
            status=SourceStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._last_successful_request: Optional[datetime] = None
        self._request_count = 0
        self._success_count = 0
        self._error_count = 0

        # Incident log
        self._incidents: list[SourceIncident] = []
        self._max_incidents = 100

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this venue."""
        pass

    @abstractmethod
    async def fetch_raw(self, token: str) -> Optional[Any]:
        """
        Fetch the raw payload for token from the venue API.

        Args:
            token: Token mint address

        Returns:
            Venue payload, or None when the venue has no data for token

        Raises:
            FetchError: On network/HTTP failure (retried by the caller)
        """
        pass

    @abstractmethod
    def normalize(self, raw_data: Any, token: str) -> Optional[PriceQuote]:
        """
        Normalize a venue payload to a PriceQuote.

        Args:
            raw_data: Payload from fetch_raw()
            token: Token mint address

        Returns:
            PriceQuote, or None when the payload holds no usable price

        Raises:
            NormalizationError: If the payload is malformed
        """
        pass

    @abstractmethod
    def metadata(self) -> SourceMetadata:
        """Return venue metadata."""
        pass

    async def get_price(self, token: str) -> Optional[Decimal]:
        """USD price for token, or None when this venue has no usable price."""
        quote = await self.get_quote(token)
        return quote.usd_price if quote else None

    async def get_quote(
        self,
        token: str,
        force_refresh: bool = False,
    ) -> Optional[PriceQuote]:
        """
        Get a quote for token (main entry point).

        This method:
        1. Returns a cached high-confidence quote without any request
        2. Otherwise fetches with rate limiting, timeout and retries
        3. Falls back to a fresh lower-confidence cached quote
        4. NEVER raises - returns None on failure
        """
        if not token:
            return None

        cached = self._cache.get(token)
        if cached is not None and cached.is_high_confidence() and not force_refresh:
            logger.debug(f"[{self.name}] Using cached price for {token}: ${cached.usd_price}")
            return cached

        try:
            quote = await self._fetch_with_retry(token)
        except PriceSourceError as e:
            self._on_error(e, token)
            return self._cached_fallback(cached, token)
        except Exception as e:
            error = PriceSourceError(
                message=f"Unexpected error: {e}",
                source_name=self.name,
                original_error=e,
            )
            self._on_error(error, token)
            return self._cached_fallback(cached, token)

        self._on_success()

        if quote is None:
            logger.info(f"[{self.name}] No price available for {token}")
            return self._cached_fallback(cached, token)

        if not is_valid_price(quote.usd_price):
            logger.warning(f"[{self.name}] Discarding invalid price for {token}: {quote.usd_price}")
            return self._cached_fallback(cached, token)

        self._cache.put(quote)
        logger.info(f"[{self.name}] Fetched price for {token}: ${quote.usd_price} ({quote.confidence.value})")
        return quote

    async def supports(self, token: str) -> bool:
        """Whether this venue can price token right now."""
        try:
            if token in self._cache:
                return True
            return await self.get_quote(token) is not None
        except Exception as e:
            logger.error(f"[{self.name}] Error checking token support: {e}")
            return False

    def _cached_fallback(
        self,
        cached: Optional[PriceQuote],
        token: str,
    ) -> Optional[PriceQuote]:
        if cached is not None:
            logger.info(
                f"[{self.name}] Refresh failed, using cached "
                f"{cached.confidence.value}-confidence price for {token}"
            )
        return cached

    async def _fetch_with_retry(self, token: str) -> Optional[PriceQuote]:
        """Fetch and normalize a quote with linearly increasing backoff."""
        return await self._call_with_retry(lambda: self._fetch_once(token), token)

    async def _call_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        token: str,
    ) -> T:
        """
        Run operation with a per-attempt timeout and linear backoff.

        Raises:
            FetchError: On a client error (not retried) or once attempts run out
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_retries + 1):
            try:
                return await asyncio.wait_for(operation(), timeout=self._timeout)

            except asyncio.TimeoutError as e:
                last_error = FetchError(
                    message=f"Timed out after {self._timeout}s",
                    source_name=self.name,
                    original_error=e,
                )

            except FetchError as e:
                if e.is_client_error():
                    # Don't retry client errors
                    raise
                last_error = e

            except Exception as e:
                last_error = e

            if attempt < self._max_retries:
                wait_time = attempt * self._retry_delay
                if isinstance(last_error, RateLimitError) and last_error.retry_after_seconds:
                    wait_time = max(wait_time, last_error.retry_after_seconds)
                logger.warning(
                    f"[{self.name}] Attempt {attempt}/{self._max_retries} failed for {token}: "
                    f"{last_error}, retrying in {wait_time}s"
                )
                await asyncio.sleep(wait_time)

        # All retries exhausted
        raise FetchError(
            message=f"Failed after {self._max_retries} attempts",
            source_name=self.name,
            original_error=last_error,
        )

    async def _fetch_once(self, token: str) -> Optional[PriceQuote]:
        raw_data = await self.fetch_raw(token)
        if raw_data is None:
            return None
        return self.normalize(raw_data, token)

    async def _enforce_rate_limit(self) -> None:
        """Delay until this venue's next request slot."""
        if self._min_request_interval <= 0:
            return

        now = self._clock()
        slot = max(now, self._next_request_at)
        # Reserve the slot before sleeping so concurrent callers queue up behind it
        self._next_request_at = slot + self._min_request_interval

        wait_time = slot - now
        if wait_time > 0:
            logger.debug(f"[{self.name}] Rate limit, delaying request {wait_time:.3f}s")
            await asyncio.sleep(wait_time)

    def _make_quote(
        self,
        token: str,
        usd_price: Decimal,
        confidence: Confidence,
        liquidity_usd: Optional[Decimal] = None,
        pair_address: Optional[str] = None,
    ) -> PriceQuote:
        return PriceQuote(
            token=token,
            usd_price=usd_price,
            source_name=self.name,
            fetched_at=datetime.now(timezone.utc),
            confidence=confidence,
            liquidity_usd=liquidity_usd,
            pair_address=pair_address,
            fetched_monotonic=self._clock(),
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers=self._get_default_headers(),
            )
            self._owns_session = True
        return self._session

    def _get_default_headers(self) -> dict[str, str]:
        """Get default HTTP headers."""
        return {
            "Accept": "application/json",
            "User-Agent": "TradingSimulator/1.0",
        }

    async def _make_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Make a rate-limited HTTP request. Every venue request goes through here."""
        await self._enforce_rate_limit()
        return await self._send_request(method, url, params, headers, json_body)

    async def _send_request(
        self,
        method: str,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        json_body: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one HTTP request with error handling."""
        session = await self._get_session()

        start_time = time.time()
        try:
            async with session.request(
                method,
                url,
                params=params,
                headers=headers,
                json=json_body,
            ) as response:
                latency_ms = (time.time() - start_time) * 1000
                self._health.latency_ms = latency_ms

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        source_name=self.name,
                        retry_after_seconds=parse_retry_after(retry_after),
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        source_name=self.name,
                        status_code=response.status,
                        response_body=body[:1000],
                        request_url=url,
                    )

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise NormalizationError(
                        message=f"Malformed JSON payload: {e}",
                        source_name=self.name,
                        original_error=e,
                    )

                logger.debug(f"[{self.name}] Request completed in {latency_ms:.1f}ms")
                return data

        except aiohttp.ClientError as e:
            raise FetchError(
                message=f"Connection error: {e}",
                source_name=self.name,
                request_url=url,
                original_error=e,
            )

    def _on_success(self) -> None:
        """Handle successful request."""
        self._request_count += 1
        self._success_count += 1
        self._last_successful_request = datetime.now(timezone.utc)
        self._health.last_check = self._last_successful_request

        # Reset consecutive failures
        self._health.consecutive_failures = 0

        if self._health.status != SourceStatus.HEALTHY:
            if self._health.status != SourceStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = SourceStatus.HEALTHY

    def _on_error(
        self,
        error: PriceSourceError,
        token: Optional[str] = None,
    ) -> None:
        """Handle request error."""
        self._request_count += 1
        self._error_count += 1
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)
        self._health.last_check = self._health.last_error_time

        # Update health status based on consecutive failures
        if self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != SourceStatus.UNAVAILABLE:
                self._health.status = SourceStatus.UNAVAILABLE
                logger.error(
                    f"[{self.name}] Marked UNAVAILABLE after "
                    f"{self._health.consecutive_failures} failures"
                )
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != SourceStatus.DEGRADED:
                self._health.status = SourceStatus.DEGRADED
                logger.warning(
                    f"[{self.name}] Marked DEGRADED after "
                    f"{self._health.consecutive_failures} failures"
                )

        self._log_incident(error, token)

    def _log_incident(
        self,
        error: PriceSourceError,
        token: Optional[str] = None,
    ) -> None:
        """Log an incident."""
        incident = SourceIncident(
            source_name=self.name,
            incident_type=error.__class__.__name__,
            timestamp=datetime.now(timezone.utc),
            error_message=str(error),
            token=token,
        )

        self._incidents.append(incident)

        # Trim incidents to max size
        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        logger.warning(f"[{self.name}] Incident logged: {error}")

    def get_health(self) -> SourceHealth:
        """Get current health status."""
        if self._request_count > 0:
            self._health.uptime_percentage = (
                self._success_count / self._request_count * 100
            )
        return self._health

    def get_incidents(self, limit: int = 10) -> list[SourceIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def get_cache_stats(self) -> dict[str, Any]:
        return self._cache.stats()

    def clear_cache(self) -> None:
        """Clear all cached quotes."""
        self._cache.clear()
        logger.info(f"[{self.name}] Cache cleared")

    def is_healthy(self) -> bool:
        """Check if source is healthy."""
        return self._health.status == SourceStatus.HEALTHY

    def is_usable(self) -> bool:
        """Check if source can be used."""
        return self._health.is_usable()

    async def close(self) -> None:
        """Close resources."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self) -> "BasePriceSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"
